"""
Inventory costing API routes.

Provides the landed cost analysis report and the optimal allocation view.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from erp.database import get_db
from erp.services.landed_cost import cost_analysis_report
from erp.services.smart_allocation import optimal_allocation

router = APIRouter(prefix="/api/v1/costing", tags=["costing"])


@router.get("/analysis")
async def get_cost_analysis(
    group_by: str = Query("product", pattern=r"^(product|location|supplier|month)$"),
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Landed cost analysis of active inventory.

    Groups are ordered by landed inventory value, highest first.
    """
    return await cost_analysis_report(
        db,
        group_by=group_by,
        product_id=product_id,
        location_id=location_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/optimal-allocation")
async def get_optimal_allocation(
    product_id: int,
    quantity: Decimal = Query(Decimal("1"), gt=0),
    strategy: str = Query("balanced", pattern=r"^(balanced|cost_optimization|fifo_strict|expiry_management)$"),
    location_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Rank batches by a named weight set and plan the cheapest fill with savings and risk per batch."""
    return await optimal_allocation(
        db, product_id=product_id, quantity=quantity, strategy=strategy, location_id=location_id
    )
