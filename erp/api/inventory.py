"""
Inventory API routes.

Provides batch listing and costing, stock levels, stock movements and
transfers between locations.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from erp.api.deps import get_request_context
from erp.database import get_db
from erp.services import inventory
from erp.services.audit import RequestContext
from erp.services.landed_cost import cost_breakdown

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# Pydantic schemas
class BatchResponse(BaseModel):
    """Schema for inventory batch response."""

    id: int
    batch_number: str
    product_id: int
    product_name: Optional[str]
    location_id: int
    location_name: Optional[str]
    supplier_id: Optional[int]
    purchase_order_id: Optional[int]
    source_batch_id: Optional[int]
    purchase_date: date
    expiry_date: Optional[date]
    warranty_end_date: Optional[date]
    received_quantity: float
    available_quantity: float
    purchase_price: float
    landed_cost_per_unit: float
    cost_allocation_status: str
    performance_score: float
    status: str

    class Config:
        from_attributes = True


class StockLevelResponse(BaseModel):
    product_id: int
    product_name: str
    location_id: int
    location_name: str
    quantity: float
    updated_at: Optional[datetime]


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    from_location_id: Optional[int]
    to_location_id: Optional[int]
    quantity: float
    movement_type: str
    reference_type: Optional[str]
    reference_id: Optional[str]
    notes: Optional[str]
    created_by: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class TransferRequest(BaseModel):
    """Schema for moving stock between locations."""

    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)


@router.get("/batches", response_model=List[BatchResponse])
async def list_batches(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    purchase_order_id: Optional[int] = None,
    status_filter: Optional[str] = Query("active", alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List batches, oldest first. Only active batches unless another status is requested."""
    return await inventory.list_batches(
        db,
        product_id=product_id,
        location_id=location_id,
        supplier_id=supplier_id,
        purchase_order_id=purchase_order_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )


@router.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: int, db: AsyncSession = Depends(get_db)):
    return await inventory.get_batch(db, batch_id)


@router.get("/batches/{batch_id}/costing")
async def get_batch_costing(batch_id: int, db: AsyncSession = Depends(get_db)):
    """Landed cost breakdown of a batch."""
    batch = await inventory.get_batch(db, batch_id)
    return cost_breakdown(batch)


@router.get("/stock", response_model=List[StockLevelResponse])
async def list_stock_levels(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    include_zero: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await inventory.list_stock_levels(
        db, product_id=product_id, location_id=location_id, include_zero=include_zero
    )


@router.get("/movements", response_model=List[StockMovementResponse])
async def list_movements(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await inventory.list_movements(
        db,
        product_id=product_id,
        location_id=location_id,
        movement_type=movement_type,
        reference_id=reference_id,
        skip=skip,
        limit=limit,
    )


@router.post("/transfers", status_code=status.HTTP_201_CREATED)
async def transfer_stock(
    transfer: TransferRequest,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Move stock of a product to another location, oldest batches first.

    Raises:
        400: Source and destination are the same
        404: Product or location not found
        409: Not enough stock at the source
    """
    if transfer.from_location_id == transfer.to_location_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Source and destination locations must differ",
        )

    return await inventory.transfer_stock(
        db,
        product_id=transfer.product_id,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        quantity=transfer.quantity,
        context=context,
        notes=transfer.notes,
    )
