"""
Purchase order API routes.

Provides:
- Purchase order create, list, read, approve and cancel
- Receipt completion status against GRNs
- Landed cost header and cost allocation onto received batches
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from erp.api.deps import get_request_context
from erp.database import get_db
from erp.services import landed_cost, purchase_orders
from erp.services.audit import RequestContext
from erp.services.po_grn_validation import po_completion_status

router = APIRouter(prefix="/api/v1/purchase-orders", tags=["purchase-orders"])


# Pydantic schemas
class PurchaseOrderItemCreate(BaseModel):
    """Schema for one line of a new purchase order."""

    product_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class PurchaseOrderCreate(BaseModel):
    """Schema for creating a purchase order."""

    supplier_id: int
    items: List[PurchaseOrderItemCreate] = Field(..., min_length=1)
    order_date: Optional[date] = None
    delivery_date: Optional[date] = None
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    notes: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PurchaseOrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str]
    quantity: float
    unit: Optional[str]
    unit_price: float
    tax_percentage: float
    amount: float
    tax_amount: float

    class Config:
        from_attributes = True


class PurchaseOrderResponse(BaseModel):
    """Schema for purchase order response."""

    id: int
    po_number: str
    supplier_id: int
    status: str
    order_date: date
    delivery_date: Optional[date]
    tax_type: str
    currency: str
    total_amount: float
    total_tax: float
    grand_total: float
    notes: Optional[str]
    created_by: Optional[int]
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    created_at: datetime
    items: List[PurchaseOrderItemResponse] = []

    class Config:
        from_attributes = True


class PurchaseOrderCostUpdate(BaseModel):
    """Schema for the landed cost header of a purchase order."""

    freight_cost: Decimal = Field(Decimal("0"), ge=0)
    insurance_cost: Decimal = Field(Decimal("0"), ge=0)
    customs_duty: Decimal = Field(Decimal("0"), ge=0)
    handling_charges: Decimal = Field(Decimal("0"), ge=0)
    other_charges: Decimal = Field(Decimal("0"), ge=0)
    allocation_method: str = Field("by_value", pattern=r"^(by_value|by_quantity|by_weight|equal)$")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    exchange_rate_date: Optional[date] = None


class PurchaseOrderCostResponse(BaseModel):
    id: int
    purchase_order_id: int
    freight_cost: float
    insurance_cost: float
    customs_duty: float
    handling_charges: float
    other_charges: float
    total_additional_costs: float
    allocation_method: str
    currency: str
    exchange_rate: float
    exchange_rate_date: Optional[date]
    allocated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CostAllocationRequest(BaseModel):
    allocation_method: Optional[str] = Field(None, pattern=r"^(by_value|by_quantity|by_weight|equal)$")


class CostAllocationResponse(BaseModel):
    purchase_order_id: int
    allocation_method: str
    batches: List[dict]


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    po: PurchaseOrderCreate,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Create a draft purchase order.

    Line amounts and tax are computed server side; the PO number is allocated
    from the purchase order sequence of the current financial year.

    Raises:
        404: Supplier or product not found
        422: Inactive supplier or duplicate product lines
    """
    data = po.model_dump(exclude={"items"})
    items = [item.model_dump() for item in po.items]
    return await purchase_orders.create_purchase_order(
        db, supplier_id=data.pop("supplier_id"), items=items, context=context, **data
    )


@router.get("", response_model=List[PurchaseOrderResponse])
async def list_purchase_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    supplier_id: Optional[int] = None,
    include_cancelled: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List purchase orders, newest first. Cancelled POs are hidden unless requested."""
    return await purchase_orders.list_purchase_orders(
        db,
        status=status_filter,
        supplier_id=supplier_id,
        include_cancelled=include_cancelled,
        skip=skip,
        limit=limit,
    )


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(po_id: int, db: AsyncSession = Depends(get_db)):
    return await purchase_orders.get_purchase_order(db, po_id)


@router.post("/{po_id}/approve", response_model=PurchaseOrderResponse)
async def approve_purchase_order(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Approve a draft purchase order so goods can be received against it."""
    return await purchase_orders.approve_purchase_order(db, po_id, context)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order(
    po_id: int,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Cancel a draft or approved purchase order that has no active GRNs."""
    return await purchase_orders.cancel_purchase_order(db, po_id, context)


@router.get("/{po_id}/completion")
async def get_completion_status(po_id: int, db: AsyncSession = Depends(get_db)):
    """Ordered vs received quantities per line, ignoring cancelled GRNs."""
    await purchase_orders.get_purchase_order(db, po_id)
    return await po_completion_status(db, po_id)


@router.put("/{po_id}/costs", response_model=PurchaseOrderCostResponse)
async def set_purchase_order_costs(
    po_id: int,
    costs: PurchaseOrderCostUpdate,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Create or replace the freight, insurance, duty and other charges of a PO."""
    return await landed_cost.upsert_purchase_order_costs(db, po_id, costs.model_dump(), context)


@router.get("/{po_id}/costs", response_model=PurchaseOrderCostResponse)
async def get_purchase_order_costs(po_id: int, db: AsyncSession = Depends(get_db)):
    return await landed_cost.get_purchase_order_costs(db, po_id)


@router.post("/{po_id}/costs/allocate", response_model=CostAllocationResponse)
async def allocate_purchase_order_costs(
    po_id: int,
    request: Optional[CostAllocationRequest] = None,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Distribute the PO's additional costs over its received batches and
    recompute each batch's landed cost per unit.

    Raises:
        404: No cost header recorded for the PO
        409: No received batches
        422: Allocation basis is zero
    """
    method = request.allocation_method if request else None
    batches = await landed_cost.allocate_purchase_order_costs(db, po_id, method, context)
    costs = await landed_cost.get_purchase_order_costs(db, po_id)
    return {
        "purchase_order_id": po_id,
        "allocation_method": costs.allocation_method,
        "batches": [landed_cost.cost_breakdown(batch) for batch in batches],
    }
