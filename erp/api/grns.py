"""
Goods received note API routes.

Provides:
- GRN creation with PO-GRN validation and inventory booking
- Validation without booking (for new GRNs and for edits of existing ones)
- Verify, approve and cancel transitions
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from erp.api.deps import get_request_context
from erp.database import get_db
from erp.services import grn as grn_service
from erp.services.audit import RequestContext
from erp.services.po_grn_validation import validate_grn_against_po, validate_grn_update

router = APIRouter(prefix="/api/v1/grns", tags=["grns"])


# Pydantic schemas
class GRNItemCreate(BaseModel):
    """Schema for one received line."""

    product_id: int
    location_id: int
    received_quantity: Decimal
    accepted_quantity: Optional[Decimal] = Field(None, ge=0)
    rejected_quantity: Decimal = Field(Decimal("0"), ge=0)
    unit_price: Decimal = Field(..., ge=0)
    serial_numbers: Optional[str] = None
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class GRNValidateRequest(BaseModel):
    """Schema for validating receipt lines against a purchase order."""

    purchase_order_id: int
    supplier_id: int
    items: List[GRNItemCreate] = Field(..., min_length=1)


class GRNCreate(GRNValidateRequest):
    """Schema for creating a GRN."""

    grn_date: Optional[date] = None
    lr_number: Optional[str] = Field(None, max_length=100)
    supplier_invoice_number: Optional[str] = Field(None, max_length=100)
    supplier_invoice_date: Optional[date] = None
    notes: Optional[str] = None


class GRNUpdateValidateRequest(BaseModel):
    items: List[GRNItemCreate] = Field(..., min_length=1)


class GRNItemResponse(BaseModel):
    id: int
    product_id: int
    location_id: int
    ordered_quantity: float
    received_quantity: float
    accepted_quantity: float
    rejected_quantity: float
    unit_price: float
    serial_numbers: Optional[str]
    warranty_end_date: Optional[date]
    expiry_date: Optional[date]

    class Config:
        from_attributes = True


class GRNResponse(BaseModel):
    """Schema for GRN response."""

    id: int
    grn_number: str
    purchase_order_id: int
    supplier_id: int
    grn_date: date
    status: str
    total_amount: float
    lr_number: Optional[str]
    supplier_invoice_number: Optional[str]
    validation_warnings: Optional[list]
    received_by: Optional[int]
    verified_by: Optional[int]
    approved_by: Optional[int]
    created_at: datetime
    items: List[GRNItemResponse] = []

    class Config:
        from_attributes = True


class GRNCreateResponse(BaseModel):
    grn: GRNResponse
    validation: dict


@router.post("/validate")
async def validate_grn(request: GRNValidateRequest, db: AsyncSession = Depends(get_db)):
    """
    Check receipt lines against their purchase order without booking anything.

    Always returns 200; ``is_valid`` and ``errors`` carry the outcome.
    """
    return await validate_grn_against_po(
        db,
        purchase_order_id=request.purchase_order_id,
        supplier_id=request.supplier_id,
        items=[item.model_dump() for item in request.items],
    )


@router.post("", response_model=GRNCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_grn(
    grn: GRNCreate,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Receive goods against a purchase order.

    Accepted quantities become inventory batches at the given locations and
    the PO moves to partially_received or completed.

    Raises:
        422: Validation failed (body carries the full validation result)
    """
    header = grn.model_dump(exclude={"purchase_order_id", "supplier_id", "items"})
    created, validation = await grn_service.create_grn(
        db,
        purchase_order_id=grn.purchase_order_id,
        supplier_id=grn.supplier_id,
        items=[item.model_dump() for item in grn.items],
        context=context,
        **header,
    )
    return {"grn": created, "validation": validation}


@router.get("", response_model=List[GRNResponse])
async def list_grns(
    status_filter: Optional[str] = Query(None, alias="status"),
    purchase_order_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await grn_service.list_grns(
        db,
        status=status_filter,
        purchase_order_id=purchase_order_id,
        supplier_id=supplier_id,
        skip=skip,
        limit=limit,
    )


@router.get("/{grn_id}", response_model=GRNResponse)
async def get_grn(grn_id: int, db: AsyncSession = Depends(get_db)):
    return await grn_service.get_grn(db, grn_id)


@router.post("/{grn_id}/validate-update")
async def validate_grn_changes(
    grn_id: int,
    request: GRNUpdateValidateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Validate replacement lines for a GRN, excluding its own current receipts."""
    return await validate_grn_update(db, grn_id, [item.model_dump() for item in request.items])


@router.post("/{grn_id}/verify", response_model=GRNResponse)
async def verify_grn(
    grn_id: int,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    return await grn_service.verify_grn(db, grn_id, context)


@router.post("/{grn_id}/approve", response_model=GRNResponse)
async def approve_grn(
    grn_id: int,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    return await grn_service.approve_grn(db, grn_id, context)


@router.post("/{grn_id}/cancel", response_model=GRNResponse)
async def cancel_grn(
    grn_id: int,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Cancel a GRN and reverse its stock.

    Raises:
        409: GRN already approved or cancelled, or its stock has been used
    """
    return await grn_service.cancel_grn(db, grn_id, context)
