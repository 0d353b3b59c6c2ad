"""
Smart allocation API routes.

Provides:
- Allocation strategies (create, update, list)
- Allocation preview, contextual preview with comparisons, and execution
- Allocation history and analytics
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from erp.api.deps import get_request_context
from erp.database import get_db
from erp.services import smart_allocation
from erp.services.audit import RequestContext

router = APIRouter(prefix="/api/v1/allocation", tags=["allocation"])

ALLOCATION_TYPE_PATTERN = r"^(estimation|manufacturing|sales)$"


# Pydantic schemas
class StrategyCreate(BaseModel):
    """Schema for creating an allocation strategy. Weights must sum to 100."""

    strategy_name: str = Field(..., min_length=1, max_length=100)
    strategy_code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    strategy_type: str = Field(..., pattern=ALLOCATION_TYPE_PATTERN)
    description: Optional[str] = None
    primary_method: str = Field("weighted", max_length=20)
    consider_warranty_expiry: bool = True
    consider_cost_optimization: bool = True
    consider_margin_protection: bool = False
    cost_weight: Decimal = Field(Decimal("0"), ge=0, le=100)
    age_weight: Decimal = Field(Decimal("0"), ge=0, le=100)
    warranty_weight: Decimal = Field(Decimal("0"), ge=0, le=100)
    performance_weight: Decimal = Field(Decimal("0"), ge=0, le=100)
    expiry_weight: Decimal = Field(Decimal("0"), ge=0, le=100)
    prevent_negative_margin: bool = False
    minimum_margin_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    is_default: bool = False
    is_active: bool = True


class StrategyUpdate(BaseModel):
    """Schema for updating an allocation strategy."""

    strategy_name: Optional[str] = Field(None, min_length=1, max_length=100)
    strategy_type: Optional[str] = Field(None, pattern=ALLOCATION_TYPE_PATTERN)
    description: Optional[str] = None
    primary_method: Optional[str] = Field(None, max_length=20)
    consider_warranty_expiry: Optional[bool] = None
    consider_cost_optimization: Optional[bool] = None
    consider_margin_protection: Optional[bool] = None
    cost_weight: Optional[Decimal] = Field(None, ge=0, le=100)
    age_weight: Optional[Decimal] = Field(None, ge=0, le=100)
    warranty_weight: Optional[Decimal] = Field(None, ge=0, le=100)
    performance_weight: Optional[Decimal] = Field(None, ge=0, le=100)
    expiry_weight: Optional[Decimal] = Field(None, ge=0, le=100)
    prevent_negative_margin: Optional[bool] = None
    minimum_margin_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class StrategyResponse(BaseModel):
    """Schema for allocation strategy response."""

    id: int
    strategy_name: str
    strategy_code: str
    strategy_type: str
    description: Optional[str]
    primary_method: str
    consider_warranty_expiry: bool
    consider_cost_optimization: bool
    consider_margin_protection: bool
    cost_weight: float
    age_weight: float
    warranty_weight: float
    performance_weight: float
    expiry_weight: float
    prevent_negative_margin: bool
    minimum_margin_percentage: float
    is_default: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AllocationRequest(BaseModel):
    """Schema for previewing or executing an allocation."""

    allocation_type: str = Field(..., pattern=ALLOCATION_TYPE_PATTERN)
    product_id: int
    location_id: int
    requested_quantity: Decimal = Field(..., gt=0)
    customer_tier: str = Field("standard", max_length=20)
    project_priority: str = Field("normal", max_length=20)
    strategy_code: Optional[str] = None


class AllocationExecuteRequest(AllocationRequest):
    allocation_reference: str = Field(..., min_length=1, max_length=100)
    order_value: Optional[Decimal] = Field(None, ge=0)
    dry_run: bool = False


class AllocationDetailResponse(BaseModel):
    batch_id: int
    allocated_quantity: float
    batch_cost_per_unit: float
    allocation_score: float
    sequence_order: int

    class Config:
        from_attributes = True


class AllocationExecutionResponse(BaseModel):
    """Schema for an executed allocation."""

    id: int
    allocation_reference: str
    allocation_type: str
    product_id: int
    location_id: int
    requested_quantity: float
    allocated_quantity: float
    average_allocated_cost: float
    total_allocated_value: float
    order_value: Optional[float]
    margin_achieved_percentage: Optional[float]
    allocation_efficiency_score: float
    strategy_name: Optional[str]
    customer_tier: str
    project_priority: str
    allocated_by: Optional[int]
    allocated_at: datetime
    batch_details: List[AllocationDetailResponse] = []

    class Config:
        from_attributes = True


@router.get("/strategies", response_model=List[StrategyResponse])
async def list_strategies(
    strategy_type: Optional[str] = Query(None, pattern=ALLOCATION_TYPE_PATTERN),
    is_active: Optional[bool] = True,
    db: AsyncSession = Depends(get_db),
):
    return await smart_allocation.list_strategies(db, strategy_type=strategy_type, is_active=is_active)


@router.post("/strategies", response_model=StrategyResponse, status_code=status.HTTP_201_CREATED)
async def create_strategy(
    strategy: StrategyCreate,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Create an allocation strategy.

    Raises:
        409: Strategy code already exists
        422: Weights do not sum to 100
    """
    return await smart_allocation.create_strategy(db, strategy.model_dump(), context)


@router.patch("/strategies/{strategy_id}", response_model=StrategyResponse)
async def update_strategy(
    strategy_id: int,
    strategy: StrategyUpdate,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    return await smart_allocation.update_strategy(
        db, strategy_id, strategy.model_dump(exclude_unset=True), context
    )


@router.post("/preview")
async def preview_allocation(request: AllocationRequest, db: AsyncSession = Depends(get_db)):
    """Plan an allocation without reserving stock."""
    return await smart_allocation.preview_allocation(
        db,
        allocation_type=request.allocation_type,
        product_id=request.product_id,
        location_id=request.location_id,
        requested_quantity=request.requested_quantity,
        customer_tier=request.customer_tier,
        project_priority=request.project_priority,
        strategy_code=request.strategy_code,
    )


@router.get("/contextual-preview")
async def contextual_preview(
    allocation_type: str = Query(..., pattern=ALLOCATION_TYPE_PATTERN),
    product_id: int = Query(...),
    location_id: int = Query(...),
    requested_quantity: Decimal = Query(..., gt=0),
    customer_tier: str = "standard",
    project_priority: str = "normal",
    db: AsyncSession = Depends(get_db),
):
    """Preview with cost comparisons against the other allocation types and a recommendation."""
    return await smart_allocation.contextual_preview(
        db,
        allocation_type=allocation_type,
        product_id=product_id,
        location_id=location_id,
        requested_quantity=requested_quantity,
        customer_tier=customer_tier,
        project_priority=project_priority,
    )


@router.post("/execute", status_code=status.HTTP_201_CREATED)
async def execute_allocation(
    request: AllocationExecuteRequest,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    Reserve stock from the best ranked batches.

    With ``dry_run`` the preview is returned and nothing is written.

    Raises:
        409: Duplicate allocation reference or no stock to allocate
        422: Strategy minimum margin not met
    """
    if request.dry_run:
        preview = await smart_allocation.preview_allocation(
            db,
            allocation_type=request.allocation_type,
            product_id=request.product_id,
            location_id=request.location_id,
            requested_quantity=request.requested_quantity,
            customer_tier=request.customer_tier,
            project_priority=request.project_priority,
            strategy_code=request.strategy_code,
        )
        return {"dry_run": True, "preview": preview}

    execution = await smart_allocation.execute_allocation(
        db,
        allocation_reference=request.allocation_reference,
        allocation_type=request.allocation_type,
        product_id=request.product_id,
        location_id=request.location_id,
        requested_quantity=request.requested_quantity,
        customer_tier=request.customer_tier,
        project_priority=request.project_priority,
        order_value=request.order_value,
        strategy_code=request.strategy_code,
        context=context,
    )
    return {"dry_run": False, "allocation": AllocationExecutionResponse.model_validate(execution)}


@router.get("/history", response_model=List[AllocationExecutionResponse])
async def allocation_history(
    allocation_type: Optional[str] = Query(None, pattern=ALLOCATION_TYPE_PATTERN),
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_tier: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await smart_allocation.allocation_history(
        db,
        allocation_type=allocation_type,
        product_id=product_id,
        location_id=location_id,
        customer_tier=customer_tier,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )


@router.get("/analytics")
async def allocation_analytics(
    allocation_type: Optional[str] = Query(None, pattern=ALLOCATION_TYPE_PATTERN),
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_tier: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """Allocation summary with breakdowns by type and by strategy."""
    return await smart_allocation.allocation_analytics(
        db,
        allocation_type=allocation_type,
        product_id=product_id,
        location_id=location_id,
        customer_tier=customer_tier,
        date_from=date_from,
        date_to=date_to,
    )
