"""
Smart allocation models.

Strategies hold the scoring weights used to rank batches; every executed
allocation is stored with the batches it drew from.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp.models.base import Base, Money, Percent, Quantity, UnitCost, _utc_now


class AllocationStrategy(Base):
    """
    Weighted scoring strategy for batch allocation.

    The five weights sum to 100. ``consider_margin_protection`` makes the
    cost weight favour expensive batches instead of cheap ones.
    """

    __tablename__ = "allocation_strategies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    strategy_name: Mapped[str] = mapped_column(String(100), nullable=False)
    strategy_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    strategy_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    primary_method: Mapped[str] = mapped_column(String(20), default="weighted")

    consider_warranty_expiry: Mapped[bool] = mapped_column(Boolean, default=True)
    consider_cost_optimization: Mapped[bool] = mapped_column(Boolean, default=True)
    consider_margin_protection: Mapped[bool] = mapped_column(Boolean, default=False)

    cost_weight: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    age_weight: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    warranty_weight: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    performance_weight: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    expiry_weight: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))

    prevent_negative_margin: Mapped[bool] = mapped_column(Boolean, default=False)
    minimum_margin_percentage: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))

    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AllocationStrategy(code={self.strategy_code}, type={self.strategy_type})>"


class AllocationExecution(Base):
    """An executed allocation that reserved inventory from one or more batches."""

    __tablename__ = "allocation_executions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    allocation_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    allocation_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    requested_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    allocated_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    average_allocated_cost: Mapped[Decimal] = mapped_column(UnitCost, default=Decimal("0"))
    total_allocated_value: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    order_value: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    margin_achieved_percentage: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    # Fulfillment percentage of the request
    allocation_efficiency_score: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))

    strategy_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_tier: Mapped[str] = mapped_column(String(20), default="standard")
    project_priority: Mapped[str] = mapped_column(String(20), default="normal")

    allocated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allocated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)

    product: Mapped["Product"] = relationship("Product", lazy="joined")
    location: Mapped["Location"] = relationship("Location", lazy="joined")
    batch_details: Mapped[list["AllocationBatchDetail"]] = relationship(
        "AllocationBatchDetail",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="AllocationBatchDetail.sequence_order",
    )


class AllocationBatchDetail(Base):
    """Quantity drawn from one batch by an allocation."""

    __tablename__ = "allocation_batch_details"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    allocation_execution_id: Mapped[int] = mapped_column(
        ForeignKey("allocation_executions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_batches.id", ondelete="RESTRICT"), nullable=False
    )

    allocated_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    batch_cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    allocation_score: Mapped[Decimal] = mapped_column(UnitCost, default=Decimal("0"))
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    execution: Mapped["AllocationExecution"] = relationship(
        "AllocationExecution", back_populates="batch_details"
    )
