"""
Inventory models: batches, stock levels and stock movements.

Every accepted GRN line becomes an ``InventoryBatch`` carrying its own
purchase price, landed cost components and dates. ``StockLevel`` holds the
per product/location total; ``StockMovement`` is the append-only ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp.models.base import Base, Money, Percent, Quantity, UnitCost, _utc_now

ZERO = Decimal("0")


class InventoryBatch(Base):
    """
    A received quantity of one product at one location.

    Status: active -> depleted (fully consumed) or cancelled (GRN cancelled).
    """

    __tablename__ = "inventory_batches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    batch_number: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    supplier_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    purchase_order_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    grn_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("grn_items.id", ondelete="SET NULL"), nullable=True
    )
    source_batch_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("inventory_batches.id", ondelete="SET NULL"), nullable=True
    )

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    warranty_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    received_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    available_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    # Cost components (totals for the batch, base currency)
    purchase_price: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    freight_cost: Mapped[Decimal] = mapped_column(Money, default=ZERO)
    insurance_cost: Mapped[Decimal] = mapped_column(Money, default=ZERO)
    customs_duty: Mapped[Decimal] = mapped_column(Money, default=ZERO)
    handling_charges: Mapped[Decimal] = mapped_column(Money, default=ZERO)
    other_charges: Mapped[Decimal] = mapped_column(Money, default=ZERO)
    landed_cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    cost_allocation_status: Mapped[str] = mapped_column(String(20), default="pending")
    cost_allocated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # 0-100, used by the sales allocation profile
    performance_score: Mapped[Decimal] = mapped_column(Percent, default=Decimal("50"))

    status: Mapped[str] = mapped_column(String(20), default="active", index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", lazy="joined")
    location: Mapped["Location"] = relationship("Location", lazy="joined")
    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier", lazy="joined")

    def __repr__(self) -> str:
        return f"<InventoryBatch(id={self.id}, batch_number={self.batch_number}, available={self.available_quantity})>"

    @property
    def total_additional_costs(self) -> Decimal:
        return (
            (self.freight_cost or ZERO)
            + (self.insurance_cost or ZERO)
            + (self.customs_duty or ZERO)
            + (self.handling_charges or ZERO)
            + (self.other_charges or ZERO)
        )

    @property
    def product_name(self) -> Optional[str]:
        return self.product.name if self.product is not None else None

    @property
    def location_name(self) -> Optional[str]:
        return self.location.name if self.location is not None else None

    @property
    def supplier_name(self) -> Optional[str]:
        return self.supplier.company_name if self.supplier is not None else None

    @property
    def is_untouched(self) -> bool:
        """True while nothing has been drawn from the batch."""
        return self.available_quantity == self.received_quantity


class StockLevel(Base):
    """On-hand quantity of a product at a location."""

    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, default=ZERO)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )


class StockMovement(Base):
    """
    Ledger entry for a change in stock.

    movement_type: in, out, transfer
    reference_type: GRN, GRN_CANCEL, ALLOCATION, TRANSFER
    """

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    from_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    to_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)
