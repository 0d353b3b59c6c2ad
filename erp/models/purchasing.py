"""
Purchase order models.

A purchase order (PO) lists the products ordered from one supplier. Goods
are received against it through GRNs; landed costs (freight, duty, ...) are
recorded in ``PurchaseOrderCost`` and allocated onto the received batches.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Date, ForeignKey, Text, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp.models.base import Base, Money, Percent, Quantity, UnitCost, _utc_now


class PurchaseOrder(Base):
    """
    Purchase order header.

    Status lifecycle:
        draft -> approved -> partially_received -> completed
        draft | approved -> cancelled
    """

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    po_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(String(30), default="draft", index=True)

    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    billing_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tax_type: Mapped[str] = mapped_column(String(20), default="CGST+SGST")
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )

    # Relationships
    supplier: Mapped["Supplier"] = relationship("Supplier")
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )
    costs: Mapped[Optional["PurchaseOrderCost"]] = relationship(
        "PurchaseOrderCost",
        back_populates="purchase_order",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder(id={self.id}, po_number={self.po_number}, status={self.status})>"


class PurchaseOrderItem(Base):
    """One product line on a purchase order."""

    __tablename__ = "purchase_order_items"
    __table_args__ = (
        UniqueConstraint("purchase_order_id", "product_id", name="uq_po_item_product"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="nos")
    unit_price: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    tax_percentage: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="items")
    product: Mapped["Product"] = relationship("Product", lazy="joined")

    @property
    def product_name(self) -> Optional[str]:
        return self.product.name if self.product is not None else None


class PurchaseOrderCost(Base):
    """
    Additional (landed) costs incurred on a purchase order.

    Amounts are in ``currency``; ``exchange_rate`` converts them into the
    base currency when they are allocated onto batches.
    """

    __tablename__ = "purchase_order_costs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    freight_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    insurance_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    customs_duty: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    handling_charges: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    allocation_method: Mapped[str] = mapped_column(String(20), default="by_value")
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    exchange_rate: Mapped[Decimal] = mapped_column(UnitCost, default=Decimal("1"))
    exchange_rate_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    allocated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="costs")

    @property
    def total_additional_costs(self) -> Decimal:
        return (
            (self.freight_cost or Decimal("0"))
            + (self.insurance_cost or Decimal("0"))
            + (self.customs_duty or Decimal("0"))
            + (self.handling_charges or Decimal("0"))
            + (self.other_charges or Decimal("0"))
        )
