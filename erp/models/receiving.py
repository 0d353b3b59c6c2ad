"""
Goods received note (GRN) models.

Status lifecycle:
    received -> verified -> approved
    received | verified -> cancelled
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Date, ForeignKey, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp.models.base import Base, Money, Quantity, UnitCost, _utc_now


class GoodsReceivedNote(Base):
    """GRN header: one delivery received against a purchase order."""

    __tablename__ = "goods_received_notes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    grn_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    grn_date: Mapped[date] = mapped_column(Date, nullable=False)
    lr_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="received", index=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    # Warnings raised by PO-GRN validation when the GRN was accepted
    validation_warnings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    received_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    verified_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now, nullable=False
    )

    items: Mapped[list["GRNItem"]] = relationship(
        "GRNItem",
        back_populates="grn",
        cascade="all, delete-orphan",
        order_by="GRNItem.id",
    )

    def __repr__(self) -> str:
        return f"<GoodsReceivedNote(id={self.id}, grn_number={self.grn_number}, status={self.status})>"


class GRNItem(Base):
    """One received product line on a GRN."""

    __tablename__ = "grn_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    grn_id: Mapped[int] = mapped_column(
        ForeignKey("goods_received_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )

    ordered_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"))
    received_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    accepted_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    rejected_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)

    serial_numbers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    warranty_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    warranty_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    grn: Mapped["GoodsReceivedNote"] = relationship("GoodsReceivedNote", back_populates="items")
