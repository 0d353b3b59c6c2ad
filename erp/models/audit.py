"""
Audit logging model for compliance.

Tracks every state change made through the API on procurement and
inventory records.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from erp.models.base import Base, _utc_now


class AuditLog(Base):
    """
    Audit log entry.

    Tracks:
    - Document lifecycle events (create, approve, verify, cancel)
    - Inventory changes (allocation, transfer, cost allocation)
    - Configuration changes (allocation strategies)
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # What changed
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Human readable document reference (PO/GRN number, allocation reference, ...)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Who changed it
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Change payload
    old_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    changed_fields: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 support
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, table={self.table_name}, record={self.record_id}, action={self.action})>"
