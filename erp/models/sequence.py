"""
Document number sequences, one counter per document type and financial year.
"""

from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp.models.base import Base


class DocumentSequence(Base):
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("document_type", "financial_year", name="uq_document_sequence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    document_type: Mapped[str] = mapped_column(String(20), nullable=False)
    financial_year: Mapped[str] = mapped_column(String(4), nullable=False)
    last_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
