"""
Document number generation.

Numbers look like ``VESPL/PO/2526/001``: company prefix, document type,
financial year and a zero-padded sequence that restarts every financial year.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp.config.settings import get_settings
from erp.models import DocumentSequence

logger = logging.getLogger(__name__)

PURCHASE_ORDER = "PO"
GOODS_RECEIVED_NOTE = "GRN"
STOCK_TRANSFER = "TRF"


def current_financial_year(today: Optional[date] = None, start_month: int = 4) -> str:
    """
    Return the financial year code for ``today``.

    FY 2025-26 (April 2025 to March 2026) is ``"2526"``.
    """
    today = today or date.today()
    start_year = today.year - 1 if today.month < start_month else today.year
    end_year = start_year + 1
    return f"{start_year % 100:02d}{end_year % 100:02d}"


async def _lock_sequence(db: AsyncSession, document_type: str, financial_year: str) -> Optional[DocumentSequence]:
    result = await db.execute(
        select(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.financial_year == financial_year,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _create_sequence(db: AsyncSession, document_type: str, financial_year: str) -> DocumentSequence:
    """
    Insert the counter row for a new document type and year.

    A concurrent transaction may insert the same row first; the unique
    constraint then fails only the savepoint and the winner's row is locked
    and used instead.
    """
    try:
        async with db.begin_nested():
            sequence = DocumentSequence(
                document_type=document_type,
                financial_year=financial_year,
                last_sequence=0,
            )
            db.add(sequence)
        return sequence
    except IntegrityError:
        logger.warning(f"Concurrent insert of {document_type} sequence for {financial_year}; reusing existing row")
        sequence = await _lock_sequence(db, document_type, financial_year)
        if sequence is None:
            raise
        return sequence


async def next_document_number(
    db: AsyncSession,
    document_type: str,
    today: Optional[date] = None,
) -> str:
    """
    Reserve the next number for ``document_type``.

    The sequence row is locked and incremented inside the caller's
    transaction, so the number is only consumed if the caller commits.
    """
    settings = get_settings()
    financial_year = current_financial_year(today, settings.financial_year_start_month)

    sequence = await _lock_sequence(db, document_type, financial_year)
    if sequence is None:
        sequence = await _create_sequence(db, document_type, financial_year)

    sequence.last_sequence += 1
    await db.flush()

    return f"{settings.company_document_prefix}/{document_type}/{financial_year}/{sequence.last_sequence:03d}"
