"""
SQLAlchemy declarative base for ERP models.
"""

from datetime import datetime, timezone

from sqlalchemy import Numeric
from sqlalchemy.orm import DeclarativeBase


def _utc_now() -> datetime:
    """Return current UTC time (naive, for DateTime columns without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Column types shared by every money/quantity column
Money = Numeric(14, 2)
UnitCost = Numeric(14, 4)
Quantity = Numeric(14, 3)
Percent = Numeric(7, 2)


class Base(DeclarativeBase):
    """
    Base class for all ERP SQLAlchemy models.

    Primary keys are integer identities; money and quantity columns are
    ``Numeric`` and come back as ``Decimal``.
    """

    pass
