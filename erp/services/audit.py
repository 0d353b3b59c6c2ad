"""
Audit trail recording and querying.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from erp.config.settings import get_settings
from erp.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Who made a request and from where."""

    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


SYSTEM_CONTEXT = RequestContext()


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def changed_fields(old_values: Optional[dict], new_values: Optional[dict]) -> list[str]:
    """Return the sorted keys whose values differ between two snapshots."""
    old_values = old_values or {}
    new_values = new_values or {}
    keys = set(old_values) | set(new_values)
    return sorted(k for k in keys if old_values.get(k) != new_values.get(k))


async def record_audit(
    db: AsyncSession,
    table_name: str,
    record_id: Any,
    action: str,
    context: RequestContext = SYSTEM_CONTEXT,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    reference: Optional[str] = None,
) -> Optional[AuditLog]:
    """
    Add an audit entry to the current transaction.

    Nothing is written when audit logging is disabled in settings.
    """
    if not get_settings().enable_audit_logging:
        return None

    old_json = _jsonable(old_values) if old_values is not None else None
    new_json = _jsonable(new_values) if new_values is not None else None

    entry = AuditLog(
        table_name=table_name,
        record_id=str(record_id),
        action=action,
        reference=reference,
        user_id=context.user_id,
        old_values=old_json,
        new_values=new_json,
        changed_fields=changed_fields(old_json, new_json) if old_json is not None else None,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        request_id=context.request_id,
    )
    db.add(entry)
    logger.debug(f"Audit {action} on {table_name}#{record_id} by user {context.user_id}")
    return entry


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, time.max)


async def search_audit_logs(
    db: AsyncSession,
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    """Filtered audit entries, newest first."""
    query = select(AuditLog)

    if table_name:
        query = query.where(AuditLog.table_name == table_name)
    if record_id is not None:
        query = query.where(AuditLog.record_id == str(record_id))
    if action:
        query = query.where(AuditLog.action == action)
    if user_id is not None:
        query = query.where(AuditLog.user_id == user_id)
    if date_from:
        query = query.where(AuditLog.created_at >= _day_start(date_from))
    if date_to:
        query = query.where(AuditLog.created_at <= _day_end(date_to))

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def user_activity(
    db: AsyncSession,
    user_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
) -> dict:
    """
    Recent entries for a user plus a count per action and per table.

    Counts cover every entry in the date range, not only the ``limit`` most
    recent ones returned in ``activity``.
    """
    entries = await search_audit_logs(
        db, user_id=user_id, date_from=date_from, date_to=date_to, limit=limit
    )

    query = (
        select(AuditLog.action, AuditLog.table_name, func.count(AuditLog.id))
        .where(AuditLog.user_id == user_id)
        .group_by(AuditLog.action, AuditLog.table_name)
    )
    if date_from:
        query = query.where(AuditLog.created_at >= _day_start(date_from))
    if date_to:
        query = query.where(AuditLog.created_at <= _day_end(date_to))
    result = await db.execute(query)

    actions: Counter = Counter()
    tables: Counter = Counter()
    for action, table_name, count in result.all():
        actions[action] += count
        tables[table_name] += count

    return {
        "user_id": user_id,
        "total_actions": sum(actions.values()),
        "actions": dict(actions),
        "tables": dict(tables),
        "activity": entries,
    }


async def audit_summary(
    db: AsyncSession,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict:
    """Entry counts grouped by table and action."""
    query = select(AuditLog.table_name, AuditLog.action, func.count(AuditLog.id)).group_by(
        AuditLog.table_name, AuditLog.action
    )
    if date_from:
        query = query.where(AuditLog.created_at >= _day_start(date_from))
    if date_to:
        query = query.where(AuditLog.created_at <= _day_end(date_to))

    result = await db.execute(query)

    by_table: dict[str, dict[str, int]] = {}
    total = 0
    for table_name, action, count in result.all():
        by_table.setdefault(table_name, {})[action] = count
        total += count

    return {"total_entries": total, "by_table": by_table}
