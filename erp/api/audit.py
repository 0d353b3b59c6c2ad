"""
Audit trail API routes.

Read-only access to the audit log: per record, per user, filtered search and
a summary by table and action.
"""

from datetime import date, datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from erp.database import get_db
from erp.services import audit

router = APIRouter(prefix="/api/v1/audit", tags=["audit"])


class AuditLogResponse(BaseModel):
    """Schema for audit log entry response."""

    id: int
    table_name: str
    record_id: str
    action: str
    reference: Optional[str]
    user_id: Optional[int]
    old_values: Optional[Any]
    new_values: Optional[Any]
    changed_fields: Optional[List[str]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    request_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class UserActivityResponse(BaseModel):
    user_id: int
    total_actions: int
    actions: dict
    tables: dict
    activity: List[AuditLogResponse]


@router.get("/records/{table_name}/{record_id}", response_model=List[AuditLogResponse])
async def get_record_history(
    table_name: str,
    record_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Full change history of one record, newest first."""
    return await audit.search_audit_logs(
        db, table_name=table_name, record_id=record_id, limit=limit, offset=offset
    )


@router.get("/users/{user_id}", response_model=UserActivityResponse)
async def get_user_activity(
    user_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await audit.user_activity(db, user_id, date_from=date_from, date_to=date_to, limit=limit)


@router.get("/logs", response_model=List[AuditLogResponse])
async def search_logs(
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await audit.search_audit_logs(
        db,
        table_name=table_name,
        record_id=record_id,
        action=action,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.get("/summary")
async def get_audit_summary(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """Entry counts by table and action."""
    return await audit.audit_summary(db, date_from=date_from, date_to=date_to)
