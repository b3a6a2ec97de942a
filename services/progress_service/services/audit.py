"""Audit trail for administrative overrides."""

import uuid
from typing import Optional

from services.progress_service.models import AuditAction, ProgressAuditLog
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession


def record_audit(
    db: AsyncSession,
    *,
    action: AuditAction,
    performed_by: str,
    reason: str,
    member_id: Optional[uuid.UUID] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
) -> ProgressAuditLog:
    audit = ProgressAuditLog(
        action=action,
        performed_by=performed_by,
        member_id=member_id,
        target_type=target_type,
        target_id=target_id,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )
    db.add(audit)
    return audit


async def list_audit_logs(
    db: AsyncSession,
    *,
    member_id: Optional[uuid.UUID] = None,
    action: Optional[AuditAction] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[ProgressAuditLog], int]:
    query = select(ProgressAuditLog)
    count_query = select(func.count()).select_from(ProgressAuditLog)
    if member_id:
        query = query.where(ProgressAuditLog.member_id == member_id)
        count_query = count_query.where(ProgressAuditLog.member_id == member_id)
    if action:
        query = query.where(ProgressAuditLog.action == action)
        count_query = count_query.where(ProgressAuditLog.action == action)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(desc(ProgressAuditLog.created_at)).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total
