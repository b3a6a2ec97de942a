"""Reviewer and admin endpoints for the approval workflow."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin, require_reviewer
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.progress_service.models import AuditAction
from services.progress_service.schemas import (
    AuditLogListResponse,
    AwardSpecialtyRequest,
    DeleteHistoryResponse,
    ForkItemRequest,
    ItemResponse,
    PendingQueueResponse,
    ProgressResponse,
    RejectRequest,
    RetireForkRequest,
    RevokeRequest,
    SpecialtyCompletionResponse,
)
from services.progress_service.services import approval, awards, progress_store, scope
from services.progress_service.services.audit import list_audit_logs
from services.progress_service.services.errors import NotAuthorized
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/progress", tags=["admin-progress"])


# ---------------------------------------------------------------------------
# Review queue
# ---------------------------------------------------------------------------


@router.get("/pending", response_model=PendingQueueResponse)
async def pending_queue(
    club_id: Optional[uuid.UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    reviewer: AuthUser = Depends(require_reviewer),
    db: AsyncSession = Depends(get_async_db),
):
    """Pending records and specialties waiting for approval."""
    records, waiting = await progress_store.list_pending(
        db, actor=reviewer, club_id=club_id, skip=skip, limit=limit
    )
    return PendingQueueResponse(records=records, waiting_specialties=waiting)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/{member_id}/{item_id}/approve", response_model=ProgressResponse)
async def approve_progress(
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    reviewer: AuthUser = Depends(require_reviewer),
    db: AsyncSession = Depends(get_async_db),
):
    return await approval.approve(
        db, actor=reviewer, member_id=member_id, item_id=item_id
    )


@router.post("/{member_id}/{item_id}/reject", response_model=ProgressResponse)
async def reject_progress(
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    body: RejectRequest,
    reviewer: AuthUser = Depends(require_reviewer),
    db: AsyncSession = Depends(get_async_db),
):
    return await approval.reject(
        db, actor=reviewer, member_id=member_id, item_id=item_id, reason=body.reason
    )


@router.post("/{member_id}/{item_id}/revoke", response_model=ProgressResponse)
async def revoke_progress(
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    body: RevokeRequest,
    reviewer: AuthUser = Depends(require_reviewer),
    db: AsyncSession = Depends(get_async_db),
):
    """Send an approved record back to PENDING with an inverse ledger entry."""
    return await approval.revoke(
        db, actor=reviewer, member_id=member_id, item_id=item_id, reason=body.reason
    )


@router.delete("/{member_id}/{item_id}", response_model=DeleteHistoryResponse)
async def delete_progress_history(
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    reason: str = Query(..., min_length=5),
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Hard-delete a record and its ledger entries."""
    result = await approval.delete_history(
        db, actor=admin, member_id=member_id, item_id=item_id, reason=reason
    )
    return DeleteHistoryResponse(**result)


@router.post(
    "/specialties/{specialty_id}/award", response_model=SpecialtyCompletionResponse
)
async def award_specialty_directly(
    specialty_id: uuid.UUID,
    body: AwardSpecialtyRequest,
    reviewer: AuthUser = Depends(require_reviewer),
    db: AsyncSession = Depends(get_async_db),
):
    """Complete a specialty without per-requirement approvals (audited)."""
    return await awards.award_specialty(
        db,
        actor=reviewer,
        member_id=body.member_id,
        specialty_id=specialty_id,
        reason=body.reason,
    )


# ---------------------------------------------------------------------------
# Club forks
# ---------------------------------------------------------------------------


@router.post("/items/{item_id}/fork", response_model=ItemResponse)
async def fork_item(
    item_id: uuid.UUID,
    body: ForkItemRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a club-specific version of a requirement."""
    if not admin.is_cross_club and admin.club_id and admin.club_id != body.club_id:
        raise NotAuthorized("Cannot fork items for another club")
    return await scope.fork_item_for_club(
        db,
        item_id=item_id,
        club_id=body.club_id,
        performed_by=admin.user_id,
        description=body.description,
        point_value=body.point_value,
    )


@router.post("/items/{item_id}/retire", response_model=ItemResponse)
async def retire_fork(
    item_id: uuid.UUID,
    body: RetireForkRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Retire a club fork; members fall back to the original requirement."""
    return await scope.retire_fork(
        db, fork_id=item_id, performed_by=admin.user_id, reason=body.reason
    )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def get_audit_logs(
    member_id: Optional[uuid.UUID] = None,
    action: Optional[AuditAction] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    logs, total = await list_audit_logs(
        db, member_id=member_id, action=action, skip=skip, limit=limit
    )
    return AuditLogListResponse(logs=logs, total=total, skip=skip, limit=limit)
