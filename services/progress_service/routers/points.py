"""Points ledger endpoints: balances, history and admin corrections."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.progress_service.models import LedgerSource
from services.progress_service.schemas import (
    AdjustPointsRequest,
    BalanceResponse,
    BulkAwardRequest,
    BulkAwardResponse,
    BulkAwardResultItem,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    RecomputeResponse,
    ResetBalanceRequest,
    ResetBalanceResponse,
)
from services.progress_service.services import awards, ledger_ops
from services.progress_service.services.permissions import (
    ensure_can_view,
    ensure_privileged,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/points", tags=["points"])
admin_router = APIRouter(prefix="/admin/points", tags=["admin-points"])


# ---------------------------------------------------------------------------
# Member-facing
# ---------------------------------------------------------------------------


@router.get("/members/{member_id}/balance", response_model=BalanceResponse)
async def get_balance(
    member_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    member = await ledger_ops.get_member(db, member_id)
    ensure_can_view(current_user, member)
    return BalanceResponse(member_id=member.id, balance=member.points_balance)


@router.get("/members/{member_id}/history", response_model=LedgerHistoryResponse)
async def get_history(
    member_id: uuid.UUID,
    source: Optional[LedgerSource] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Ledger entries, newest first."""
    member = await ledger_ops.get_member(db, member_id)
    ensure_can_view(current_user, member)
    entries, total = await ledger_ops.history(
        db,
        member_id=member.id,
        source=source,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return LedgerHistoryResponse(entries=entries, total=total, skip=skip, limit=limit)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.post("/members/{member_id}/adjust", response_model=LedgerEntryResponse)
async def adjust_points(
    member_id: uuid.UUID,
    body: AdjustPointsRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Manual credit/debit recorded as MANUAL_ADJUSTMENT."""
    member = await ledger_ops.get_member(db, member_id)
    ensure_privileged(admin, member)
    return await ledger_ops.adjust(
        db,
        member_id=member.id,
        amount=body.amount,
        reason=body.reason,
        performed_by=admin.user_id,
        idempotency_key=body.idempotency_key,
    )


@admin_router.post("/members/{member_id}/reset", response_model=ResetBalanceResponse)
async def reset_points(
    member_id: uuid.UUID,
    body: ResetBalanceRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Zero the balance without a ledger entry (audited)."""
    member = await ledger_ops.get_member(db, member_id)
    ensure_privileged(admin, member)
    member = await ledger_ops.reset_balance(
        db, member_id=member.id, performed_by=admin.user_id, reason=body.reason
    )
    return ResetBalanceResponse(
        member_id=member.id,
        balance=member.points_balance,
        points_epoch=member.points_epoch,
    )


@admin_router.post("/members/{member_id}/recompute", response_model=RecomputeResponse)
async def recompute_points(
    member_id: uuid.UUID,
    repair: bool = True,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Reconcile the cached balance with the ledger sum."""
    member = await ledger_ops.get_member(db, member_id)
    ensure_privileged(admin, member)
    result = await ledger_ops.recompute(
        db, member_id=member.id, performed_by=admin.user_id, repair=repair
    )
    return RecomputeResponse(
        member_id=result.member_id,
        cached_balance=result.cached_balance,
        ledger_balance=result.ledger_balance,
        drift=result.drift,
        repaired=result.repaired,
    )


@admin_router.post("/bulk-award", response_model=BulkAwardResponse)
async def bulk_award_points(
    body: BulkAwardRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Award points to many members; failures are reported per member."""
    results = await awards.bulk_award(
        db,
        actor=admin,
        amount=body.amount,
        reason=body.reason,
        member_ids=body.member_ids,
        unit_id=body.unit_id,
        source=body.source,
        reference_id=body.reference_id,
    )
    items = [BulkAwardResultItem.model_validate(r) for r in results]
    awarded = sum(1 for r in items if r.success)
    return BulkAwardResponse(results=items, awarded=awarded, failed=len(items) - awarded)
