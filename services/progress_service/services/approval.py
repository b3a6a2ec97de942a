"""Approval state machine for progress records.

    NOT_STARTED -> PENDING          submit
    PENDING     -> APPROVED         approve   (+item value on the ledger)
    PENDING     -> REJECTED         reject    (no ledger effect)
    REJECTED    -> PENDING          resubmit
    APPROVED    -> PENDING          revoke    (exact inverse entry)

Every transition locks the member row, then the progress row, and commits
the status change, ledger entries and completion flips together.
"""

import uuid
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.progress_service.models import (
    AssignableItem,
    AuditAction,
    ItemKind,
    LedgerSource,
    Member,
    PointsLedgerEntry,
    ProgressEventType,
    ProgressRecord,
    ProgressStatus,
)
from services.progress_service.services import completion, ledger_ops
from services.progress_service.services.audit import record_audit
from services.progress_service.services.errors import (
    AlreadyApproved,
    InvalidAnswer,
    InvalidTransition,
    NotFound,
)
from services.progress_service.services.events import record_event
from services.progress_service.services.permissions import (
    ensure_privileged,
    ensure_reviewer,
)
from services.progress_service.services.progress_store import (
    lock_record,
    serialized_write,
)
from services.progress_service.services.scope import resolve_effective_item
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

LEDGER_SOURCE_BY_KIND = {
    ItemKind.CLASS_REQUIREMENT: LedgerSource.REQUIREMENT,
    ItemKind.SPECIALTY_REQUIREMENT: LedgerSource.REQUIREMENT,
    ItemKind.EVENT_REQUIREMENT: LedgerSource.EVENT,
}


async def _get_item(db: AsyncSession, item_id: uuid.UUID) -> AssignableItem:
    item = await db.get(AssignableItem, item_id)
    if not item:
        raise NotFound(f"Item {item_id} not found")
    return item


async def _ensure_effective(
    db: AsyncSession, *, item: AssignableItem, member: Member
) -> None:
    """Only the member's effective row of a logical requirement may pay out."""
    if not item.is_active:
        raise InvalidTransition(f"Item {item.id} is retired")
    effective = await resolve_effective_item(db, item_id=item.id, member=member)
    if effective.id != item.id:
        raise InvalidTransition(
            f"Item {item.id} is shadowed by {effective.id} for member {member.id}"
        )


async def _require_record(
    db: AsyncSession, *, member_id: uuid.UUID, item_id: uuid.UUID, action: str
) -> ProgressRecord:
    record = await lock_record(db, member_id=member_id, item_id=item_id)
    if record is None:
        raise InvalidTransition(
            f"Cannot {action} item {item_id} for member {member_id}: not_started"
        )
    return record


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


async def approve(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
) -> ProgressRecord:
    """PENDING -> APPROVED, granting the item's value.

    Checks the current status before acting, so a retried approve is
    rejected with AlreadyApproved instead of granting twice.
    """
    item = await _get_item(db, item_id)

    async with serialized_write(db, member_id=member_id, item_id=item_id):
        member = await ledger_ops.lock_member(db, member_id)
        ensure_reviewer(actor, member)

        record = await _require_record(
            db, member_id=member.id, item_id=item.id, action="approve"
        )
        if record.status == ProgressStatus.APPROVED:
            raise AlreadyApproved(f"Item {item.id} is already approved")
        if record.status != ProgressStatus.PENDING:
            raise InvalidTransition(
                f"Cannot approve item {item.id}: status is {record.status.value}"
            )
        await _ensure_effective(db, item=item, member=member)

        record.status = ProgressStatus.APPROVED
        record.reviewed_by = actor.user_id
        record.reviewed_at = utc_now()
        record.rejection_reason = None
        await db.flush()

        if item.point_value > 0:
            entry = await ledger_ops.append_entry(
                db,
                member=member,
                amount=item.point_value,
                source=LEDGER_SOURCE_BY_KIND[item.kind],
                reason=f"Approved: {item.code or item.description[:80]}",
                created_by=actor.user_id,
                reference_type="progress",
                reference_id=str(record.id),
            )
            record.grant_entry_id = entry.id

        await completion.on_requirement_approved(
            db, member=member, item=item, performed_by=actor.user_id
        )
        record_event(
            db,
            event_type=ProgressEventType.APPROVED,
            member_id=member.id,
            item_id=item.id,
            group_id=item.group_id,
            data={"points": item.point_value, "reviewed_by": actor.user_id},
        )
        await db.commit()

    await db.refresh(record)
    logger.info(
        "Reviewer %s approved item %s for member %s (+%d, balance=%d)",
        actor.user_id,
        item.id,
        member.id,
        item.point_value,
        member.points_balance,
    )
    return record


# ---------------------------------------------------------------------------
# Reject
# ---------------------------------------------------------------------------


async def reject(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    reason: str,
) -> ProgressRecord:
    """PENDING -> REJECTED with a reason. Never touches the ledger."""
    if not reason or not reason.strip():
        raise InvalidAnswer("A rejection reason is required")
    item = await _get_item(db, item_id)

    async with serialized_write(db, member_id=member_id, item_id=item_id):
        member = await ledger_ops.get_member(db, member_id)
        ensure_reviewer(actor, member)

        record = await _require_record(
            db, member_id=member.id, item_id=item.id, action="reject"
        )
        if record.status == ProgressStatus.APPROVED:
            raise AlreadyApproved(
                f"Item {item.id} is approved; revoke it before rejecting"
            )
        if record.status != ProgressStatus.PENDING:
            raise InvalidTransition(
                f"Cannot reject item {item.id}: status is {record.status.value}"
            )

        record.status = ProgressStatus.REJECTED
        record.rejection_reason = reason.strip()
        record.reviewed_by = actor.user_id
        record.reviewed_at = utc_now()
        await db.flush()

        await completion.refresh_specialty_status(
            db, member=member, item=item, performed_by=actor.user_id
        )
        record_event(
            db,
            event_type=ProgressEventType.REJECTED,
            member_id=member.id,
            item_id=item.id,
            group_id=item.group_id,
            data={"reason": record.rejection_reason},
        )
        await db.commit()

    await db.refresh(record)
    logger.info(
        "Reviewer %s rejected item %s for member %s: %s",
        actor.user_id,
        item.id,
        member.id,
        record.rejection_reason,
    )
    return record


# ---------------------------------------------------------------------------
# Revoke
# ---------------------------------------------------------------------------


async def revoke(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    reason: Optional[str] = None,
) -> ProgressRecord:
    """APPROVED -> PENDING, appending the exact inverse of the original grant.

    A parent specialty that was COMPLETED through its requirements goes back
    to IN_PROGRESS and its bonus, if any, is reversed too.
    """
    item = await _get_item(db, item_id)
    reason = reason or "Approval revoked"

    async with serialized_write(db, member_id=member_id, item_id=item_id):
        member = await ledger_ops.lock_member(db, member_id)
        ensure_reviewer(actor, member)

        record = await _require_record(
            db, member_id=member.id, item_id=item.id, action="revoke"
        )
        if record.status != ProgressStatus.APPROVED:
            raise InvalidTransition(
                f"Cannot revoke item {item.id}: status is {record.status.value}"
            )

        old_balance = member.points_balance
        inverse_id = None
        if record.grant_entry_id:
            inverse = await ledger_ops.append_inverse(
                db,
                member=member,
                original_id=record.grant_entry_id,
                reason=f"Revoked: {reason}",
                created_by=actor.user_id,
            )
            inverse_id = inverse.id

        granted_entry_id = record.grant_entry_id
        record.status = ProgressStatus.PENDING
        record.grant_entry_id = None
        record.reviewed_by = actor.user_id
        record.reviewed_at = utc_now()
        await db.flush()

        await completion.reevaluate_parent(
            db, member=member, item=item, performed_by=actor.user_id, reopen=True
        )
        record_audit(
            db,
            action=AuditAction.REVOKE,
            performed_by=actor.user_id,
            member_id=member.id,
            target_type="progress",
            target_id=str(record.id),
            old_value={
                "status": ProgressStatus.APPROVED.value,
                "balance": old_balance,
                "grant_entry_id": str(granted_entry_id) if granted_entry_id else None,
            },
            new_value={
                "status": ProgressStatus.PENDING.value,
                "balance": member.points_balance,
                "inverse_entry_id": str(inverse_id) if inverse_id else None,
            },
            reason=reason,
        )
        record_event(
            db,
            event_type=ProgressEventType.REVOKED,
            member_id=member.id,
            item_id=item.id,
            group_id=item.group_id,
            data={"points": -item.point_value if granted_entry_id else 0},
        )
        await db.commit()

    await db.refresh(record)
    logger.info(
        "Reviewer %s revoked item %s for member %s (balance %d -> %d)",
        actor.user_id,
        item.id,
        member.id,
        old_balance,
        member.points_balance,
    )
    return record


# ---------------------------------------------------------------------------
# Delete history (hard delete)
# ---------------------------------------------------------------------------


async def delete_history(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    reason: str,
) -> dict:
    """Permanently remove a record and the ledger entries referencing it.

    Unlike revoke this erases history. The balance cache is lowered by the
    deleted entries of the current epoch, and the full snapshot is kept in
    a DELETE_HISTORY audit row.
    """
    item = await _get_item(db, item_id)

    async with serialized_write(db, member_id=member_id, item_id=item_id):
        member = await ledger_ops.lock_member(db, member_id)
        ensure_privileged(actor, member)

        record = await lock_record(db, member_id=member.id, item_id=item.id)
        if record is None:
            raise NotFound(f"No progress for member {member_id} on item {item_id}")

        result = await db.execute(
            select(PointsLedgerEntry).where(
                PointsLedgerEntry.member_id == member.id,
                PointsLedgerEntry.reference_type == "progress",
                PointsLedgerEntry.reference_id == str(record.id),
            )
        )
        entries = list(result.scalars().all())
        balance_delta = -sum(
            e.amount for e in entries if e.epoch == member.points_epoch
        )
        was_approved = record.status == ProgressStatus.APPROVED
        snapshot = {
            "record_id": str(record.id),
            "status": record.status.value,
            "answer_text": record.answer_text,
            "answer_file_ref": record.answer_file_ref,
            "submitted_at": record.submitted_at.isoformat() if record.submitted_at else None,
            "reviewed_by": record.reviewed_by,
            "entries": [
                {"id": str(e.id), "amount": e.amount, "epoch": e.epoch} for e in entries
            ],
            "balance": member.points_balance,
        }

        if entries:
            await db.execute(
                delete(PointsLedgerEntry).where(
                    PointsLedgerEntry.id.in_([e.id for e in entries])
                )
            )
        await db.delete(record)
        member.points_balance += balance_delta
        member.updated_at = utc_now()
        await db.flush()

        if was_approved:
            await completion.reevaluate_parent(
                db, member=member, item=item, performed_by=actor.user_id, reopen=True
            )
        else:
            await completion.refresh_specialty_status(
                db, member=member, item=item, performed_by=actor.user_id
            )

        record_audit(
            db,
            action=AuditAction.DELETE_HISTORY,
            performed_by=actor.user_id,
            member_id=member.id,
            target_type="progress",
            target_id=snapshot["record_id"],
            old_value=snapshot,
            new_value={"balance": member.points_balance},
            reason=reason,
        )
        await db.commit()

    logger.warning(
        "Admin %s deleted history of item %s for member %s "
        "(%d ledger entries, balance %+d): %s",
        actor.user_id,
        item.id,
        member.id,
        len(entries),
        balance_delta,
        reason,
    )
    return {
        "member_id": member.id,
        "item_id": item.id,
        "deleted_entries": len(entries),
        "balance_delta": balance_delta,
        "balance": member.points_balance,
    }
