"""Administrative award paths kept apart from the normal approval flow."""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from services.progress_service.models import (
    AuditAction,
    CompletionStatus,
    CurriculumGroup,
    GroupKind,
    LedgerSource,
    Member,
    MemberRole,
    SpecialtyCompletion,
)
from services.progress_service.services import completion, ledger_ops
from services.progress_service.services.audit import record_audit
from services.progress_service.services.errors import (
    AlreadyApproved,
    NotAuthorized,
    NotFound,
    ProgressServiceError,
)
from services.progress_service.services.permissions import (
    ensure_privileged,
    ensure_reviewer,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class BulkAwardResult:
    member_id: uuid.UUID
    success: bool
    entry_id: Optional[uuid.UUID] = None
    balance: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Direct specialty award
# ---------------------------------------------------------------------------


async def award_specialty(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    specialty_id: uuid.UUID,
    reason: str,
) -> SpecialtyCompletion:
    """Mark a specialty COMPLETED without per-requirement tracking.

    Assigns the specialty when needed, grants its completion bonus and
    writes a DIRECT_AWARD audit row.
    """
    group = await db.get(CurriculumGroup, specialty_id)
    if not group or group.kind != GroupKind.SPECIALTY:
        raise NotFound(f"Specialty {specialty_id} not found")

    try:
        member = await ledger_ops.lock_member(db, member_id)
        ensure_reviewer(actor, member)

        specialty = await completion.lock_specialty_completion(
            db, member_id=member.id, group_id=group.id
        )
        if specialty is None:
            specialty = SpecialtyCompletion(
                member_id=member.id,
                group_id=group.id,
                status=CompletionStatus.IN_PROGRESS,
                assigned_by=actor.user_id,
            )
            db.add(specialty)
            await db.flush()
        elif specialty.status == CompletionStatus.COMPLETED:
            raise AlreadyApproved(f"Specialty {group.id} is already completed")

        old_status = specialty.status
        await completion.complete_specialty(
            db,
            member=member,
            group=group,
            specialty=specialty,
            performed_by=actor.user_id,
            direct=True,
        )
        record_audit(
            db,
            action=AuditAction.DIRECT_AWARD,
            performed_by=actor.user_id,
            member_id=member.id,
            target_type="specialty",
            target_id=str(group.id),
            old_value={"status": old_status.value},
            new_value={
                "status": CompletionStatus.COMPLETED.value,
                "bonus_entry_id": (
                    str(specialty.bonus_entry_id) if specialty.bonus_entry_id else None
                ),
            },
            reason=reason,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(specialty)
    logger.info(
        "Reviewer %s directly awarded specialty %s to member %s: %s",
        actor.user_id,
        group.id,
        member.id,
        reason,
    )
    return specialty


# ---------------------------------------------------------------------------
# Bulk award
# ---------------------------------------------------------------------------


async def resolve_unit_members(db: AsyncSession, unit_id: uuid.UUID) -> list[uuid.UUID]:
    """Active pathfinders of a unit."""
    result = await db.execute(
        select(Member.id)
        .where(
            Member.unit_id == unit_id,
            Member.role == MemberRole.PATHFINDER,
            Member.is_active.is_(True),
        )
        .order_by(Member.name, Member.id)
    )
    return list(result.scalars().all())


async def bulk_award(
    db: AsyncSession,
    *,
    actor: AuthUser,
    amount: int,
    reason: str,
    member_ids: Optional[list[uuid.UUID]] = None,
    unit_id: Optional[uuid.UUID] = None,
    source: LedgerSource = LedgerSource.ACTIVITY,
    reference_id: Optional[str] = None,
) -> list[BulkAwardResult]:
    """Award points to many members, one independent transaction each.

    A failing member is rolled back and reported; members already awarded
    keep their points. Replaying the same ``reference_id`` is idempotent per
    member.
    """
    if not actor.is_privileged:
        raise NotAuthorized(f"Role '{actor.role}' may not bulk award points")
    if amount == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Amount cannot be zero",
        )

    targets = list(dict.fromkeys(member_ids or []))
    if unit_id:
        for member_id in await resolve_unit_members(db, unit_id):
            if member_id not in targets:
                targets.append(member_id)
    if not targets:
        raise NotFound("No members to award")

    reference_id = reference_id or uuid.uuid4().hex
    results: list[BulkAwardResult] = []
    for member_id in targets:
        try:
            member = await ledger_ops.get_member(db, member_id)
            ensure_privileged(actor, member)
            entry = await ledger_ops.append(
                db,
                member_id=member_id,
                amount=amount,
                source=source,
                reason=reason,
                created_by=actor.user_id,
                reference_type=source.value,
                reference_id=reference_id,
                idempotency_key=f"bulk-{reference_id}-{member_id}",
            )
        except ProgressServiceError as exc:
            await db.rollback()
            logger.warning("Bulk award skipped member %s: %s", member_id, exc.detail)
            results.append(
                BulkAwardResult(
                    member_id=member_id,
                    success=False,
                    error_code=exc.code,
                    error=exc.detail,
                )
            )
            continue
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning(
                "Bulk award failed for member %s: %s", member_id, exc.__class__.__name__
            )
            results.append(
                BulkAwardResult(
                    member_id=member_id,
                    success=False,
                    error_code="database_error",
                    error=str(exc.__class__.__name__),
                )
            )
            continue

        results.append(
            BulkAwardResult(
                member_id=member_id,
                success=True,
                entry_id=entry.id,
                balance=entry.balance_after,
            )
        )

    awarded = sum(1 for r in results if r.success)
    logger.info(
        "Bulk award %s by %s: %d/%d members (+%d each)",
        reference_id,
        actor.user_id,
        awarded,
        len(results),
        amount,
    )
    return results
