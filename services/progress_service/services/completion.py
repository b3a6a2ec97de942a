"""Completion notifier: derives specialty completion and class milestones.

Runs inside the caller's transaction, after the triggering record change has
been flushed. Any bonus it grants or reverses goes through the ledger under
the member lock the caller already holds.
"""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.progress_service.models import (
    AssignableItem,
    ClassMilestone,
    CompletionStatus,
    CurriculumGroup,
    GroupKind,
    LedgerSource,
    Member,
    ProgressEventType,
    ProgressRecord,
    ProgressStatus,
    SpecialtyCompletion,
)
from services.progress_service.services import ledger_ops
from services.progress_service.services.events import record_event
from services.progress_service.services.scope import effective_items_for_group
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DEFAULT_CLASS_MILESTONES = (25, 50, 75, 100)


async def _statuses(
    db: AsyncSession, member_id: uuid.UUID, item_ids: list[uuid.UUID]
) -> dict[uuid.UUID, ProgressStatus]:
    if not item_ids:
        return {}
    result = await db.execute(
        select(ProgressRecord.item_id, ProgressRecord.status).where(
            ProgressRecord.member_id == member_id,
            ProgressRecord.item_id.in_(item_ids),
        )
    )
    return {item_id: status for item_id, status in result.all()}


async def reevaluate_parent(
    db: AsyncSession,
    *,
    member: Member,
    item: AssignableItem,
    performed_by: str,
    reopen: bool = False,
):
    """Bring the parent group's derived state in line with the member's records.

    ``reopen`` is set when an approved requirement was withdrawn (revoke,
    history delete); only then can a COMPLETED specialty or a reached class
    milestone be taken back.
    """
    group = item.group
    if group.kind == GroupKind.SPECIALTY:
        return await evaluate_specialty(
            db, member=member, group=group, performed_by=performed_by, reopen=reopen
        )
    if group.kind == GroupKind.CLASS:
        return await evaluate_class(
            db, member=member, group=group, performed_by=performed_by, reopen=reopen
        )
    return None


async def on_requirement_approved(
    db: AsyncSession,
    *,
    member: Member,
    item: AssignableItem,
    performed_by: str,
):
    """Complete the parent when this approval was the last outstanding one.

    Idempotent: re-running on an already complete parent changes nothing.
    """
    return await reevaluate_parent(
        db, member=member, item=item, performed_by=performed_by
    )


async def refresh_specialty_status(
    db: AsyncSession, *, member: Member, item: AssignableItem, performed_by: str
) -> Optional[SpecialtyCompletion]:
    """Keep IN_PROGRESS / WAITING_APPROVAL current after a submit or reject.

    The changed record is not APPROVED, so this never completes a specialty
    and never touches the ledger.
    """
    if item.group.kind != GroupKind.SPECIALTY:
        return None
    return await evaluate_specialty(
        db, member=member, group=item.group, performed_by=performed_by
    )


async def is_complete(
    db: AsyncSession, *, member_id: uuid.UUID, specialty_id: uuid.UUID
) -> bool:
    result = await db.execute(
        select(SpecialtyCompletion.status).where(
            SpecialtyCompletion.member_id == member_id,
            SpecialtyCompletion.group_id == specialty_id,
        )
    )
    return result.scalar_one_or_none() == CompletionStatus.COMPLETED


# ---------------------------------------------------------------------------
# Specialties
# ---------------------------------------------------------------------------


async def lock_specialty_completion(
    db: AsyncSession, *, member_id: uuid.UUID, group_id: uuid.UUID
) -> Optional[SpecialtyCompletion]:
    result = await db.execute(
        select(SpecialtyCompletion)
        .where(
            SpecialtyCompletion.member_id == member_id,
            SpecialtyCompletion.group_id == group_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def complete_specialty(
    db: AsyncSession,
    *,
    member: Member,
    group: CurriculumGroup,
    specialty: SpecialtyCompletion,
    performed_by: str,
    direct: bool = False,
) -> SpecialtyCompletion:
    """Flip to COMPLETED and grant the specialty bonus, if the specialty has one."""
    specialty.status = CompletionStatus.COMPLETED
    specialty.awarded_at = utc_now()
    specialty.awarded_by = performed_by
    specialty.awarded_directly = direct

    if group.completion_bonus > 0:
        entry = await ledger_ops.append_entry(
            db,
            member=member,
            amount=group.completion_bonus,
            source=LedgerSource.SPECIALTY,
            reason=f"Specialty completed: {group.name}",
            created_by=performed_by,
            reference_type="specialty",
            reference_id=str(specialty.id),
        )
        specialty.bonus_entry_id = entry.id

    record_event(
        db,
        event_type=ProgressEventType.SPECIALTY_COMPLETED,
        member_id=member.id,
        group_id=group.id,
        data={"direct": direct, "bonus": group.completion_bonus},
    )
    logger.info(
        "Specialty %s completed for member %s (direct=%s, bonus=%d)",
        group.id,
        member.id,
        direct,
        group.completion_bonus,
    )
    return specialty


async def _reopen_specialty(
    db: AsyncSession,
    *,
    member: Member,
    group: CurriculumGroup,
    specialty: SpecialtyCompletion,
    target: CompletionStatus,
    performed_by: str,
) -> None:
    if specialty.bonus_entry_id:
        await ledger_ops.append_inverse(
            db,
            member=member,
            original_id=specialty.bonus_entry_id,
            reason=f"Specialty reopened: {group.name}",
            created_by=performed_by,
        )
        specialty.bonus_entry_id = None

    specialty.status = target
    specialty.awarded_at = None
    specialty.awarded_by = None
    record_event(
        db,
        event_type=ProgressEventType.SPECIALTY_REOPENED,
        member_id=member.id,
        group_id=group.id,
        data={"status": target.value},
    )
    logger.info(
        "Specialty %s reopened for member %s -> %s", group.id, member.id, target.value
    )


async def evaluate_specialty(
    db: AsyncSession,
    *,
    member: Member,
    group: CurriculumGroup,
    performed_by: str,
    reopen: bool = False,
) -> Optional[SpecialtyCompletion]:
    specialty = await lock_specialty_completion(
        db, member_id=member.id, group_id=group.id
    )
    if specialty is None:
        return None

    items = await effective_items_for_group(db, group_id=group.id, club=member.club)
    statuses = await _statuses(db, member.id, [i.id for i in items])
    approved = sum(1 for i in items if statuses.get(i.id) == ProgressStatus.APPROVED)
    submitted = sum(
        1
        for i in items
        if statuses.get(i.id) in (ProgressStatus.PENDING, ProgressStatus.APPROVED)
    )

    if items and approved == len(items):
        target = CompletionStatus.COMPLETED
    elif items and submitted == len(items) and not reopen:
        target = CompletionStatus.WAITING_APPROVAL
    else:
        target = CompletionStatus.IN_PROGRESS

    if specialty.status == CompletionStatus.COMPLETED:
        # Direct awards do not follow per-requirement changes
        if target == CompletionStatus.COMPLETED or not reopen or specialty.awarded_directly:
            return specialty
        await _reopen_specialty(
            db,
            member=member,
            group=group,
            specialty=specialty,
            target=target,
            performed_by=performed_by,
        )
        return specialty

    if target == CompletionStatus.COMPLETED:
        return await complete_specialty(
            db,
            member=member,
            group=group,
            specialty=specialty,
            performed_by=performed_by,
        )
    specialty.status = target
    return specialty


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------


def class_thresholds(group: CurriculumGroup) -> dict[int, int]:
    """Percent threshold -> bonus points."""
    if group.milestone_bonuses:
        return {int(k): int(v) for k, v in group.milestone_bonuses.items()}
    return {threshold: 0 for threshold in DEFAULT_CLASS_MILESTONES}


async def evaluate_class(
    db: AsyncSession,
    *,
    member: Member,
    group: CurriculumGroup,
    performed_by: str,
    reopen: bool = False,
) -> Optional[ClassMilestone]:
    items = await effective_items_for_group(db, group_id=group.id, club=member.club)
    if not items:
        return None
    statuses = await _statuses(db, member.id, [i.id for i in items])
    approved = sum(1 for i in items if statuses.get(i.id) == ProgressStatus.APPROVED)

    thresholds = class_thresholds(group)
    reached = {t for t in thresholds if approved * 100 >= t * len(items)}

    result = await db.execute(
        select(ClassMilestone)
        .where(
            ClassMilestone.member_id == member.id,
            ClassMilestone.group_id == group.id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        if not reached:
            return None
        row = ClassMilestone(member_id=member.id, group_id=group.id, milestone=0)
        db.add(row)
        await db.flush()

    # threshold -> ledger entry id of its bonus (None when the bonus is 0)
    recorded: dict[str, Optional[str]] = dict(row.bonus_entries or {})

    for threshold in sorted(reached):
        if str(threshold) in recorded:
            continue
        entry_id = None
        bonus = thresholds[threshold]
        if bonus > 0:
            entry = await ledger_ops.append_entry(
                db,
                member=member,
                amount=bonus,
                source=LedgerSource.REQUIREMENT,
                reason=f"Class '{group.name}' reached {threshold}%",
                created_by=performed_by,
                reference_type="class_milestone",
                reference_id=str(row.id),
            )
            entry_id = str(entry.id)
        recorded[str(threshold)] = entry_id
        record_event(
            db,
            event_type=(
                ProgressEventType.CLASS_COMPLETED
                if threshold >= 100
                else ProgressEventType.CLASS_MILESTONE
            ),
            member_id=member.id,
            group_id=group.id,
            data={"milestone": threshold, "bonus": bonus},
        )
        logger.info(
            "Member %s reached %d%% of class %s (bonus=%d)",
            member.id,
            threshold,
            group.id,
            bonus,
        )

    if reopen:
        for key in sorted(recorded, key=int, reverse=True):
            if int(key) in reached:
                continue
            if recorded[key]:
                await ledger_ops.append_inverse(
                    db,
                    member=member,
                    original_id=uuid.UUID(recorded[key]),
                    reason=f"Class '{group.name}' dropped below {key}%",
                    created_by=performed_by,
                )
            del recorded[key]
            logger.info(
                "Member %s dropped below %s%% of class %s", member.id, key, group.id
            )

    row.bonus_entries = recorded
    row.milestone = max((int(k) for k in recorded), default=0)
    if row.milestone >= 100:
        row.completed_at = row.completed_at or utc_now()
    else:
        row.completed_at = None
    return row
