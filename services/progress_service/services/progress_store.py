"""Progress store: member submissions against effective curriculum items.

Nothing here writes to the points ledger.
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Union

from libs.auth.models import AuthUser
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.progress_service.models import (
    AnswerType,
    AssignableItem,
    CompletionStatus,
    CurriculumGroup,
    EventParticipation,
    GroupKind,
    ItemKind,
    Member,
    ProgressEventType,
    ProgressRecord,
    ProgressStatus,
    SpecialtyCompletion,
)
from services.progress_service.services import completion
from services.progress_service.services.errors import (
    AlreadyApproved,
    InvalidAnswer,
    InvalidTransition,
    ItemNotAssigned,
    NotAuthorized,
    NotFound,
    SubmissionWindowClosed,
)
from services.progress_service.services.events import record_event
from services.progress_service.services.ledger_ops import get_member
from services.progress_service.services.permissions import (
    ensure_can_submit,
    ensure_can_view,
)
from services.progress_service.services.scope import resolve_effective_item
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

_HIERARCHY_FIELDS = ("union", "mission", "region", "district")


@dataclass
class NotStarted:
    """Returned by ``get_progress`` when the member never submitted."""

    member_id: uuid.UUID
    item_id: uuid.UUID
    status: ProgressStatus = field(default=ProgressStatus.NOT_STARTED)


@dataclass
class Answer:
    text: Optional[str] = None
    file_ref: Optional[str] = None
    quiz_answers: Optional[dict[str, int]] = None


# ---------------------------------------------------------------------------
# Serialization per (member, item)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def serialized_write(
    db: AsyncSession, *, member_id: uuid.UUID, item_id: uuid.UUID
) -> AsyncIterator[None]:
    """Roll back on any failure; a lost race surfaces as InvalidTransition."""
    try:
        yield
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning(
            "Concurrent write on progress member=%s item=%s: %s",
            member_id,
            item_id,
            exc.__class__.__name__,
        )
        raise InvalidTransition(
            f"Progress for member {member_id} on item {item_id} changed "
            "concurrently; reload and retry"
        ) from exc
    except Exception:
        await db.rollback()
        raise


async def lock_record(
    db: AsyncSession, *, member_id: uuid.UUID, item_id: uuid.UUID
) -> Optional[ProgressRecord]:
    result = await db.execute(
        select(ProgressRecord)
        .where(
            ProgressRecord.member_id == member_id,
            ProgressRecord.item_id == item_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Eligibility and answer validation
# ---------------------------------------------------------------------------


async def _ensure_eligible(db: AsyncSession, member: Member, item: AssignableItem) -> None:
    group = item.group
    if not group.is_active:
        raise NotFound(f"Group {group.id} is not active")

    if item.kind == ItemKind.SPECIALTY_REQUIREMENT:
        assigned = await db.execute(
            select(SpecialtyCompletion.id).where(
                SpecialtyCompletion.member_id == member.id,
                SpecialtyCompletion.group_id == group.id,
            )
        )
        if not assigned.first():
            raise ItemNotAssigned(
                f"Specialty '{group.name}' has not been assigned to this member"
            )

    elif item.kind == ItemKind.EVENT_REQUIREMENT:
        result = await db.execute(
            select(EventParticipation.club_id).where(
                EventParticipation.group_id == group.id
            )
        )
        participants = set(result.scalars().all())
        if participants:
            if member.club_id not in participants:
                raise ItemNotAssigned(
                    f"Club does not participate in event '{group.name}'"
                )
        else:
            for attr in _HIERARCHY_FIELDS:
                expected = getattr(group, attr)
                if expected and getattr(member.club, attr) != expected:
                    raise ItemNotAssigned(
                        f"Event '{group.name}' is restricted to {attr} {expected}"
                    )


def _ensure_window_open(item: AssignableItem) -> None:
    now = utc_now()
    windows = [(item.start_date, item.end_date)]
    if item.group.kind == GroupKind.REGIONAL_EVENT:
        windows.append((item.group.start_date, item.group.end_date))
    for start, end in windows:
        if start and now < ensure_utc(start):
            raise SubmissionWindowClosed(
                f"Submissions open at {ensure_utc(start).isoformat()}"
            )
        if end and now > ensure_utc(end):
            raise SubmissionWindowClosed(
                f"Submissions closed at {ensure_utc(end).isoformat()}"
            )


def score_quiz(item: AssignableItem, answers: Optional[dict[str, int]]) -> float:
    """Share of correct answers. Every question must be answered."""
    questions = item.questions
    if not questions:
        raise InvalidAnswer("Quiz has no questions")
    answers = answers or {}
    missing = [str(q.id) for q in questions if str(q.id) not in answers]
    if missing:
        raise InvalidAnswer(f"Unanswered quiz questions: {', '.join(missing)}")
    correct = sum(1 for q in questions if answers[str(q.id)] == q.correct_option)
    return round(correct / len(questions), 4)


def validate_answer(item: AssignableItem, answer: Answer) -> Optional[float]:
    """Check the payload against the item's answer type; returns a quiz score."""
    answer_type = item.answer_type
    has_text = bool(answer.text and answer.text.strip())
    has_file = bool(answer.file_ref and answer.file_ref.strip())

    if answer_type in (AnswerType.TEXT, AnswerType.BOTH) and not has_text:
        raise InvalidAnswer("A text answer is required")
    if answer_type in (AnswerType.FILE, AnswerType.BOTH) and not has_file:
        raise InvalidAnswer("A file reference is required")
    if answer_type == AnswerType.QUIZ:
        return score_quiz(item, answer.quiz_answers)
    return None


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def submit(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    answer: Answer,
) -> ProgressRecord:
    """Record an answer and move the record to PENDING.

    NOT_STARTED, REJECTED and PENDING records accept a (re)submission that
    overwrites the previous payload. APPROVED answers are frozen.
    """
    member = await get_member(db, member_id)
    ensure_can_submit(actor, member)
    if not member.is_active:
        raise NotAuthorized("Inactive members cannot submit progress")

    item = await resolve_effective_item(db, item_id=item_id, member=member)
    await _ensure_eligible(db, member, item)
    _ensure_window_open(item)
    quiz_score = validate_answer(item, answer)

    async with serialized_write(db, member_id=member.id, item_id=item.id):
        record = await lock_record(db, member_id=member.id, item_id=item.id)
        if record and record.status == ProgressStatus.APPROVED:
            raise AlreadyApproved("Answers are frozen once approved")

        previous = record.status if record else ProgressStatus.NOT_STARTED
        if record is None:
            record = ProgressRecord(member_id=member.id, item_id=item.id)
            db.add(record)

        record.status = ProgressStatus.PENDING
        record.answer_text = answer.text
        record.answer_file_ref = answer.file_ref
        record.quiz_answers = answer.quiz_answers
        record.quiz_score = quiz_score
        record.submitted_at = utc_now()
        record.rejection_reason = None
        record.reviewed_by = None
        record.reviewed_at = None
        await db.flush()

        await completion.refresh_specialty_status(
            db, member=member, item=item, performed_by=actor.user_id
        )
        record_event(
            db,
            event_type=ProgressEventType.SUBMITTED,
            member_id=member.id,
            item_id=item.id,
            group_id=item.group_id,
            data={"previous_status": previous.value},
        )
        await db.commit()

    await db.refresh(record)
    logger.info(
        "Member %s submitted item %s (%s -> pending) by %s",
        member.id,
        item.id,
        previous.value,
        actor.user_id,
    )
    return record


async def get_progress(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    item_id: uuid.UUID,
) -> Union[ProgressRecord, NotStarted]:
    member = await get_member(db, member_id)
    ensure_can_view(actor, member)
    item = await resolve_effective_item(db, item_id=item_id, member=member)

    result = await db.execute(
        select(ProgressRecord).where(
            ProgressRecord.member_id == member.id,
            ProgressRecord.item_id == item.id,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        return NotStarted(member_id=member.id, item_id=item.id)
    return record


async def list_progress(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    group_id: Optional[uuid.UUID] = None,
    status: Optional[ProgressStatus] = None,
) -> list[ProgressRecord]:
    """Every record of a member, including records on retired forks."""
    member = await get_member(db, member_id)
    ensure_can_view(actor, member)

    query = select(ProgressRecord).where(ProgressRecord.member_id == member.id)
    if group_id:
        query = query.join(
            AssignableItem, AssignableItem.id == ProgressRecord.item_id
        ).where(AssignableItem.group_id == group_id)
    if status:
        query = query.where(ProgressRecord.status == status)
    result = await db.execute(query.order_by(ProgressRecord.created_at))
    return list(result.scalars().all())


async def assign_specialty(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    specialty_id: uuid.UUID,
) -> SpecialtyCompletion:
    """Open a specialty for a member. Idempotent."""
    member = await get_member(db, member_id)
    ensure_can_submit(actor, member)

    group = await db.get(CurriculumGroup, specialty_id)
    if not group or group.kind != GroupKind.SPECIALTY or not group.is_active:
        raise NotFound(f"Specialty {specialty_id} not found")

    result = await db.execute(
        select(SpecialtyCompletion).where(
            SpecialtyCompletion.member_id == member.id,
            SpecialtyCompletion.group_id == group.id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    assignment = SpecialtyCompletion(
        member_id=member.id,
        group_id=group.id,
        status=CompletionStatus.IN_PROGRESS,
        assigned_by=actor.user_id,
    )
    db.add(assignment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        result = await db.execute(
            select(SpecialtyCompletion).where(
                SpecialtyCompletion.member_id == member.id,
                SpecialtyCompletion.group_id == group.id,
            )
        )
        return result.scalar_one()

    await db.refresh(assignment)
    logger.info("Assigned specialty %s to member %s", group.id, member.id)
    return assignment


async def get_completion(
    db: AsyncSession,
    *,
    actor: AuthUser,
    member_id: uuid.UUID,
    specialty_id: uuid.UUID,
) -> SpecialtyCompletion:
    member = await get_member(db, member_id)
    ensure_can_view(actor, member)
    result = await db.execute(
        select(SpecialtyCompletion).where(
            SpecialtyCompletion.member_id == member.id,
            SpecialtyCompletion.group_id == specialty_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFound(f"Specialty {specialty_id} is not assigned to member {member_id}")
    return assignment


async def list_pending(
    db: AsyncSession,
    *,
    actor: AuthUser,
    club_id: Optional[uuid.UUID] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[ProgressRecord], list[SpecialtyCompletion]]:
    """Review queue: pending records and specialties waiting for approval."""
    if not actor.is_reviewer:
        raise NotAuthorized(f"Role '{actor.role}' may not review progress")
    if not actor.is_cross_club and actor.club_id is not None:
        if club_id and club_id != actor.club_id:
            raise NotAuthorized("Cannot review another club's queue")
        club_id = actor.club_id

    records_query = select(ProgressRecord).where(
        ProgressRecord.status == ProgressStatus.PENDING
    )
    waiting_query = select(SpecialtyCompletion).where(
        SpecialtyCompletion.status == CompletionStatus.WAITING_APPROVAL
    )
    if club_id:
        records_query = records_query.join(
            Member, Member.id == ProgressRecord.member_id
        ).where(Member.club_id == club_id)
        waiting_query = waiting_query.join(
            Member, Member.id == SpecialtyCompletion.member_id
        ).where(Member.club_id == club_id)

    records = await db.execute(
        records_query.order_by(ProgressRecord.submitted_at).offset(skip).limit(limit)
    )
    waiting = await db.execute(waiting_query.order_by(SpecialtyCompletion.updated_at))
    return list(records.scalars().all()), list(waiting.scalars().all())
