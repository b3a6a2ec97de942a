"""Unit tests for progress_store submissions, eligibility and answer checks.

Tests call progress_store functions directly with the db_session fixture.
"""

import uuid
from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from services.progress_service.models import (
    AnswerType,
    CompletionStatus,
    EventParticipation,
    GroupKind,
    ItemKind,
    Member,
    PointsLedgerEntry,
    ProgressEvent,
    ProgressEventType,
    ProgressStatus,
    SpecialtyCompletion,
)
from services.progress_service.services import approval
from services.progress_service.services.errors import (
    AlreadyApproved,
    InvalidAnswer,
    ItemNotAssigned,
    NotAuthorized,
    SubmissionWindowClosed,
)
from services.progress_service.services.progress_store import (
    Answer,
    assign_specialty,
    get_progress,
    list_pending,
    submit,
)
from sqlalchemy import func, select
from tests.factories import (
    ClubFactory,
    GroupFactory,
    ItemFactory,
    MemberFactory,
    QuizQuestionFactory,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _specialty(persist, values=(30, 20), assign=True, **item_overrides):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    group = GroupFactory.create(kind=GroupKind.SPECIALTY)
    items = [
        ItemFactory.create(group_id=group.id, point_value=value, **item_overrides)
        for value in values
    ]
    objects = [club, member, group, *items]
    if assign:
        objects.append(
            SpecialtyCompletion(
                member_id=member.id,
                group_id=group.id,
                status=CompletionStatus.IN_PROGRESS,
            )
        )
    await persist(*objects)
    return club, member, group, items


async def _completion(db, member_id, group_id):
    db.expunge_all()
    result = await db.execute(
        select(SpecialtyCompletion).where(
            SpecialtyCompletion.member_id == member_id,
            SpecialtyCompletion.group_id == group_id,
        )
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submit_text_answer_creates_pending_record(db_session, persist, reload, make_user):
    """A first submission moves NOT_STARTED to PENDING without touching points."""
    club, member, _, (item, _) = await _specialty(persist)

    record = await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="I tied six knots"),
    )

    assert record.status == ProgressStatus.PENDING
    assert record.answer_text == "I tied six knots"
    assert record.submitted_at is not None

    fresh = await reload(Member, member.id)
    assert fresh.points_balance == 0
    entries = await db_session.execute(
        select(func.count()).select_from(PointsLedgerEntry)
    )
    assert entries.scalar() == 0

    events = await db_session.execute(select(ProgressEvent))
    event = events.scalars().one()
    assert event.event_type == ProgressEventType.SUBMITTED
    assert event.event_data == {"previous_status": "not_started"}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submit_requires_specialty_assignment(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(persist, assign=False)

    with pytest.raises(ItemNotAssigned):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="answer"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_class_requirement_needs_no_assignment(db_session, persist, make_user):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(group_id=group.id, kind=ItemKind.CLASS_REQUIREMENT)
    await persist(club, member, group, item)

    record = await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="Memorized the law"),
    )
    assert record.status == ProgressStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resubmission_after_rejection_overwrites_answer(db_session, persist, make_user):
    """REJECTED -> PENDING on resubmission; the old payload and reason are replaced."""
    club, member, _, (item, _) = await _specialty(persist)
    pathfinder = make_user("pathfinder", club, member)

    await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="first try"),
    )
    rejected = await approval.reject(
        db_session,
        actor=make_user("counselor", club),
        member_id=member.id,
        item_id=item.id,
        reason="Needs more detail",
    )
    assert rejected.status == ProgressStatus.REJECTED
    assert rejected.rejection_reason == "Needs more detail"

    record = await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="second try with detail"),
    )
    assert record.status == ProgressStatus.PENDING
    assert record.answer_text == "second try with detail"
    assert record.rejection_reason is None
    assert record.reviewed_by is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submit_on_approved_record_is_frozen(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(persist)
    pathfinder = make_user("pathfinder", club, member)

    await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="done"),
    )
    await approval.approve(
        db_session,
        actor=make_user("counselor", club),
        member_id=member.id,
        item_id=item.id,
    )

    with pytest.raises(AlreadyApproved):
        await submit(
            db_session,
            actor=pathfinder,
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="changed my mind"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_all_requirements_submitted_marks_waiting_approval(
    db_session, persist, make_user
):
    club, member, group, items = await _specialty(persist)
    pathfinder = make_user("pathfinder", club, member)

    await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=items[0].id,
        answer=Answer(text="one"),
    )
    completion = await _completion(db_session, member.id, group.id)
    assert completion.status == CompletionStatus.IN_PROGRESS

    await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=items[1].id,
        answer=Answer(text="two"),
    )
    completion = await _completion(db_session, member.id, group.id)
    assert completion.status == CompletionStatus.WAITING_APPROVAL


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_file_answer_requires_reference(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(persist, answer_type=AnswerType.FILE)

    with pytest.raises(InvalidAnswer):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="no file attached"),
        )

    record = await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(file_ref="uploads/knots.jpg"),
    )
    assert record.answer_file_ref == "uploads/knots.jpg"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quiz_answer_is_scored(db_session, persist, make_user):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(
        group_id=group.id,
        kind=ItemKind.CLASS_REQUIREMENT,
        answer_type=AnswerType.QUIZ,
    )
    q1 = QuizQuestionFactory.create(item_id=item.id, position=0, correct_option=0)
    q2 = QuizQuestionFactory.create(item_id=item.id, position=1, correct_option=2)
    await persist(club, member, group, item, q1, q2)

    record = await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(quiz_answers={str(q1.id): 0, str(q2.id): 1}),
    )
    assert record.quiz_score == 0.5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quiz_with_unanswered_question_is_rejected(db_session, persist, make_user):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(
        group_id=group.id,
        kind=ItemKind.CLASS_REQUIREMENT,
        answer_type=AnswerType.QUIZ,
    )
    q1 = QuizQuestionFactory.create(item_id=item.id, position=0)
    q2 = QuizQuestionFactory.create(item_id=item.id, position=1)
    await persist(club, member, group, item, q1, q2)

    with pytest.raises(InvalidAnswer):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(quiz_answers={str(q1.id): 0}),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_submission_after_end_date_is_closed(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(
        persist, end_date=utc_now() - timedelta(days=1)
    )

    with pytest.raises(SubmissionWindowClosed):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="too late"),
        )


# ---------------------------------------------------------------------------
# Authorization and eligibility
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pathfinder_cannot_submit_for_someone_else(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(persist)
    other = MemberFactory.create(club_id=club.id)
    await persist(other)

    with pytest.raises(NotAuthorized):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, other),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="not mine"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_counselor_of_another_club_cannot_submit(db_session, persist, make_user):
    _, member, _, (item, _) = await _specialty(persist)
    other_club = ClubFactory.create()
    await persist(other_club)

    with pytest.raises(NotAuthorized):
        await submit(
            db_session,
            actor=make_user("counselor", other_club),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="entered by staff"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_inactive_member_cannot_submit(db_session, persist, make_user):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id, is_active=False)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(group_id=group.id, kind=ItemKind.CLASS_REQUIREMENT)
    await persist(club, member, group, item)

    with pytest.raises(NotAuthorized):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="answer"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_event_requirement_limited_to_participating_clubs(
    db_session, persist, make_user
):
    club = ClubFactory.create()
    enrolled = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    event = GroupFactory.create(kind=GroupKind.REGIONAL_EVENT)
    item = ItemFactory.create(group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT)
    participation = EventParticipation(group_id=event.id, club_id=enrolled.id)
    await persist(club, enrolled, member, event, item, participation)

    with pytest.raises(ItemNotAssigned):
        await submit(
            db_session,
            actor=make_user("pathfinder", club, member),
            member_id=member.id,
            item_id=item.id,
            answer=Answer(text="we camped"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_open_event_checks_hierarchy_scope(db_session, persist, make_user):
    inside = ClubFactory.create(region="Region 1")
    outside = ClubFactory.create(region="Region 2")
    insider = MemberFactory.create(club_id=inside.id)
    outsider = MemberFactory.create(club_id=outside.id)
    event = GroupFactory.create(kind=GroupKind.REGIONAL_EVENT, region="Region 1")
    item = ItemFactory.create(group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT)
    await persist(inside, outside, insider, outsider, event, item)

    record = await submit(
        db_session,
        actor=make_user("pathfinder", inside, insider),
        member_id=insider.id,
        item_id=item.id,
        answer=Answer(text="present"),
    )
    assert record.status == ProgressStatus.PENDING

    with pytest.raises(ItemNotAssigned):
        await submit(
            db_session,
            actor=make_user("pathfinder", outside, outsider),
            member_id=outsider.id,
            item_id=item.id,
            answer=Answer(text="present"),
        )


# ---------------------------------------------------------------------------
# Reads and assignment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_progress_without_submission_is_not_started(
    db_session, persist, make_user
):
    club, member, _, (item, _) = await _specialty(persist)

    progress = await get_progress(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
    )
    assert progress.status == ProgressStatus.NOT_STARTED
    assert progress.item_id == item.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_assign_specialty_is_idempotent(db_session, persist, make_user):
    club, member, group, _ = await _specialty(persist, assign=False)
    counselor = make_user("counselor", club)

    first = await assign_specialty(
        db_session, actor=counselor, member_id=member.id, specialty_id=group.id
    )
    second = await assign_specialty(
        db_session, actor=counselor, member_id=member.id, specialty_id=group.id
    )

    assert first.id == second.id
    assert first.status == CompletionStatus.IN_PROGRESS
    assert first.assigned_by == counselor.user_id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pending_queue_is_scoped_to_reviewer_club(db_session, persist, make_user):
    club, member, _, (item, _) = await _specialty(persist)
    other_club, other_member, _, (other_item, _) = await _specialty(persist)

    await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="mine"),
    )
    await submit(
        db_session,
        actor=make_user("pathfinder", other_club, other_member),
        member_id=other_member.id,
        item_id=other_item.id,
        answer=Answer(text="theirs"),
    )

    records, waiting = await list_pending(db_session, actor=make_user("counselor", club))
    assert [r.member_id for r in records] == [member.id]
    assert waiting == []

    with pytest.raises(NotAuthorized):
        await list_pending(
            db_session, actor=make_user("counselor", club), club_id=uuid.uuid4()
        )
