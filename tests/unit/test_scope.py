"""Unit tests for effective-item resolution and club forks."""

import uuid

import pytest
from services.progress_service.models import (
    AuditAction,
    Club,
    GroupKind,
    ItemKind,
    ItemScope,
    Member,
    ProgressAuditLog,
    ProgressRecord,
    ProgressStatus,
)
from services.progress_service.services import approval, scope
from services.progress_service.services.errors import (
    InvalidTransition,
    ItemNotAssigned,
)
from services.progress_service.services.progress_store import Answer, submit
from sqlalchemy import select
from tests.factories import ClubFactory, GroupFactory, ItemFactory, MemberFactory


# ---------------------------------------------------------------------------
# pick_effective
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_pick_effective_prefers_club_then_region_then_global():
    club = ClubFactory.create(region="North")
    original = ItemFactory.create()
    regional = ItemFactory.create(
        group_id=original.group_id,
        scope=ItemScope.REGION,
        region="North",
        origin_item_id=original.id,
    )
    local = ItemFactory.create(
        group_id=original.group_id,
        scope=ItemScope.CLUB,
        club_id=club.id,
        origin_item_id=original.id,
    )
    foreign = ItemFactory.create(
        group_id=original.group_id,
        scope=ItemScope.CLUB,
        club_id=uuid.uuid4(),
        origin_item_id=original.id,
    )

    assert scope.pick_effective([original, regional, local, foreign], club) is local
    assert scope.pick_effective([original, regional, foreign], club) is regional
    assert scope.pick_effective([original, foreign], club) is original

    elsewhere = ClubFactory.create(region="South")
    assert scope.pick_effective([original, regional, local], elsewhere) is original


@pytest.mark.unit
def test_pick_effective_skips_inactive_rows():
    club = ClubFactory.create()
    original = ItemFactory.create()
    retired = ItemFactory.create(
        group_id=original.group_id,
        scope=ItemScope.CLUB,
        club_id=club.id,
        origin_item_id=original.id,
        is_active=False,
    )
    assert scope.pick_effective([original, retired], club) is original
    assert scope.pick_effective([retired], club) is None


# ---------------------------------------------------------------------------
# Forks
# ---------------------------------------------------------------------------


async def _world(persist):
    club = ClubFactory.create()
    other_club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    outsider = MemberFactory.create(club_id=other_club.id)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(
        group_id=group.id, kind=ItemKind.CLASS_REQUIREMENT, point_value=20
    )
    await persist(club, other_club, member, outsider, group, item)
    return club, other_club, member, outsider, group, item


@pytest.mark.asyncio
@pytest.mark.unit
async def test_fork_shadows_original_only_for_its_club(db_session, persist, reload):
    club, _, member, outsider, group, item = await _world(persist)

    fork = await scope.fork_item_for_club(
        db_session,
        item_id=item.id,
        club_id=club.id,
        performed_by="admin-1",
        point_value=35,
    )
    assert fork.origin_item_id == item.id
    assert fork.scope == ItemScope.CLUB
    assert fork.point_value == 35

    local_member = await reload(Member, member.id)
    effective = await scope.resolve_effective_item(
        db_session, item_id=item.id, member=local_member
    )
    assert effective.id == fork.id

    foreign_member = await reload(Member, outsider.id)
    effective = await scope.resolve_effective_item(
        db_session, item_id=item.id, member=foreign_member
    )
    assert effective.id == item.id

    with pytest.raises(ItemNotAssigned):
        await scope.resolve_effective_item(
            db_session, item_id=fork.id, member=foreign_member
        )

    db_session.expunge_all()
    club_row = await db_session.get(Club, club.id)
    items = await scope.effective_items_for_group(
        db_session, group_id=group.id, club=club_row
    )
    assert [i.id for i in items] == [fork.id]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_active_fork_for_same_club_is_rejected(db_session, persist):
    club, _, _, _, _, item = await _world(persist)

    await scope.fork_item_for_club(
        db_session, item_id=item.id, club_id=club.id, performed_by="admin-1"
    )
    with pytest.raises(InvalidTransition):
        await scope.fork_item_for_club(
            db_session, item_id=item.id, club_id=club.id, performed_by="admin-1"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_retired_fork_falls_back_and_keeps_history(
    db_session, persist, reload, make_user
):
    club, _, member, _, _, item = await _world(persist)
    fork = await scope.fork_item_for_club(
        db_session, item_id=item.id, club_id=club.id, performed_by="admin-1"
    )
    db_session.expunge_all()

    record = await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="answered the club version"),
    )
    assert record.item_id == fork.id

    retired = await scope.retire_fork(
        db_session, fork_id=fork.id, performed_by="admin-1", reason="Back to default"
    )
    assert retired.is_active is False

    local_member = await reload(Member, member.id)
    effective = await scope.resolve_effective_item(
        db_session, item_id=item.id, member=local_member
    )
    assert effective.id == item.id

    kept = (
        await db_session.execute(
            select(ProgressRecord).where(ProgressRecord.item_id == fork.id)
        )
    ).scalar_one()
    assert kept.status == ProgressStatus.PENDING

    audit = (
        await db_session.execute(
            select(ProgressAuditLog).where(
                ProgressAuditLog.action == AuditAction.RETIRE_FORK
            )
        )
    ).scalar_one()
    assert audit.new_value["preserved_progress_records"] == 1
    assert audit.new_value["fallback_item_id"] == str(item.id)

    with pytest.raises(InvalidTransition):
        await scope.retire_fork(
            db_session, fork_id=fork.id, performed_by="admin-1", reason="Again"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_original_item_cannot_be_retired(db_session, persist):
    _, _, _, _, _, item = await _world(persist)

    with pytest.raises(InvalidTransition):
        await scope.retire_fork(
            db_session, fork_id=item.id, performed_by="admin-1", reason="Not a fork"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_retired_fork_record_cannot_be_approved_after_fallback(
    db_session, persist, reload, make_user
):
    club, _, member, _, _, item = await _world(persist)
    fork = await scope.fork_item_for_club(
        db_session, item_id=item.id, club_id=club.id, performed_by="admin-1"
    )
    db_session.expunge_all()
    pathfinder = make_user("pathfinder", club, member)
    counselor = make_user("counselor", club)

    on_fork = await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="club version"),
    )
    assert on_fork.item_id == fork.id
    await scope.retire_fork(
        db_session, fork_id=fork.id, performed_by="admin-1", reason="Back to default"
    )
    db_session.expunge_all()

    on_original = await submit(
        db_session,
        actor=pathfinder,
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="default version"),
    )
    assert on_original.item_id == item.id
    await approval.approve(
        db_session, actor=counselor, member_id=member.id, item_id=item.id
    )
    db_session.expunge_all()

    with pytest.raises(InvalidTransition):
        await approval.approve(
            db_session, actor=counselor, member_id=member.id, item_id=fork.id
        )

    refreshed = await reload(Member, member.id)
    assert refreshed.points_balance == 20
    stale = (
        await db_session.execute(
            select(ProgressRecord).where(ProgressRecord.item_id == fork.id)
        )
    ).scalar_one()
    assert stale.status == ProgressStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_original_shadowed_by_fork_cannot_be_approved(
    db_session, persist, reload, make_user
):
    club, _, member, _, _, item = await _world(persist)
    await submit(
        db_session,
        actor=make_user("pathfinder", club, member),
        member_id=member.id,
        item_id=item.id,
        answer=Answer(text="answered before the fork existed"),
    )
    await scope.fork_item_for_club(
        db_session, item_id=item.id, club_id=club.id, performed_by="admin-1"
    )
    db_session.expunge_all()

    with pytest.raises(InvalidTransition):
        await approval.approve(
            db_session,
            actor=make_user("counselor", club),
            member_id=member.id,
            item_id=item.id,
        )

    refreshed = await reload(Member, member.id)
    assert refreshed.points_balance == 0
