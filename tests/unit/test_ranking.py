"""Unit tests for the ranking aggregator."""

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from libs.common.datetime_utils import utc_now
from services.progress_service.models import (
    AgeBracket,
    EventParticipation,
    GroupKind,
    ItemKind,
    LedgerSource,
    MemberRole,
    PointsLedgerEntry,
    ProgressRecord,
    ProgressStatus,
    RankingScope,
)
from services.progress_service.services import ranking
from tests.factories import (
    ClubFactory,
    GroupFactory,
    ItemFactory,
    MemberFactory,
    UnitFactory,
)


def _entry(member, amount, created_at, epoch=0):
    return PointsLedgerEntry(
        member_id=member.id,
        amount=amount,
        source=LedgerSource.ACTIVITY,
        reason="activity",
        created_by="tester",
        epoch=epoch,
        balance_after=amount,
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_age_bracket_boundary_belongs_to_younger_band():
    today = date(2026, 3, 1)
    assert ranking.age_bracket(date(2014, 12, 31), boundary=12, today=today) == (
        AgeBracket.JUNIOR
    )
    assert ranking.age_bracket(date(2013, 1, 1), boundary=12, today=today) == (
        AgeBracket.SENIOR
    )
    assert ranking.age_bracket(None) is None


@pytest.mark.unit
def test_averages_and_contributions_never_divide_by_zero():
    assert ranking.average_points(0, 0) == 0.0
    assert ranking.average_points(100, 3) == 33.3
    assert ranking.contribution_pct(0, 0) == 0.0
    assert ranking.contribution_pct(25, 100) == 25.0


@pytest.mark.unit
def test_event_stars():
    assert ranking.event_stars(0, 0) == 0
    assert ranking.event_stars(10, 10) == 1
    assert ranking.event_stars(30, 50) == 3
    assert ranking.event_stars(90, 95) == 5
    assert ranking.event_stars(896, 89.6) == 4


@pytest.mark.unit
def test_event_percentage_rounds_half_up_for_display():
    assert ranking.display_pct(89.6) == 90
    assert ranking.display_pct(62.5) == 63
    assert ranking.display_pct(12.4) == 12


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_member_ranking_orders_by_points_then_name(db_session, persist):
    club = ClubFactory.create()
    ana = MemberFactory.create(club_id=club.id, name="Ana", points_balance=50)
    bia = MemberFactory.create(club_id=club.id, name="bia", points_balance=50)
    caio = MemberFactory.create(club_id=club.id, name="Caio", points_balance=80)
    staff = MemberFactory.create(
        club_id=club.id, name="Director", role=MemberRole.DIRECTOR, points_balance=500
    )
    parent = MemberFactory.create(
        club_id=club.id, name="Parent", role=MemberRole.PARENT, points_balance=900
    )
    await persist(club, ana, bia, caio, staff, parent)

    rows = await ranking.member_ranking(
        db_session, scope=RankingScope.CLUB, scope_key=str(club.id)
    )
    assert [(r.rank, r.name, r.points) for r in rows] == [
        (1, "Caio", 80),
        (2, "Ana", 50),
        (3, "bia", 50),
    ]

    with_staff = await ranking.member_ranking(
        db_session,
        scope=RankingScope.CLUB,
        scope_key=str(club.id),
        include_staff=True,
    )
    assert [r.name for r in with_staff] == ["Director", "Caio", "Ana", "bia"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_member_ranking_splits_age_brackets(db_session, persist):
    club = ClubFactory.create()
    junior = MemberFactory.create(club_id=club.id, birth_date=date(2014, 6, 1))
    senior = MemberFactory.create(club_id=club.id, birth_date=date(2010, 6, 1))
    await persist(club, junior, senior)

    rows = await ranking.member_ranking(
        db_session,
        bracket=AgeBracket.SENIOR,
        today=date(2026, 1, 1),
    )
    assert [r.member_id for r in rows] == [senior.id]
    assert rows[0].age_bracket == AgeBracket.SENIOR


@pytest.mark.asyncio
@pytest.mark.unit
async def test_scoped_member_ranking_requires_key(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await ranking.member_ranking(db_session, scope=RankingScope.UNIT)
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.unit
async def test_time_window_resums_current_epoch_entries(db_session, persist):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id, points_balance=70, points_epoch=1)
    now = utc_now()
    await persist(
        club,
        member,
        _entry(member, 40, now - timedelta(days=40), epoch=1),
        _entry(member, 30, now - timedelta(days=2), epoch=1),
        _entry(member, 500, now - timedelta(days=1), epoch=0),
    )

    rows = await ranking.member_ranking(
        db_session, date_from=now - timedelta(days=7), date_to=now
    )
    assert rows[0].points == 30

    rows = await ranking.member_ranking(db_session)
    assert rows[0].points == 70


# ---------------------------------------------------------------------------
# Units and clubs
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unit_ranking_uses_average_and_handles_empty_units(db_session, persist):
    club = ClubFactory.create()
    big = UnitFactory.create(club_id=club.id, name="Eagles")
    small = UnitFactory.create(club_id=club.id, name="Owls")
    empty = UnitFactory.create(club_id=club.id, name="Foxes")
    await persist(
        club,
        big,
        small,
        empty,
        MemberFactory.create(club_id=club.id, unit_id=big.id, points_balance=30),
        MemberFactory.create(club_id=club.id, unit_id=big.id, points_balance=30),
        MemberFactory.create(club_id=club.id, unit_id=big.id, points_balance=30),
        MemberFactory.create(club_id=club.id, unit_id=small.id, points_balance=40),
        MemberFactory.create(
            club_id=club.id,
            unit_id=small.id,
            role=MemberRole.COUNSELOR,
            points_balance=1000,
        ),
    )

    rows = await ranking.unit_ranking(db_session, club_id=club.id)
    assert [(r.name, r.total_points, r.average_points) for r in rows] == [
        ("Owls", 40, 40.0),
        ("Eagles", 90, 30.0),
        ("Foxes", 0, 0.0),
    ]
    assert rows[2].member_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unit_details_report_contribution(db_session, persist):
    club = ClubFactory.create()
    unit = UnitFactory.create(club_id=club.id)
    leader = MemberFactory.create(
        club_id=club.id, unit_id=unit.id, name="Leader", points_balance=75
    )
    helper = MemberFactory.create(
        club_id=club.id, unit_id=unit.id, name="Helper", points_balance=25
    )
    await persist(club, unit, leader, helper)

    details = await ranking.unit_ranking_details(db_session, unit_id=unit.id)
    assert details.total_points == 100
    assert details.average_points == 50.0
    assert [(m.name, m.contribution_pct) for m in details.members] == [
        ("Leader", 75.0),
        ("Helper", 25.0),
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unit_details_with_zero_points(db_session, persist):
    club = ClubFactory.create()
    unit = UnitFactory.create(club_id=club.id)
    member = MemberFactory.create(club_id=club.id, unit_id=unit.id)
    await persist(club, unit, member)

    details = await ranking.unit_ranking_details(db_session, unit_id=unit.id)
    assert details.members[0].contribution_pct == 0.0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_club_ranking_filters_hierarchy_and_participation(db_session, persist):
    north_a = ClubFactory.create(name="Alpha", region="North")
    north_b = ClubFactory.create(name="Beta", region="North")
    opted_out = ClubFactory.create(
        name="Gamma", region="North", participates_in_ranking=False
    )
    south = ClubFactory.create(name="Delta", region="South")
    await persist(
        north_a,
        north_b,
        opted_out,
        south,
        MemberFactory.create(club_id=north_a.id, points_balance=10),
        MemberFactory.create(club_id=north_b.id, points_balance=60),
        MemberFactory.create(club_id=opted_out.id, points_balance=99),
        MemberFactory.create(club_id=south.id, points_balance=500),
    )

    rows = await ranking.club_ranking(db_session, region="North")
    assert [(r.rank, r.name) for r in rows] == [(1, "Beta"), (2, "Alpha")]


# ---------------------------------------------------------------------------
# Events and recent scores
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_event_ranking_counts_distinct_approved_requirements(db_session, persist):
    strong = ClubFactory.create(name="Strong")
    weak = ClubFactory.create(name="Weak")
    event = GroupFactory.create(kind=GroupKind.REGIONAL_EVENT)
    first = ItemFactory.create(
        group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT, point_value=60
    )
    second = ItemFactory.create(
        group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT, point_value=40
    )
    s1 = MemberFactory.create(club_id=strong.id)
    s2 = MemberFactory.create(club_id=strong.id)
    w1 = MemberFactory.create(club_id=weak.id)
    await persist(
        strong,
        weak,
        event,
        first,
        second,
        s1,
        s2,
        w1,
        EventParticipation(group_id=event.id, club_id=strong.id),
        EventParticipation(group_id=event.id, club_id=weak.id),
        ProgressRecord(member_id=s1.id, item_id=first.id, status=ProgressStatus.APPROVED),
        ProgressRecord(member_id=s2.id, item_id=first.id, status=ProgressStatus.APPROVED),
        ProgressRecord(member_id=s2.id, item_id=second.id, status=ProgressStatus.APPROVED),
        ProgressRecord(member_id=w1.id, item_id=second.id, status=ProgressStatus.PENDING),
    )

    rows = await ranking.event_ranking(db_session, group_id=event.id)
    assert [(r.name, r.points, r.percentage, r.stars) for r in rows] == [
        ("Strong", 100, 100, 5),
        ("Weak", 0, 0, 0),
    ]
    assert rows[0].possible_points == 100


@pytest.mark.asyncio
@pytest.mark.unit
async def test_recent_scores_fill_missing_days(db_session, persist):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    today = utc_now().date()
    noon = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc) + timedelta(
        hours=12
    )
    await persist(
        club,
        member,
        _entry(member, 15, noon),
        _entry(member, -5, noon - timedelta(hours=1)),
        _entry(member, 20, noon - timedelta(days=2)),
        _entry(member, 99, noon - timedelta(days=10)),
    )

    scores = await ranking.recent_scores(db_session, club_id=club.id, days=3, today=today)
    assert [(s.day, s.points) for s in scores] == [
        (today - timedelta(days=2), 20),
        (today - timedelta(days=1), 0),
        (today, 10),
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_event_stars_use_unrounded_percentage(db_session, persist):
    club = ClubFactory.create(name="Almost")
    event = GroupFactory.create(kind=GroupKind.REGIONAL_EVENT)
    big = ItemFactory.create(
        group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT, point_value=896
    )
    small = ItemFactory.create(
        group_id=event.id, kind=ItemKind.EVENT_REQUIREMENT, point_value=104
    )
    member = MemberFactory.create(club_id=club.id)
    await persist(
        club,
        event,
        big,
        small,
        member,
        EventParticipation(group_id=event.id, club_id=club.id),
        ProgressRecord(member_id=member.id, item_id=big.id, status=ProgressStatus.APPROVED),
    )

    [row] = await ranking.event_ranking(db_session, group_id=event.id)
    assert (row.points, row.possible_points) == (896, 1000)
    # 89.6% displays as 90 but stays below the five-star threshold
    assert row.percentage == 90
    assert row.stars == 4
