"""Ranking aggregator: read-only leaderboards over balances and the ledger.

Only active PATHFINDER members count toward unit and club figures. When a
time window is given, points are re-summed from ledger entries of the
member's current epoch instead of using the cached balance.
"""

import math
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from libs.common.config import get_settings
from libs.common.datetime_utils import age_in_years, ensure_utc, utc_now
from services.progress_service.models import (
    AgeBracket,
    Club,
    CurriculumGroup,
    EventParticipation,
    GroupKind,
    Member,
    MemberRole,
    PointsLedgerEntry,
    ProgressRecord,
    ProgressStatus,
    RankingScope,
    Unit,
)
from services.progress_service.services.errors import NotFound
from services.progress_service.services.scope import effective_items_for_group
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

settings = get_settings()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def age_bracket(
    birth_date: Optional[date],
    boundary: Optional[int] = None,
    today: Optional[date] = None,
) -> Optional[AgeBracket]:
    """Younger band is age <= boundary, so the boundary age itself is JUNIOR."""
    if birth_date is None:
        return None
    boundary = settings.AGE_BRACKET_BOUNDARY if boundary is None else boundary
    if age_in_years(birth_date, today) <= boundary:
        return AgeBracket.JUNIOR
    return AgeBracket.SENIOR


def average_points(total: int, count: int) -> float:
    if count == 0:
        return 0.0
    return round(total / count, 1)


def contribution_pct(points: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(points * 100 / total, 1)


def display_pct(percentage: float) -> int:
    """Round half up: 62.5 -> 63."""
    return math.floor(percentage + 0.5)


def event_stars(points: int, percentage: float) -> int:
    """Stars come from the unrounded percentage."""
    if points <= 0:
        return 0
    if percentage >= 90:
        return 5
    if percentage >= 75:
        return 4
    if percentage >= 50:
        return 3
    if percentage >= 25:
        return 2
    return 1


# ---------------------------------------------------------------------------
# Result rows
# ---------------------------------------------------------------------------


@dataclass
class MemberRankingRow:
    rank: int
    member_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    unit_id: Optional[uuid.UUID]
    points: int
    age_bracket: Optional[AgeBracket]


@dataclass
class UnitRankingRow:
    rank: int
    unit_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    member_count: int
    total_points: int
    average_points: float


@dataclass
class UnitMemberContribution:
    member_id: uuid.UUID
    name: str
    points: int
    contribution_pct: float


@dataclass
class UnitRankingDetails:
    unit_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    member_count: int
    total_points: int
    average_points: float
    members: list[UnitMemberContribution] = field(default_factory=list)


@dataclass
class ClubRankingRow:
    rank: int
    club_id: uuid.UUID
    name: str
    union: Optional[str]
    mission: Optional[str]
    region: Optional[str]
    member_count: int
    total_points: int
    average_points: float


@dataclass
class EventRankingRow:
    rank: int
    club_id: uuid.UUID
    name: str
    points: int
    possible_points: int
    percentage: int
    stars: int


@dataclass
class DailyScore:
    day: date
    points: int


# ---------------------------------------------------------------------------
# Shared queries
# ---------------------------------------------------------------------------


async def _points_for(
    db: AsyncSession,
    members: list[Member],
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> dict[uuid.UUID, int]:
    if date_from is None and date_to is None:
        return {m.id: m.points_balance for m in members}
    if not members:
        return {}

    epochs = {m.id: m.points_epoch for m in members}
    query = select(
        PointsLedgerEntry.member_id,
        PointsLedgerEntry.epoch,
        PointsLedgerEntry.amount,
    ).where(PointsLedgerEntry.member_id.in_(list(epochs)))
    if date_from:
        query = query.where(PointsLedgerEntry.created_at >= ensure_utc(date_from))
    if date_to:
        query = query.where(PointsLedgerEntry.created_at <= ensure_utc(date_to))

    totals: dict[uuid.UUID, int] = {member_id: 0 for member_id in epochs}
    for member_id, epoch, amount in (await db.execute(query)).all():
        if epoch == epochs[member_id]:
            totals[member_id] += amount
    return totals


async def _eligible_members(db: AsyncSession, *filters) -> list[Member]:
    result = await db.execute(
        select(Member).where(
            Member.is_active.is_(True),
            Member.role == MemberRole.PATHFINDER,
            *filters,
        )
    )
    return list(result.scalars().all())


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid id: {value}",
        )


def _name_key(name: str, ident: uuid.UUID) -> tuple:
    return (name.lower(), str(ident))


# ---------------------------------------------------------------------------
# Individual ranking
# ---------------------------------------------------------------------------


async def member_ranking(
    db: AsyncSession,
    *,
    scope: RankingScope = RankingScope.GLOBAL,
    scope_key: Optional[str] = None,
    bracket: Optional[AgeBracket] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    include_staff: bool = False,
    limit: Optional[int] = None,
    today: Optional[date] = None,
) -> list[MemberRankingRow]:
    """Individual leaderboard. Parents never rank; staff only on request."""
    query = select(Member).where(
        Member.is_active.is_(True), Member.role != MemberRole.PARENT
    )
    if not include_staff:
        query = query.where(Member.role == MemberRole.PATHFINDER)

    if scope != RankingScope.GLOBAL and not scope_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"scope_key is required for {scope.value} rankings",
        )
    if scope == RankingScope.UNION:
        query = query.join(Club, Club.id == Member.club_id).where(Club.union == scope_key)
    elif scope == RankingScope.MISSION:
        query = query.join(Club, Club.id == Member.club_id).where(
            Club.mission == scope_key
        )
    elif scope == RankingScope.CLUB:
        query = query.where(Member.club_id == _parse_uuid(scope_key))
    elif scope == RankingScope.UNIT:
        query = query.where(Member.unit_id == _parse_uuid(scope_key))

    members = list((await db.execute(query)).scalars().all())
    brackets = {m.id: age_bracket(m.birth_date, today=today) for m in members}
    if bracket:
        members = [m for m in members if brackets[m.id] == bracket]

    points = await _points_for(db, members, date_from, date_to)
    members.sort(key=lambda m: (-points[m.id],) + _name_key(m.name, m.id))
    if limit is None:
        limit = settings.RANKING_LIMIT

    return [
        MemberRankingRow(
            rank=position,
            member_id=m.id,
            name=m.name,
            club_id=m.club_id,
            unit_id=m.unit_id,
            points=points[m.id],
            age_bracket=brackets[m.id],
        )
        for position, m in enumerate(members[:limit], start=1)
    ]


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


async def unit_ranking(
    db: AsyncSession,
    *,
    club_id: Optional[uuid.UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[UnitRankingRow]:
    """Units ordered by average points of their eligible members."""
    query = select(Unit)
    if club_id:
        query = query.where(Unit.club_id == club_id)
    units = list((await db.execute(query)).scalars().all())
    if not units:
        return []

    members = await _eligible_members(db, Member.unit_id.in_([u.id for u in units]))
    points = await _points_for(db, members, date_from, date_to)
    by_unit: dict[uuid.UUID, list[Member]] = defaultdict(list)
    for member in members:
        by_unit[member.unit_id].append(member)

    rows = []
    for unit in units:
        unit_members = by_unit.get(unit.id, [])
        total = sum(points[m.id] for m in unit_members)
        rows.append(
            UnitRankingRow(
                rank=0,
                unit_id=unit.id,
                name=unit.name,
                club_id=unit.club_id,
                member_count=len(unit_members),
                total_points=total,
                average_points=average_points(total, len(unit_members)),
            )
        )
    rows.sort(
        key=lambda r: (-r.average_points, -r.total_points)
        + _name_key(r.name, r.unit_id)
    )
    for position, row in enumerate(rows, start=1):
        row.rank = position
    return rows


async def unit_ranking_details(
    db: AsyncSession,
    *,
    unit_id: uuid.UUID,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> UnitRankingDetails:
    unit = await db.get(Unit, unit_id)
    if not unit:
        raise NotFound(f"Unit {unit_id} not found")

    members = await _eligible_members(db, Member.unit_id == unit.id)
    points = await _points_for(db, members, date_from, date_to)
    total = sum(points.values())
    members.sort(key=lambda m: (-points[m.id],) + _name_key(m.name, m.id))

    return UnitRankingDetails(
        unit_id=unit.id,
        name=unit.name,
        club_id=unit.club_id,
        member_count=len(members),
        total_points=total,
        average_points=average_points(total, len(members)),
        members=[
            UnitMemberContribution(
                member_id=m.id,
                name=m.name,
                points=points[m.id],
                contribution_pct=contribution_pct(points[m.id], total),
            )
            for m in members
        ],
    )


# ---------------------------------------------------------------------------
# Clubs
# ---------------------------------------------------------------------------


async def club_ranking(
    db: AsyncSession,
    *,
    union: Optional[str] = None,
    mission: Optional[str] = None,
    region: Optional[str] = None,
    district: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[ClubRankingRow]:
    """Clubs taking part in rankings, ordered by average points."""
    query = select(Club).where(
        Club.is_active.is_(True), Club.participates_in_ranking.is_(True)
    )
    for column, value in (
        (Club.union, union),
        (Club.mission, mission),
        (Club.region, region),
        (Club.district, district),
    ):
        if value:
            query = query.where(column == value)
    clubs = list((await db.execute(query)).scalars().all())
    if not clubs:
        return []

    members = await _eligible_members(db, Member.club_id.in_([c.id for c in clubs]))
    points = await _points_for(db, members, date_from, date_to)
    by_club: dict[uuid.UUID, list[Member]] = defaultdict(list)
    for member in members:
        by_club[member.club_id].append(member)

    rows = []
    for club in clubs:
        club_members = by_club.get(club.id, [])
        total = sum(points[m.id] for m in club_members)
        rows.append(
            ClubRankingRow(
                rank=0,
                club_id=club.id,
                name=club.name,
                union=club.union,
                mission=club.mission,
                region=club.region,
                member_count=len(club_members),
                total_points=total,
                average_points=average_points(total, len(club_members)),
            )
        )
    rows.sort(
        key=lambda r: (-r.average_points, -r.total_points)
        + _name_key(r.name, r.club_id)
    )
    for position, row in enumerate(rows, start=1):
        row.rank = position
    return rows


# ---------------------------------------------------------------------------
# Regional events
# ---------------------------------------------------------------------------


async def _event_clubs(db: AsyncSession, event: CurriculumGroup) -> list[Club]:
    participants = await db.execute(
        select(Club)
        .join(EventParticipation, EventParticipation.club_id == Club.id)
        .where(EventParticipation.group_id == event.id)
    )
    clubs = list(participants.scalars().all())
    if clubs:
        return clubs

    # Open event: every active club inside its hierarchy scope
    query = select(Club).where(Club.is_active.is_(True))
    for column, value in (
        (Club.union, event.union),
        (Club.mission, event.mission),
        (Club.region, event.region),
        (Club.district, event.district),
    ):
        if value:
            query = query.where(column == value)
    return list((await db.execute(query)).scalars().all())


async def event_ranking(db: AsyncSession, *, group_id: uuid.UUID) -> list[EventRankingRow]:
    """Per club: value of distinct event requirements approved for any member."""
    event = await db.get(CurriculumGroup, group_id)
    if not event or event.kind != GroupKind.REGIONAL_EVENT:
        raise NotFound(f"Regional event {group_id} not found")

    rows = []
    for club in await _event_clubs(db, event):
        items = await effective_items_for_group(db, group_id=event.id, club=club)
        possible = sum(i.point_value for i in items)
        approved_ids: set[uuid.UUID] = set()
        if items:
            result = await db.execute(
                select(ProgressRecord.item_id)
                .join(Member, Member.id == ProgressRecord.member_id)
                .where(
                    Member.club_id == club.id,
                    ProgressRecord.status == ProgressStatus.APPROVED,
                    ProgressRecord.item_id.in_([i.id for i in items]),
                )
                .distinct()
            )
            approved_ids = set(result.scalars().all())
        points = sum(i.point_value for i in items if i.id in approved_ids)
        raw_pct = points * 100 / possible if possible else 0.0
        rows.append(
            EventRankingRow(
                rank=0,
                club_id=club.id,
                name=club.name,
                points=points,
                possible_points=possible,
                percentage=display_pct(raw_pct),
                stars=event_stars(points, raw_pct),
            )
        )

    rows.sort(key=lambda r: (-r.points,) + _name_key(r.name, r.club_id))
    for position, row in enumerate(rows, start=1):
        row.rank = position
    return rows


# ---------------------------------------------------------------------------
# Recent scores
# ---------------------------------------------------------------------------


async def recent_scores(
    db: AsyncSession,
    *,
    club_id: uuid.UUID,
    days: Optional[int] = None,
    today: Optional[date] = None,
) -> list[DailyScore]:
    """Net points credited to the club's members per UTC day, oldest first."""
    club = await db.get(Club, club_id)
    if not club:
        raise NotFound(f"Club {club_id} not found")

    days = days or settings.RECENT_SCORES_DAYS
    today = today or utc_now().date()
    first_day = today - timedelta(days=days - 1)
    since = datetime.combine(first_day, time.min, tzinfo=timezone.utc)

    result = await db.execute(
        select(PointsLedgerEntry.created_at, PointsLedgerEntry.amount)
        .join(Member, Member.id == PointsLedgerEntry.member_id)
        .where(Member.club_id == club.id, PointsLedgerEntry.created_at >= since)
    )
    per_day: dict[date, int] = defaultdict(int)
    for created_at, amount in result.all():
        per_day[ensure_utc(created_at).date()] += amount

    window = [first_day + timedelta(days=offset) for offset in range(days)]
    return [DailyScore(day=day, points=per_day.get(day, 0)) for day in window]
