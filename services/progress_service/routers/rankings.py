"""Leaderboard endpoints. Read-only."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.progress_service.models import AgeBracket, RankingScope
from services.progress_service.schemas import (
    ClubRankingEntry,
    DailyScoreEntry,
    EventRankingEntry,
    MemberRankingEntry,
    UnitRankingDetailsResponse,
    UnitRankingEntry,
)
from services.progress_service.services import ranking
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/rankings", tags=["rankings"])


@router.get("/members", response_model=list[MemberRankingEntry])
async def member_leaderboard(
    scope: RankingScope = RankingScope.GLOBAL,
    scope_key: Optional[str] = Query(
        None, description="Union/mission name, or club/unit id"
    ),
    age_bracket: Optional[AgeBracket] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    include_staff: bool = False,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await ranking.member_ranking(
        db,
        scope=scope,
        scope_key=scope_key,
        bracket=age_bracket,
        date_from=date_from,
        date_to=date_to,
        include_staff=include_staff,
        limit=limit,
    )
    return [MemberRankingEntry.model_validate(r) for r in rows]


@router.get("/units", response_model=list[UnitRankingEntry])
async def unit_leaderboard(
    club_id: Optional[uuid.UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await ranking.unit_ranking(
        db, club_id=club_id, date_from=date_from, date_to=date_to
    )
    return [UnitRankingEntry.model_validate(r) for r in rows]


@router.get("/units/{unit_id}", response_model=UnitRankingDetailsResponse)
async def unit_details(
    unit_id: uuid.UUID,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Unit totals with each member's contribution."""
    details = await ranking.unit_ranking_details(
        db, unit_id=unit_id, date_from=date_from, date_to=date_to
    )
    return UnitRankingDetailsResponse.model_validate(details)


@router.get("/clubs", response_model=list[ClubRankingEntry])
async def club_leaderboard(
    union: Optional[str] = None,
    mission: Optional[str] = None,
    region: Optional[str] = None,
    district: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await ranking.club_ranking(
        db,
        union=union,
        mission=mission,
        region=region,
        district=district,
        date_from=date_from,
        date_to=date_to,
    )
    return [ClubRankingEntry.model_validate(r) for r in rows]


@router.get("/events/{group_id}", response_model=list[EventRankingEntry])
async def event_leaderboard(
    group_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Regional event standings with star ratings."""
    rows = await ranking.event_ranking(db, group_id=group_id)
    return [EventRankingEntry.model_validate(r) for r in rows]


@router.get("/clubs/{club_id}/recent-scores", response_model=list[DailyScoreEntry])
async def club_recent_scores(
    club_id: uuid.UUID,
    days: Optional[int] = Query(None, ge=1, le=90),
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await ranking.recent_scores(db, club_id=club_id, days=days)
    return [DailyScoreEntry.model_validate(r) for r in rows]
