"""Ranking response schemas."""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.progress_service.models.enums import AgeBracket


class MemberRankingEntry(BaseModel):
    rank: int
    member_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    points: int
    age_bracket: Optional[AgeBracket] = None

    model_config = ConfigDict(from_attributes=True)


class UnitRankingEntry(BaseModel):
    rank: int
    unit_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    member_count: int
    total_points: int
    average_points: float

    model_config = ConfigDict(from_attributes=True)


class UnitMemberContributionEntry(BaseModel):
    member_id: uuid.UUID
    name: str
    points: int
    contribution_pct: float

    model_config = ConfigDict(from_attributes=True)


class UnitRankingDetailsResponse(BaseModel):
    unit_id: uuid.UUID
    name: str
    club_id: uuid.UUID
    member_count: int
    total_points: int
    average_points: float
    members: list[UnitMemberContributionEntry]

    model_config = ConfigDict(from_attributes=True)


class ClubRankingEntry(BaseModel):
    rank: int
    club_id: uuid.UUID
    name: str
    union: Optional[str] = None
    mission: Optional[str] = None
    region: Optional[str] = None
    member_count: int
    total_points: int
    average_points: float

    model_config = ConfigDict(from_attributes=True)


class EventRankingEntry(BaseModel):
    rank: int
    club_id: uuid.UUID
    name: str
    points: int
    possible_points: int
    percentage: int
    stars: int

    model_config = ConfigDict(from_attributes=True)


class DailyScoreEntry(BaseModel):
    day: date
    points: int

    model_config = ConfigDict(from_attributes=True)
