"""Reviewer and admin schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.progress_service.models.enums import AuditAction, ItemScope
from services.progress_service.schemas.progress import (
    ProgressResponse,
    SpecialtyCompletionResponse,
)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Shown to the member")


class RevokeRequest(BaseModel):
    reason: str = Field(default="Approval revoked", min_length=1)


class DeleteHistoryResponse(BaseModel):
    member_id: uuid.UUID
    item_id: uuid.UUID
    deleted_entries: int
    balance_delta: int
    balance: int


class AwardSpecialtyRequest(BaseModel):
    member_id: uuid.UUID
    reason: str = Field(..., min_length=5)


class PendingQueueResponse(BaseModel):
    records: list[ProgressResponse]
    waiting_specialties: list[SpecialtyCompletionResponse]


class ForkItemRequest(BaseModel):
    club_id: uuid.UUID
    description: Optional[str] = None
    point_value: Optional[int] = Field(default=None, ge=0)


class RetireForkRequest(BaseModel):
    reason: str = Field(..., min_length=5)


class ItemResponse(BaseModel):
    id: uuid.UUID
    group_id: uuid.UUID
    code: Optional[str] = None
    description: str
    point_value: int
    scope: ItemScope
    club_id: Optional[uuid.UUID] = None
    region: Optional[str] = None
    origin_item_id: Optional[uuid.UUID] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AuditLogEntry(BaseModel):
    id: uuid.UUID
    action: AuditAction
    performed_by: str
    member_id: Optional[uuid.UUID] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None
    reason: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogEntry]
    total: int
    skip: int
    limit: int
