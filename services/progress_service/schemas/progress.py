"""Progress request/response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.progress_service.models.enums import CompletionStatus, ProgressStatus


class SubmitProgressRequest(BaseModel):
    """Answer payload. ``member_id`` lets staff enter answers for a member."""

    member_id: Optional[uuid.UUID] = None
    answer_text: Optional[str] = None
    answer_file_ref: Optional[str] = Field(
        default=None, description="Opaque reference returned by attachment storage"
    )
    quiz_answers: Optional[dict[str, int]] = Field(
        default=None, description="Question id -> chosen option index"
    )


class ProgressResponse(BaseModel):
    id: Optional[uuid.UUID] = None
    member_id: uuid.UUID
    item_id: uuid.UUID
    status: ProgressStatus
    answer_text: Optional[str] = None
    answer_file_ref: Optional[str] = None
    quiz_answers: Optional[dict[str, int]] = None
    quiz_score: Optional[float] = None
    submitted_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProgressListResponse(BaseModel):
    records: list[ProgressResponse]
    total: int


class SpecialtyCompletionResponse(BaseModel):
    id: uuid.UUID
    member_id: uuid.UUID
    group_id: uuid.UUID
    status: CompletionStatus
    awarded_at: Optional[datetime] = None
    awarded_by: Optional[str] = None
    awarded_directly: bool = False
    assigned_by: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignSpecialtyRequest(BaseModel):
    member_id: Optional[uuid.UUID] = None


class IsCompleteResponse(BaseModel):
    member_id: uuid.UUID
    specialty_id: uuid.UUID
    complete: bool
