"""Progress event feed schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.progress_service.models.enums import ProgressEventType


class ProgressEventResponse(BaseModel):
    id: int
    event_type: ProgressEventType
    member_id: uuid.UUID
    item_id: Optional[uuid.UUID] = None
    group_id: Optional[uuid.UUID] = None
    event_data: Optional[dict] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProgressEventListResponse(BaseModel):
    events: list[ProgressEventResponse]
    next_after: int
