"""Internal service-to-service progress endpoints.

Called by the notification layer and the certificate service via
service-role JWT, not by frontend clients directly.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_service_role
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.progress_service.schemas import (
    IsCompleteResponse,
    ProgressEventListResponse,
)
from services.progress_service.services import completion
from services.progress_service.services.events import list_events
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/internal/progress", tags=["internal-progress"])


@router.get("/events", response_model=ProgressEventListResponse)
async def poll_events(
    after: int = Query(0, ge=0, description="Last event id already processed"),
    limit: int = Query(100, ge=1, le=500),
    member_id: Optional[uuid.UUID] = None,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """State-change events newer than ``after``, oldest first."""
    events = await list_events(db, after_id=after, limit=limit, member_id=member_id)
    next_after = events[-1].id if events else after
    return ProgressEventListResponse(events=events, next_after=next_after)


@router.get(
    "/members/{member_id}/specialties/{specialty_id}/complete",
    response_model=IsCompleteResponse,
)
async def specialty_is_complete(
    member_id: uuid.UUID,
    specialty_id: uuid.UUID,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Used before issuing a certificate."""
    complete = await completion.is_complete(
        db, member_id=member_id, specialty_id=specialty_id
    )
    return IsCompleteResponse(
        member_id=member_id, specialty_id=specialty_id, complete=complete
    )
