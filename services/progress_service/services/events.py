"""State-change outbox polled by the notification layer."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.progress_service.models import ProgressEvent, ProgressEventType
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def record_event(
    db: AsyncSession,
    *,
    event_type: ProgressEventType,
    member_id: uuid.UUID,
    item_id: Optional[uuid.UUID] = None,
    group_id: Optional[uuid.UUID] = None,
    data: Optional[dict] = None,
) -> ProgressEvent:
    """Stage an event in the caller's transaction. Never commits."""
    event = ProgressEvent(
        event_type=event_type,
        member_id=member_id,
        item_id=item_id,
        group_id=group_id,
        event_data=data,
    )
    db.add(event)
    logger.debug("Staged %s event for member %s", event_type.value, member_id)
    return event


async def list_events(
    db: AsyncSession,
    *,
    after_id: int = 0,
    limit: int = 100,
    member_id: Optional[uuid.UUID] = None,
) -> list[ProgressEvent]:
    """Events with an id greater than ``after_id``, oldest first."""
    query = select(ProgressEvent).where(ProgressEvent.id > after_id)
    if member_id:
        query = query.where(ProgressEvent.member_id == member_id)
    result = await db.execute(query.order_by(ProgressEvent.id).limit(limit))
    return list(result.scalars().all())
