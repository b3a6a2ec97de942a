"""Administrative audit trail and state-change event outbox."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.progress_service.models.enums import (
    AuditAction,
    ProgressEventType,
    enum_values,
)
from sqlalchemy import JSON, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class ProgressAuditLog(Base):
    """Tracks sensitive admin operations on progress and points."""

    __tablename__ = "progress_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="progress_audit_action_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    performed_by: Mapped[str] = mapped_column(String, nullable=False)
    member_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    target_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    old_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProgressAuditLog {self.id} {self.action.value}>"


class ProgressEvent(Base):
    """State-change events for the notification layer to poll."""

    __tablename__ = "progress_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[ProgressEventType] = mapped_column(
        SAEnum(
            ProgressEventType,
            name="progress_event_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    member_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    group_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    event_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProgressEvent {self.id} {self.event_type.value} {self.member_id}>"
