import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.progress_service.models.enums import (
    CompletionStatus,
    ProgressStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, DateTime, Float
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# PROGRESS RECORDS
# ============================================================================


class ProgressRecord(Base):
    """Status of one member against one effective requirement."""

    __tablename__ = "progress_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id"), nullable=False, index=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assignable_items.id"), nullable=False, index=True
    )

    status: Mapped[ProgressStatus] = mapped_column(
        SAEnum(
            ProgressStatus,
            name="progress_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ProgressStatus.PENDING,
        nullable=False,
    )

    # Answer payload. File answers hold an opaque storage reference only.
    answer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_file_ref: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    quiz_answers: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    quiz_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Review tracking
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Ledger entry that granted the points of the current approval.
    grant_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Optimistic concurrency guard; a lost race raises StaleDataError on flush.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    item = relationship("AssignableItem", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("member_id", "item_id", name="uq_progress_member_item"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ProgressRecord Member={self.member_id} Item={self.item_id} {self.status.value}>"


# ============================================================================
# DERIVED COMPLETION FACTS
# ============================================================================


class SpecialtyCompletion(Base):
    """Member's standing on a specialty. The row exists once it is assigned."""

    __tablename__ = "specialty_completions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id"), nullable=False, index=True
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("curriculum_groups.id"), nullable=False, index=True
    )
    status: Mapped[CompletionStatus] = mapped_column(
        SAEnum(
            CompletionStatus,
            name="completion_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=CompletionStatus.IN_PROGRESS,
        nullable=False,
    )
    awarded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    awarded_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # True when COMPLETED through the admin award shortcut.
    awarded_directly: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    bonus_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    assigned_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("member_id", "group_id", name="uq_specialty_member_group"),
    )

    def __repr__(self):
        return f"<SpecialtyCompletion Member={self.member_id} Group={self.group_id} {self.status.value}>"


class ClassMilestone(Base):
    """Highest class progress milestone (percent) reached by a member."""

    __tablename__ = "class_milestones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id"), nullable=False, index=True
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("curriculum_groups.id"), nullable=False
    )
    milestone: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # threshold (as str) -> ledger entry id of the bonus, for exact reversal
    bonus_entries: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("member_id", "group_id", name="uq_class_milestone_member_group"),
    )
