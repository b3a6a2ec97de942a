"""Curriculum models: classes, specialties, regional events and their requirements."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.progress_service.models.enums import (
    AnswerType,
    GroupKind,
    ItemKind,
    ItemScope,
    enum_values,
)
from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class CurriculumGroup(Base):
    """Parent of a set of requirements: a class, a specialty or a regional event."""

    __tablename__ = "curriculum_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[GroupKind] = mapped_column(
        SAEnum(
            GroupKind,
            name="group_kind_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    area: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Specialties: points granted when the specialty is completed.
    completion_bonus: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Classes: {"25": 100, "50": 200, ...} percent threshold -> bonus points.
    milestone_bonuses: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Regional events: submission window and hierarchy scope.
    start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    union: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    mission: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    district: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    items: Mapped[list["AssignableItem"]] = relationship(back_populates="group")

    __table_args__ = (
        CheckConstraint("completion_bonus >= 0", name="ck_group_bonus_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<CurriculumGroup {self.kind.value} {self.name}>"


class EventParticipation(Base):
    """Club explicitly enrolled in a regional event."""

    __tablename__ = "event_participations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("curriculum_groups.id", ondelete="CASCADE"), nullable=False
    )
    club_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clubs.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("group_id", "club_id", name="uq_event_participation"),
    )


class AssignableItem(Base):
    """A requirement. One shape for every kind; ``group_id`` links the parent.

    Club- or region-specific forks point at the global original through
    ``origin_item_id``; the pair (logical id, member club) resolves to exactly
    one effective item (see ``services.scope``).
    """

    __tablename__ = "assignable_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("curriculum_groups.id"), nullable=False, index=True
    )
    kind: Mapped[ItemKind] = mapped_column(
        SAEnum(
            ItemKind,
            name="item_kind_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    point_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    answer_type: Mapped[AnswerType] = mapped_column(
        SAEnum(
            AnswerType,
            name="answer_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=AnswerType.TEXT,
        nullable=False,
    )

    start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Scope
    scope: Mapped[ItemScope] = mapped_column(
        SAEnum(
            ItemScope,
            name="item_scope_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ItemScope.GLOBAL,
        nullable=False,
    )
    club_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("clubs.id"), nullable=True, index=True
    )
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    origin_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("assignable_items.id"), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    group: Mapped["CurriculumGroup"] = relationship(
        back_populates="items", lazy="selectin"
    )
    questions: Mapped[list["ItemQuizQuestion"]] = relationship(
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ItemQuizQuestion.position",
    )

    __table_args__ = (
        CheckConstraint("point_value >= 0", name="ck_item_points_non_negative"),
    )

    @property
    def logical_id(self) -> uuid.UUID:
        return self.origin_item_id or self.id

    def __repr__(self) -> str:
        return f"<AssignableItem {self.kind.value} {self.code or self.id}>"


class ItemQuizQuestion(Base):
    __tablename__ = "item_quiz_questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assignable_items.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSON, nullable=False)
    correct_option: Mapped[int] = mapped_column(Integer, nullable=False)

    item: Mapped["AssignableItem"] = relationship(back_populates="questions")
