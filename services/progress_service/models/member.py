"""Club hierarchy and member models."""

import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.progress_service.models.enums import MemberRole, enum_values
from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Club(Base):
    """A club and its place in the regional hierarchy."""

    __tablename__ = "clubs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)

    # Hierarchy (union > mission > region > district)
    union: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    mission: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    district: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    participates_in_ranking: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    units: Mapped[list["Unit"]] = relationship(back_populates="club")

    def __repr__(self) -> str:
        return f"<Club {self.name}>"


class Unit(Base):
    """Sub-group of a club used for collective ranking."""

    __tablename__ = "units"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    club_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clubs.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    club: Mapped["Club"] = relationship(back_populates="units")

    def __repr__(self) -> str:
        return f"<Unit {self.name} club={self.club_id}>"


class Member(Base):
    """Club member. Never deleted, only deactivated.

    ``points_balance`` is a cache of the ledger sum for the current
    ``points_epoch``; see ``ledger_ops.recompute``.
    """

    __tablename__ = "members"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    auth_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    club_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clubs.id"), nullable=False, index=True
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("units.id"), nullable=True, index=True
    )
    role: Mapped[MemberRole] = mapped_column(
        SAEnum(
            MemberRole,
            name="member_role_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=MemberRole.PATHFINDER,
        nullable=False,
    )
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    points_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Bumped by an admin balance reset; only entries of the current epoch
    # count toward points_balance.
    points_epoch: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    club: Mapped["Club"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<Member {self.id} balance={self.points_balance}>"
