"""Append-only points ledger."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.progress_service.models.enums import LedgerSource, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class PointsLedgerEntry(Base):
    """Immutable, signed point transaction. Source of truth for balances.

    Corrections are new entries pointing back at the original through
    ``reverses_entry_id``. The only hard delete is ``delete_history``.
    """

    __tablename__ = "points_ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[LedgerSource] = mapped_column(
        SAEnum(
            LedgerSource,
            name="ledger_source_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    reference_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    reverses_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String, unique=True, nullable=True
    )
    reason: Mapped[str] = mapped_column(String, nullable=False)
    # Balance epoch of the member when the entry was written.
    epoch: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_ledger_amount_nonzero"),
        Index("ix_points_ledger_member_created", "member_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<PointsLedgerEntry {self.id} {self.source.value} {self.amount:+d}>"
