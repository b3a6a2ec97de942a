"""Points ledger operations: append-only entries with a cached member balance.

The ledger is the source of truth. ``Member.points_balance`` caches the sum
of the member's entries in the current ``points_epoch`` and is updated in
the same transaction as every append.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.progress_service.models import (
    AuditAction,
    LedgerSource,
    Member,
    PointsLedgerEntry,
    ProgressEventType,
)
from services.progress_service.services.audit import record_audit
from services.progress_service.services.errors import (
    InvalidTransition,
    LedgerInconsistency,
    NotFound,
)
from services.progress_service.services.events import record_event
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class RecomputeResult:
    member_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    repaired: bool = False

    @property
    def drift(self) -> int:
        return self.cached_balance - self.ledger_balance


# ---------------------------------------------------------------------------
# Locking helpers
# ---------------------------------------------------------------------------


async def get_member(db: AsyncSession, member_id: uuid.UUID) -> Member:
    member = await db.get(Member, member_id)
    if not member:
        raise NotFound(f"Member {member_id} not found")
    return member


async def lock_member(db: AsyncSession, member_id: uuid.UUID) -> Member:
    """SELECT ... FOR UPDATE on the member row guarding the balance cache."""
    result = await db.execute(
        select(Member)
        .where(Member.id == member_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    member = result.scalar_one_or_none()
    if not member:
        raise NotFound(f"Member {member_id} not found")
    return member


# ---------------------------------------------------------------------------
# Append (in-transaction building blocks)
# ---------------------------------------------------------------------------


async def append_entry(
    db: AsyncSession,
    *,
    member: Member,
    amount: int,
    source: LedgerSource,
    reason: str,
    created_by: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    reverses_entry_id: Optional[uuid.UUID] = None,
    idempotency_key: Optional[str] = None,
    epoch: Optional[int] = None,
) -> PointsLedgerEntry:
    """Insert an entry and update the cache. Caller holds the member lock and commits.

    An entry written for an older ``epoch`` (the inverse of a grant made
    before a balance reset) is recorded but does not move the current balance.
    """
    if amount == 0:
        raise ValueError("Ledger entries must carry a non-zero amount")

    entry_epoch = member.points_epoch if epoch is None else epoch
    if entry_epoch == member.points_epoch:
        member.points_balance += amount
        member.updated_at = utc_now()

    entry = PointsLedgerEntry(
        member_id=member.id,
        amount=amount,
        source=source,
        reason=reason,
        created_by=created_by,
        reference_type=reference_type,
        reference_id=reference_id,
        reverses_entry_id=reverses_entry_id,
        idempotency_key=idempotency_key,
        epoch=entry_epoch,
        balance_after=member.points_balance,
    )
    db.add(entry)
    await db.flush()
    return entry


async def append_inverse(
    db: AsyncSession,
    *,
    member: Member,
    original_id: uuid.UUID,
    reason: str,
    created_by: str,
) -> PointsLedgerEntry:
    """Append the exact inverse of ``original_id``. Caller holds the member lock."""
    original = await db.get(PointsLedgerEntry, original_id)
    if not original or original.member_id != member.id:
        raise LedgerInconsistency(
            f"Ledger entry {original_id} referenced by member {member.id} is missing"
        )

    already = await db.execute(
        select(PointsLedgerEntry.id).where(
            PointsLedgerEntry.reverses_entry_id == original.id
        )
    )
    if already.first():
        raise InvalidTransition(f"Ledger entry {original.id} was already reversed")

    return await append_entry(
        db,
        member=member,
        amount=-original.amount,
        source=original.source,
        reason=reason,
        created_by=created_by,
        reference_type=original.reference_type,
        reference_id=original.reference_id,
        reverses_entry_id=original.id,
        epoch=original.epoch,
    )


async def ledger_sum(db: AsyncSession, *, member_id: uuid.UUID, epoch: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(PointsLedgerEntry.amount), 0)).where(
            PointsLedgerEntry.member_id == member_id,
            PointsLedgerEntry.epoch == epoch,
        )
    )
    return int(result.scalar() or 0)


# ---------------------------------------------------------------------------
# Append (atomic, standalone)
# ---------------------------------------------------------------------------


async def append(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    amount: int,
    source: LedgerSource,
    reason: str,
    created_by: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> PointsLedgerEntry:
    """Atomically append one entry.

    1. Check idempotency: return the existing entry if the key exists
    2. SELECT FOR UPDATE on the member row
    3. Insert the entry with a balance snapshot and update the cache
    4. Commit
    """
    if amount == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Amount cannot be zero",
        )

    if idempotency_key:
        result = await db.execute(
            select(PointsLedgerEntry).where(
                PointsLedgerEntry.idempotency_key == idempotency_key
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            logger.info(
                "Idempotent replay for key=%s -> entry=%s", idempotency_key, existing.id
            )
            return existing

    member = await lock_member(db, member_id)
    entry = await append_entry(
        db,
        member=member,
        amount=amount,
        source=source,
        reason=reason,
        created_by=created_by,
        reference_type=reference_type,
        reference_id=reference_id,
        idempotency_key=idempotency_key,
    )
    record_event(
        db,
        event_type=ProgressEventType.POINTS_AWARDED,
        member_id=member.id,
        data={"amount": amount, "source": source.value, "entry_id": str(entry.id)},
    )

    await db.commit()
    await db.refresh(entry)
    logger.info(
        "Appended %s entry %s for member %s: %+d (balance=%d)",
        source.value,
        entry.id,
        member_id,
        amount,
        entry.balance_after,
    )
    return entry


async def adjust(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    amount: int,
    reason: str,
    performed_by: str,
    idempotency_key: Optional[str] = None,
) -> PointsLedgerEntry:
    """Manual correction: a MANUAL_ADJUSTMENT entry plus an audit row."""
    if amount == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Amount cannot be zero",
        )

    member = await lock_member(db, member_id)
    old_balance = member.points_balance
    entry = await append_entry(
        db,
        member=member,
        amount=amount,
        source=LedgerSource.MANUAL_ADJUSTMENT,
        reason=reason,
        created_by=performed_by,
        reference_type="adjustment",
        idempotency_key=idempotency_key,
    )
    record_audit(
        db,
        action=AuditAction.MANUAL_ADJUSTMENT,
        performed_by=performed_by,
        member_id=member.id,
        target_type="ledger_entry",
        target_id=str(entry.id),
        old_value={"balance": old_balance},
        new_value={"balance": member.points_balance, "amount": amount},
        reason=reason,
    )

    await db.commit()
    await db.refresh(entry)
    logger.info(
        "Admin %s adjusted member %s by %+d: %s",
        performed_by,
        member_id,
        amount,
        reason,
    )
    return entry


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def balance(db: AsyncSession, *, member_id: uuid.UUID) -> int:
    member = await get_member(db, member_id)
    return member.points_balance


async def history(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    source: Optional[LedgerSource] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[PointsLedgerEntry], int]:
    """Entries for a member, newest first."""
    await get_member(db, member_id)

    filters = [PointsLedgerEntry.member_id == member_id]
    if source:
        filters.append(PointsLedgerEntry.source == source)
    if date_from:
        filters.append(PointsLedgerEntry.created_at >= ensure_utc(date_from))
    if date_to:
        filters.append(PointsLedgerEntry.created_at <= ensure_utc(date_to))

    total = (
        await db.execute(
            select(func.count()).select_from(PointsLedgerEntry).where(*filters)
        )
    ).scalar() or 0
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(*filters)
        .order_by(desc(PointsLedgerEntry.created_at), desc(PointsLedgerEntry.id))
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


async def recompute(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    performed_by: str = "system",
    repair: bool = True,
) -> RecomputeResult:
    """Reconcile the cached balance with the ledger sum.

    Drift is logged as CRITICAL. With ``repair`` the cache is reset from the
    ledger and a RECOMPUTE_DRIFT audit row is written in the same commit;
    without it ``LedgerInconsistency`` is raised and nothing changes.
    """
    member = await lock_member(db, member_id)
    ledger_balance = await ledger_sum(db, member_id=member.id, epoch=member.points_epoch)
    result = RecomputeResult(
        member_id=member.id,
        cached_balance=member.points_balance,
        ledger_balance=ledger_balance,
    )
    if result.drift == 0:
        await db.commit()
        return result

    logger.critical(
        "Ledger drift for member %s: cached=%d ledger=%d (epoch=%d)",
        member.id,
        result.cached_balance,
        result.ledger_balance,
        member.points_epoch,
    )
    if not repair:
        await db.rollback()
        raise LedgerInconsistency(
            f"Cached balance {result.cached_balance} differs from ledger sum "
            f"{result.ledger_balance} for member {member_id}"
        )

    member.points_balance = ledger_balance
    member.updated_at = utc_now()
    record_audit(
        db,
        action=AuditAction.RECOMPUTE_DRIFT,
        performed_by=performed_by,
        member_id=member.id,
        target_type="member",
        target_id=str(member.id),
        old_value={"balance": result.cached_balance},
        new_value={"balance": ledger_balance},
        reason=f"Balance cache drifted by {result.drift:+d}",
    )
    await db.commit()
    result.repaired = True
    logger.info("Repaired balance cache for member %s -> %d", member.id, ledger_balance)
    return result


async def reset_balance(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    performed_by: str,
    reason: str,
) -> Member:
    """Zero the balance without a ledger entry.

    Starts a new epoch: entries written before the reset stay in history but
    no longer count toward the balance.
    """
    member = await lock_member(db, member_id)
    old_value = {"balance": member.points_balance, "epoch": member.points_epoch}

    member.points_epoch += 1
    member.points_balance = 0
    member.updated_at = utc_now()

    record_audit(
        db,
        action=AuditAction.RESET_BALANCE,
        performed_by=performed_by,
        member_id=member.id,
        target_type="member",
        target_id=str(member.id),
        old_value=old_value,
        new_value={"balance": 0, "epoch": member.points_epoch},
        reason=reason,
    )

    await db.commit()
    await db.refresh(member)
    logger.info(
        "Admin %s reset balance of member %s (was %d, epoch now %d)",
        performed_by,
        member_id,
        old_value["balance"],
        member.points_epoch,
    )
    return member
