"""Effective-item resolution for club and region forks of curriculum items.

A logical requirement is identified by ``origin_item_id or id``. Among the
active rows sharing a logical id, a member sees exactly one: the fork of the
member's club, else the fork of the club's region, else the global row.
"""

import uuid
from collections import defaultdict
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.progress_service.models import (
    AssignableItem,
    AuditAction,
    Club,
    ItemScope,
    Member,
    ProgressRecord,
)
from services.progress_service.services.audit import record_audit
from services.progress_service.services.errors import (
    InvalidTransition,
    ItemNotAssigned,
    NotFound,
)
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

_PREFERENCE = (ItemScope.CLUB, ItemScope.REGION, ItemScope.GLOBAL)


def is_visible_to(item: AssignableItem, club: Club) -> bool:
    if item.scope == ItemScope.CLUB:
        return item.club_id == club.id
    if item.scope == ItemScope.REGION:
        return item.region is not None and item.region == club.region
    return True


def pick_effective(
    candidates: list[AssignableItem], club: Club
) -> Optional[AssignableItem]:
    """Choose the single effective row among candidates of one logical id."""
    visible = [c for c in candidates if c.is_active and is_visible_to(c, club)]
    for scope in _PREFERENCE:
        matches = sorted(
            (c for c in visible if c.scope == scope),
            key=lambda c: (ensure_utc(c.created_at), str(c.id)),
        )
        if matches:
            if len(matches) > 1:
                logger.warning(
                    "Logical item %s has %d active %s rows for club %s; using %s",
                    matches[0].logical_id,
                    len(matches),
                    scope.value,
                    club.id,
                    matches[0].id,
                )
            return matches[0]
    return None


async def resolve_effective_item(
    db: AsyncSession, *, item_id: uuid.UUID, member: Member
) -> AssignableItem:
    """Map any row id of a logical requirement to the member's effective row."""
    item = await db.get(AssignableItem, item_id)
    if not item:
        raise NotFound(f"Item {item_id} not found")
    if item.scope != ItemScope.GLOBAL and not is_visible_to(item, member.club):
        raise ItemNotAssigned(f"Item {item_id} belongs to another club or region")

    logical_id = item.logical_id
    result = await db.execute(
        select(AssignableItem).where(
            or_(
                AssignableItem.id == logical_id,
                AssignableItem.origin_item_id == logical_id,
            )
        )
    )
    effective = pick_effective(list(result.scalars().all()), member.club)
    if not effective:
        raise NotFound(f"Item {item_id} is not available")
    return effective


async def effective_items_for_group(
    db: AsyncSession, *, group_id: uuid.UUID, club: Club
) -> list[AssignableItem]:
    """One effective row per logical requirement of a group, as seen by a club."""
    result = await db.execute(
        select(AssignableItem).where(AssignableItem.group_id == group_id)
    )
    by_logical: dict[uuid.UUID, list[AssignableItem]] = defaultdict(list)
    for item in result.scalars().all():
        by_logical[item.logical_id].append(item)

    effective = []
    for candidates in by_logical.values():
        chosen = pick_effective(candidates, club)
        if chosen:
            effective.append(chosen)
    effective.sort(key=lambda i: (i.code or "", ensure_utc(i.created_at), str(i.id)))
    return effective


# ---------------------------------------------------------------------------
# Forks
# ---------------------------------------------------------------------------


async def fork_item_for_club(
    db: AsyncSession,
    *,
    item_id: uuid.UUID,
    club_id: uuid.UUID,
    performed_by: str,
    description: Optional[str] = None,
    point_value: Optional[int] = None,
) -> AssignableItem:
    """Create a club-specific copy that shadows the original for that club."""
    origin = await db.get(AssignableItem, item_id)
    if not origin or not origin.is_active:
        raise NotFound(f"Item {item_id} not found")
    if origin.origin_item_id is not None:
        raise InvalidTransition("Forks cannot be forked again; fork the original")
    club = await db.get(Club, club_id)
    if not club:
        raise NotFound(f"Club {club_id} not found")

    existing = await db.execute(
        select(AssignableItem).where(
            AssignableItem.origin_item_id == origin.id,
            AssignableItem.scope == ItemScope.CLUB,
            AssignableItem.club_id == club_id,
            AssignableItem.is_active.is_(True),
        )
    )
    if existing.scalars().first():
        raise InvalidTransition(f"Club {club_id} already has an active fork of {item_id}")

    fork = AssignableItem(
        group_id=origin.group_id,
        kind=origin.kind,
        code=origin.code,
        description=description or origin.description,
        point_value=origin.point_value if point_value is None else point_value,
        answer_type=origin.answer_type,
        start_date=origin.start_date,
        end_date=origin.end_date,
        scope=ItemScope.CLUB,
        club_id=club_id,
        origin_item_id=origin.id,
    )
    db.add(fork)
    await db.flush()

    record_audit(
        db,
        action=AuditAction.FORK_ITEM,
        performed_by=performed_by,
        target_type="item",
        target_id=str(fork.id),
        new_value={
            "origin_item_id": str(origin.id),
            "club_id": str(club_id),
            "point_value": fork.point_value,
        },
        reason=f"Club fork of item {origin.id}",
    )
    await db.commit()
    await db.refresh(fork)
    logger.info("Forked item %s for club %s -> %s", origin.id, club_id, fork.id)
    return fork


async def retire_fork(
    db: AsyncSession,
    *,
    fork_id: uuid.UUID,
    performed_by: str,
    reason: str,
) -> AssignableItem:
    """Deactivate a fork so its members fall back to the original.

    Progress and ledger entries recorded against the fork are kept as
    history; nothing is migrated to the original.
    """
    fork = await db.get(AssignableItem, fork_id)
    if not fork:
        raise NotFound(f"Item {fork_id} not found")
    if fork.origin_item_id is None:
        raise InvalidTransition(f"Item {fork_id} is not a fork")
    if not fork.is_active:
        raise InvalidTransition(f"Fork {fork_id} is already retired")

    kept = (
        await db.execute(
            select(func.count())
            .select_from(ProgressRecord)
            .where(ProgressRecord.item_id == fork.id)
        )
    ).scalar() or 0

    fork.is_active = False
    fork.updated_at = utc_now()
    record_audit(
        db,
        action=AuditAction.RETIRE_FORK,
        performed_by=performed_by,
        target_type="item",
        target_id=str(fork.id),
        old_value={"is_active": True},
        new_value={
            "is_active": False,
            "fallback_item_id": str(fork.origin_item_id),
            "preserved_progress_records": kept,
        },
        reason=reason,
    )
    await db.commit()
    await db.refresh(fork)
    logger.info(
        "Retired fork %s (falls back to %s, %d progress records kept)",
        fork.id,
        fork.origin_item_id,
        kept,
    )
    return fork
