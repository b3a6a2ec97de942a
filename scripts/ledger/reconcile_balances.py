"""Reconcile cached member balances with the points ledger.

Every member's ``points_balance`` is compared with the sum of its ledger
entries in the current epoch. Drift is always reported; with ``--apply``
the cache is reset from the ledger and a RECOMPUTE_DRIFT audit row is
written per repaired member.

Usage examples:
  # Report drift only (default dry-run)
  ENV_FILE=.env.prod python scripts/ledger/reconcile_balances.py

  # Repair drifted balances
  ENV_FILE=.env.prod python scripts/ledger/reconcile_balances.py --apply

  # One club, first 50 members
  ENV_FILE=.env.prod python scripts/ledger/reconcile_balances.py --club-id <uuid> --limit 50
"""

from __future__ import annotations

import argparse
import asyncio
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import select


def _load_env_file() -> None:
    project_root = Path(__file__).resolve().parents[2]
    env_file = os.environ.get("ENV_FILE", ".env.prod")
    env_path = (project_root / env_file).resolve()
    if not env_path.exists():
        # In containers, env vars are often injected without mounting the env file.
        if os.environ.get("DATABASE_URL"):
            print(f"Env file not found at {env_path}; using existing environment vars.")
            return
        raise FileNotFoundError(f"Env file not found: {env_path}")
    load_dotenv(env_path, override=True)


@dataclass
class Drift:
    member_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    repaired: bool


async def _load_member_ids(club_id: uuid.UUID | None, limit: int | None) -> list[uuid.UUID]:
    from libs.db.config import AsyncSessionLocal
    from services.progress_service.models import Member

    async with AsyncSessionLocal() as session:
        query = select(Member.id).order_by(Member.id)
        if club_id:
            query = query.where(Member.club_id == club_id)
        if limit is not None:
            query = query.limit(limit)
        return list((await session.execute(query)).scalars().all())


async def _reconcile(member_ids: list[uuid.UUID], apply: bool) -> list[Drift]:
    from libs.db.config import AsyncSessionLocal
    from services.progress_service.services import ledger_ops
    from services.progress_service.services.errors import LedgerInconsistency

    drifts: list[Drift] = []
    for member_id in member_ids:
        # One session per member so a failure never leaks into the next one
        async with AsyncSessionLocal() as session:
            try:
                result = await ledger_ops.recompute(
                    session,
                    member_id=member_id,
                    performed_by="reconcile_balances",
                    repair=apply,
                )
            except LedgerInconsistency:
                cached = await ledger_ops.balance(session, member_id=member_id)
                member = await ledger_ops.get_member(session, member_id)
                ledger = await ledger_ops.ledger_sum(
                    session, member_id=member_id, epoch=member.points_epoch
                )
                drifts.append(Drift(member_id, cached, ledger, repaired=False))
                continue

        if result.drift:
            drifts.append(
                Drift(
                    member_id,
                    result.cached_balance,
                    result.ledger_balance,
                    repaired=result.repaired,
                )
            )
    return drifts


async def _main() -> None:
    parser = argparse.ArgumentParser(
        description="Compare cached member balances with the points ledger."
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Repair drifted balances (default is dry-run).",
    )
    parser.add_argument(
        "--club-id",
        type=uuid.UUID,
        default=None,
        help="Only reconcile members of this club.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit number of members checked.",
    )
    args = parser.parse_args()

    _load_env_file()

    member_ids = await _load_member_ids(club_id=args.club_id, limit=args.limit)
    drifts = await _reconcile(member_ids, apply=args.apply)

    print("Reconciliation summary")
    print(f"Members checked: {len(member_ids)}")
    print(f"Drifted: {len(drifts)}")
    print(f"Repaired: {sum(1 for d in drifts if d.repaired)}")
    for d in drifts[:20]:
        print(
            f"- member={d.member_id} cached={d.cached_balance} "
            f"ledger={d.ledger_balance} drift={d.cached_balance - d.ledger_balance:+d} "
            f"repaired={d.repaired}"
        )

    if drifts and not args.apply:
        print("")
        print("Dry-run only. Re-run with --apply to repair.")


if __name__ == "__main__":
    asyncio.run(_main())
