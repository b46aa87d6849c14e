# storefront/services/reservation_sweep.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.metrics import SWEEP_FAILURES, SWEEP_RELEASED, SWEEP_RELEASED_UNITS
from storefront.services.cart_repo import CartRepo, ExpiredHold
from storefront.services.inventory_reservation_service import InventoryReservationService
from storefront.utils.timeutils import utc_now

log = logging.getLogger("storefront.reservations.sweep")


@dataclass
class SweepResult:
    scanned: int = 0
    released: int = 0
    released_units: int = 0
    skipped: int = 0
    failed: int = 0


async def _release_one(
    session: AsyncSession,
    hold: ExpiredHold,
    *,
    now: datetime,
    repo: CartRepo,
    ledger: InventoryReservationService,
) -> bool:
    """
    One expired line, one transaction:
      1) claim the line (reserved_until → NULL, guarded on what was listed)
      2) release its quantity through the unconditional path
    Both commit together, or neither does.
    """
    async with session.begin():
        if not await repo.claim_expired(session, hold, now=now):
            return False
        await ledger.release(session, variant_id=hold.variant_id, quantity=hold.quantity)
    return True


async def sweep_expired_reservations(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    now: Optional[datetime] = None,
    batch_size: int = 100,
    ledger: Optional[InventoryReservationService] = None,
    repo: Optional[CartRepo] = None,
) -> SweepResult:
    """
    Reclaim stock held by cart lines whose reserved_until has passed.

    Semantics:
      - candidates: cart_items.reserved_until IS NOT NULL AND reserved_until < now,
        walked in id order (keyset), batch_size per read
      - each line in its own session / transaction; a line renewed or changed
        after listing is skipped (its hold is live again)
      - a failing line is logged and counted, the sweep moves on

    Args:
      session_maker : factory for per-line sessions
      now           : reference time, fixed in tests; UTC now when None
      batch_size    : max lines per candidate read

    Returns:
      SweepResult with scanned / released / released_units / skipped / failed.
    """
    if now is None:
        now = utc_now()
    repo = repo or CartRepo()
    ledger = ledger or InventoryReservationService()

    result = SweepResult()
    after_id = 0

    while True:
        async with session_maker() as session:
            batch = await repo.list_expired(session, now=now, after_id=after_id, limit=batch_size)
        if not batch:
            break

        for hold in batch:
            after_id = hold.item_id
            result.scanned += 1
            try:
                async with session_maker() as session:
                    released = await _release_one(session, hold, now=now, repo=repo, ledger=ledger)
            except Exception:
                # one bad line must not stop the pass; the next tick retries it
                result.failed += 1
                SWEEP_FAILURES.inc()
                log.exception(
                    "sweep: release failed item=%s variant=%s qty=%s",
                    hold.item_id,
                    hold.variant_id,
                    hold.quantity,
                )
                continue

            if not released:
                result.skipped += 1
                continue

            result.released += 1
            result.released_units += hold.quantity
            SWEEP_RELEASED.inc()
            SWEEP_RELEASED_UNITS.inc(hold.quantity)

        if len(batch) < batch_size:
            break

    if result.scanned:
        log.info(
            "sweep done: scanned=%d released=%d units=%d skipped=%d failed=%d",
            result.scanned,
            result.released,
            result.released_units,
            result.skipped,
            result.failed,
        )
    return result
