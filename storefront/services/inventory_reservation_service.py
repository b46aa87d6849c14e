# storefront/services/inventory_reservation_service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import AppSettings, get_settings
from storefront.metrics import RESERVATION_OPS
from storefront.services.inventory_errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    ReservationError,
)
from storefront.services.reserved_counter import CounterMode, ReservedCounter
from storefront.services.variant_stock_store import VariantStock, VariantStockStore
from storefront.utils.timeutils import utc_now

log = logging.getLogger("storefront.reservations")


def _outcome(exc: BaseException) -> str:
    if isinstance(exc, InsufficientStockError):
        return "insufficient"
    if isinstance(exc, ConcurrencyConflictError):
        return "conflict"
    if isinstance(exc, NotFoundError):
        return "not_found"
    return "error"


class InventoryReservationService:
    """
    Stock holds for cart lines.

    - reserve : first add of a variant to a cart (strict +quantity)
    - adjust  : cart line quantity change (strict when growing, release when shrinking)
    - release : cart line removed / cart cleared (unconditional, clamped at 0)

    Every successful reserve/adjust hands back a fresh expiry (now + hold);
    the caller stores it on the cart line, which is what the sweep scans.

    Transactions: when `session` already has a transaction open the caller owns
    commit/rollback; otherwise each call runs in its own session.begin() block.
    """

    def __init__(
        self,
        counter: Optional[ReservedCounter] = None,
        *,
        settings: Optional[AppSettings] = None,
        utc_now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        cfg = settings or get_settings()
        self.hold = timedelta(minutes=cfg.RESERVATION_HOLD_MINUTES)
        self.counter = counter or ReservedCounter(
            VariantStockStore(),
            max_attempts=cfg.RESERVATION_RETRY_ATTEMPTS,
            backoff_ms=cfg.RESERVATION_RETRY_BACKOFF_MS,
        )
        self._utc_now = utc_now_fn

    @property
    def store(self) -> VariantStockStore:
        return self.counter.store

    async def _run_in_tx(self, session: AsyncSession, fn):
        if session.in_transaction():
            return await fn()
        async with session.begin():
            return await fn()

    async def _apply(self, session: AsyncSession, *, op: str, variant_id: str, delta: int, mode: CounterMode):
        try:
            stock = await self.counter.apply(session, variant_id=variant_id, delta=delta, mode=mode)
        except ReservationError as e:
            RESERVATION_OPS.labels(op=op, outcome=_outcome(e)).inc()
            raise
        RESERVATION_OPS.labels(op=op, outcome="ok").inc()
        return stock

    # ------------------------------------------------------------------
    # reserve
    # ------------------------------------------------------------------
    async def reserve(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        quantity: int,
        hold: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """
        Hold `quantity` more units of `variant_id`.

        Returns the hold expiry. InsufficientStockError means nothing was
        written and the caller must not create the cart line.
        """
        if int(quantity) <= 0:
            raise ValueError("quantity must be positive")

        async def _inner() -> datetime:
            stock = await self._apply(
                session,
                op="reserve",
                variant_id=variant_id,
                delta=int(quantity),
                mode=CounterMode.STRICT,
            )
            log.debug(
                "reserved variant=%s qty=%s reserved=%s/%s",
                variant_id,
                quantity,
                stock.reserved_quantity,
                stock.inventory_quantity,
            )
            return (now or self._utc_now()) + (hold or self.hold)

        return await self._run_in_tx(session, _inner)

    # ------------------------------------------------------------------
    # adjust
    # ------------------------------------------------------------------
    async def adjust(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        old_quantity: int,
        new_quantity: int,
        hold: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """
        Move a hold from `old_quantity` to `new_quantity` units.

        Growing goes through the strict path and may raise
        InsufficientStockError (counter untouched); shrinking or keeping the
        quantity cannot fail on stock grounds. Either way the hold is renewed.
        """
        if int(old_quantity) < 0 or int(new_quantity) < 0:
            raise ValueError("quantities must not be negative")

        delta = int(new_quantity) - int(old_quantity)

        mode = CounterMode.STRICT if delta > 0 else CounterMode.RELEASE

        async def _inner() -> datetime:
            await self._apply(session, op="adjust", variant_id=variant_id, delta=delta, mode=mode)
            return (now or self._utc_now()) + (hold or self.hold)

        return await self._run_in_tx(session, _inner)

    # ------------------------------------------------------------------
    # release
    # ------------------------------------------------------------------
    async def release(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        quantity: int,
    ) -> VariantStock:
        """
        Give back `quantity` held units. Clamped at 0, so releasing a hold that
        the sweep already reclaimed is a no-op rather than an error.
        """
        if int(quantity) < 0:
            raise ValueError("quantity must not be negative")

        async def _inner() -> VariantStock:
            return await self._apply(
                session,
                op="release",
                variant_id=variant_id,
                delta=-int(quantity),
                mode=CounterMode.RELEASE,
            )

        return await self._run_in_tx(session, _inner)

    async def available(self, session: AsyncSession, variant_id: str) -> int:
        stock = await self.store.load(session, variant_id)
        if stock is None:
            raise NotFoundError("variant", variant_id)
        return max(stock.available, 0)
