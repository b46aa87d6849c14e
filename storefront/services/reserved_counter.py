# storefront/services/reserved_counter.py
from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.metrics import RESERVATION_CONFLICTS
from storefront.services.inventory_errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
)
from storefront.services.variant_stock_store import VariantStock, VariantStockStore
from storefront.utils.timeutils import utc_now

log = logging.getLogger("storefront.reservations")

SleepFn = Callable[[float], Awaitable[None]]


class CounterMode(str, enum.Enum):
    STRICT = "strict"  # reservation: never exceed inventory_quantity
    RELEASE = "release"  # cleanup: never rejected, floor-clamped at 0


class ReservedCounter:
    """
    Applies a signed delta to product_variants.reserved_quantity with
    optimistic concurrency control:

      1) read counters + version
      2) compute the candidate counter (STRICT rejects oversell, RELEASE clamps at 0)
      3) conditional write guarded by version
      4) on conflict back off and go to 1), at most `max_attempts` times

    Exhausted retries raise ConcurrencyConflictError, never InsufficientStockError.
    """

    def __init__(
        self,
        store: Optional[VariantStockStore] = None,
        *,
        max_attempts: int = 3,
        backoff_ms: int = 50,
        sleep: SleepFn = asyncio.sleep,
        utc_now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store or VariantStockStore()
        self.max_attempts = int(max_attempts)
        self.backoff_ms = int(backoff_ms)
        self._sleep = sleep
        self._utc_now = utc_now_fn

    def _backoff_seconds(self, attempt: int) -> float:
        # linear in the attempt number, plus up to 50% jitter
        base = self.backoff_ms * attempt / 1000.0
        return base + random.uniform(0, base / 2)

    async def apply(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        delta: int,
        mode: CounterMode,
    ) -> VariantStock:
        delta = int(delta)
        if mode is CounterMode.STRICT and delta <= 0:
            raise ValueError("strict reservation requires a positive delta")

        for attempt in range(1, self.max_attempts + 1):
            stock = await self.store.load(session, variant_id)
            if stock is None:
                raise NotFoundError("variant", variant_id)

            candidate = stock.reserved_quantity + delta
            if mode is CounterMode.STRICT:
                if stock.inventory_quantity - candidate < 0:
                    raise InsufficientStockError(
                        variant_id,
                        requested=delta,
                        available=max(stock.available, 0),
                    )
            else:
                candidate = max(candidate, 0)

            if candidate == stock.reserved_quantity:
                # delta 0, or a release against an already empty counter
                return stock

            ok = await self.store.compare_and_set_reserved(
                session,
                variant_id=variant_id,
                expected_version=stock.version,
                reserved_quantity=candidate,
                ceiling_check=mode is CounterMode.STRICT,
                now=self._utc_now(),
            )
            if ok:
                return replace(stock, reserved_quantity=candidate, version=stock.version + 1)

            RESERVATION_CONFLICTS.inc()
            log.warning(
                "reserved_quantity conflict: variant=%s delta=%s mode=%s attempt=%d/%d",
                variant_id,
                delta,
                mode.value,
                attempt,
                self.max_attempts,
            )
            if attempt < self.max_attempts:
                await self._sleep(self._backoff_seconds(attempt))

        raise ConcurrencyConflictError(variant_id, attempts=self.max_attempts)
