# storefront/jobs/reserve_ttl.py
"""
Cart hold TTL job (single pass).

- reclaims cart_items whose reserved_until < now
- concurrency safety / idempotency live in sweep_expired_reservations

Usage:
    python -m storefront.jobs.reserve_ttl
or let storefront.core.scheduler run it on an interval inside the API process.
"""

from __future__ import annotations

import asyncio

from storefront.core.config import get_settings
from storefront.core.logging import setup_logging
from storefront.db.session import build_engine, build_session_maker
from storefront.services.reservation_sweep import SweepResult, sweep_expired_reservations


async def main() -> SweepResult:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    try:
        result = await sweep_expired_reservations(
            build_session_maker(engine),
            batch_size=settings.RESERVATION_SWEEP_BATCH_SIZE,
        )
        print(
            f"[reserve-ttl] released {result.released} lines / {result.released_units} units "
            f"(scanned={result.scanned}, skipped={result.skipped}, failed={result.failed})"
        )
        return result
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
