# storefront/core/scheduler.py
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from storefront.core.config import get_settings
from storefront.db.session import get_session_maker
from storefront.services.reservation_sweep import sweep_expired_reservations

log = logging.getLogger("storefront.scheduler")

_scheduler: Optional[AsyncIOScheduler] = None

SWEEP_JOB_ID = "reservation_sweep"


async def _job_sweep_expired() -> None:
    # failures are logged by APScheduler; the next tick runs regardless
    settings = get_settings()
    await sweep_expired_reservations(
        get_session_maker(),
        batch_size=settings.RESERVATION_SWEEP_BATCH_SIZE,
    )


def init_scheduler() -> Optional[AsyncIOScheduler]:
    global _scheduler
    settings = get_settings()
    if not settings.RESERVATION_SWEEP_ENABLED:
        return None
    if _scheduler is not None:
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        _job_sweep_expired,
        "interval",
        seconds=settings.RESERVATION_SWEEP_INTERVAL_SECONDS,
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    _scheduler.start()
    log.info("reservation sweep scheduled every %ss", settings.RESERVATION_SWEEP_INTERVAL_SECONDS)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
