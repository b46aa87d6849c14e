# storefront/utils/timeutils.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Treat naive timestamps as UTC.

    SQLite drops tzinfo on the way back out of DateTime(timezone=True)
    columns; everything we write is UTC, so re-attaching it is lossless.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
