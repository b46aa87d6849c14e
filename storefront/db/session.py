# storefront/db/session.py
# Async engine / session factory + FastAPI dependency (get_session)
from __future__ import annotations

import re
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.core.config import get_settings


def normalize_async_dsn(url: str) -> str:
    """
    Map user supplied DSNs onto the async drivers we ship with:
      postgres:// / postgresql:// / +asyncpg → postgresql+psycopg
      sqlite:///                             → sqlite+aiosqlite:///
    Surrounding quotes (a common .env mistake) are stripped.
    """
    url = (url or "").strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()

    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite://") :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def build_engine(url: str, *, echo: bool = False, **kwargs) -> AsyncEngine:
    dsn = normalize_async_dsn(url)
    if dsn.startswith("sqlite"):
        # pool_pre_ping is meaningless for file databases
        return create_async_engine(dsn, echo=echo, future=True, **kwargs)
    return create_async_engine(dsn, echo=echo, future=True, pool_pre_ping=True, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache
def get_engine() -> AsyncEngine:
    """Engine is created lazily so importing the app does not need a reachable database."""
    settings = get_settings()
    return build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return build_session_maker(get_engine())


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_maker()() as session:
        yield session


async def close_engines() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_session_maker.cache_clear()
    get_engine.cache_clear()
