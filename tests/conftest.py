# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# ============================================================
# must be set before storefront.main is imported: get_settings() is cached
# ============================================================
os.environ["RESERVATION_SWEEP_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from storefront.api.deps import get_session  # noqa: E402
from storefront.db.base import Base, init_models  # noqa: E402
from storefront.db.session import build_engine, build_session_maker  # noqa: E402
from storefront.main import app  # noqa: E402

# ==========================
# DSN: explicit override (e.g. a throwaway Postgres), else one SQLite file per test
# ==========================
TEST_DATABASE_URL = os.getenv("STOREFRONT_TEST_DATABASE_URL")


# =========================================
# one engine per test (NullPool, no cross-loop connections)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'storefront_test.db'}"
    engine = build_engine(url, poolclass=NullPool)

    init_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(async_engine)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Plain session. Services open their own transaction on it; whatever the
    test leaves open is rolled back.
    """
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# HTTP client bound to the test database
# =========================================
@pytest_asyncio.fixture
async def client(async_session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _session_override
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_session, None)
