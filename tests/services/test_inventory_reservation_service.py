from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import AppSettings
from storefront.services.inventory_errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
)
from storefront.services.inventory_reservation_service import InventoryReservationService
from storefront.services.reserved_counter import ReservedCounter
from storefront.services.variant_stock_store import VariantStockStore
from tests.helpers.cart import reserved_of, seed_variant, version_of

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _ledger(store=None, **kw) -> InventoryReservationService:
    settings = AppSettings(RESERVATION_HOLD_MINUTES=15)
    counter = ReservedCounter(store or VariantStockStore(), max_attempts=kw.pop("max_attempts", 3), backoff_ms=0)
    return InventoryReservationService(counter, settings=settings, utc_now_fn=lambda: NOW)


class _InterleavingStore(VariantStockStore):
    """
    Lets a competing request commit between this request's read and its
    conditional write, `times` times. The competitor goes through its own
    session and the real SQL path.
    """

    def __init__(self, compete, times: int = 1) -> None:
        self._compete = compete
        self._left = times

    async def compare_and_set_reserved(self, session, **kw):
        if self._left > 0:
            self._left -= 1
            await self._compete()
        return await super().compare_and_set_reserved(session, **kw)


@pytest.mark.asyncio
async def test_reserve_within_available(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=3)

    until = await _ledger().reserve(session, variant_id="V1", quantity=2)

    assert until == NOW + timedelta(minutes=15)
    assert await reserved_of(async_session_maker, "V1") == 5
    assert await version_of(async_session_maker, "V1") == 1


@pytest.mark.asyncio
async def test_reserve_custom_hold(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10)

    until = await _ledger().reserve(session, variant_id="V1", quantity=1, hold=timedelta(minutes=5))

    assert until == NOW + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_reserve_rejects_non_positive_quantity(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10)
    with pytest.raises(ValueError):
        await _ledger().reserve(session, variant_id="V1", quantity=0)


@pytest.mark.asyncio
async def test_reserve_unknown_variant(session: AsyncSession):
    with pytest.raises(NotFoundError):
        await _ledger().reserve(session, variant_id="missing", quantity=1)


@pytest.mark.asyncio
async def test_adjust_up_fits_exactly(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=5)

    until = await _ledger().adjust(session, variant_id="V1", old_quantity=2, new_quantity=5)

    assert until == NOW + timedelta(minutes=15)
    assert await reserved_of(async_session_maker, "V1") == 8


@pytest.mark.asyncio
async def test_adjust_up_beyond_available_leaves_counter(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=5)

    with pytest.raises(InsufficientStockError) as ei:
        await _ledger().adjust(session, variant_id="V1", old_quantity=2, new_quantity=20)

    assert ei.value.available == 5
    assert await reserved_of(async_session_maker, "V1") == 5
    assert await version_of(async_session_maker, "V1") == 0


@pytest.mark.asyncio
async def test_adjust_down_releases_and_renews(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=5)

    until = await _ledger().adjust(session, variant_id="V1", old_quantity=4, new_quantity=1)

    assert until == NOW + timedelta(minutes=15)
    assert await reserved_of(async_session_maker, "V1") == 2


@pytest.mark.asyncio
async def test_adjust_same_quantity_only_renews(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=5)

    until = await _ledger().adjust(session, variant_id="V1", old_quantity=3, new_quantity=3)

    assert until == NOW + timedelta(minutes=15)
    assert await reserved_of(async_session_maker, "V1") == 5
    assert await version_of(async_session_maker, "V1") == 0


@pytest.mark.asyncio
async def test_release_twice_never_goes_negative(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=3)
    ledger = _ledger()

    first = await ledger.release(session, variant_id="V1", quantity=3)
    second = await ledger.release(session, variant_id="V1", quantity=3)

    assert first.reserved_quantity == 0
    assert second.reserved_quantity == 0
    assert await reserved_of(async_session_maker, "V1") == 0


@pytest.mark.asyncio
async def test_available_reports_free_units(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10, reserved=4)

    assert await _ledger().available(session, "V1") == 6
    with pytest.raises(NotFoundError):
        await _ledger().available(session, "missing")


@pytest.mark.asyncio
async def test_caller_transaction_is_not_committed(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=10)

    await session.begin()
    await _ledger().reserve(session, variant_id="V1", quantity=4)
    await session.rollback()

    assert await reserved_of(async_session_maker, "V1") == 0


@pytest.mark.asyncio
async def test_interleaved_writer_is_retried_not_lost(async_session_maker, session: AsyncSession):
    """
    Another request reserves 2 between our read and our write; our write
    loses the version check, re-reads and lands on top of it.
    """
    await seed_variant(async_session_maker, "V1", inventory=10)

    async def compete():
        async with async_session_maker() as other:
            await _ledger().reserve(other, variant_id="V1", quantity=2)

    ledger = _ledger(_InterleavingStore(compete))
    await ledger.reserve(session, variant_id="V1", quantity=3)

    assert await reserved_of(async_session_maker, "V1") == 5
    assert await version_of(async_session_maker, "V1") == 2


@pytest.mark.asyncio
async def test_two_reservations_racing_for_last_units(async_session_maker, session: AsyncSession):
    """inventory 5, two reserve(3): exactly one wins, the other sees the post-race availability."""
    await seed_variant(async_session_maker, "V1", inventory=5)

    async def compete():
        async with async_session_maker() as other:
            await _ledger().reserve(other, variant_id="V1", quantity=3)

    ledger = _ledger(_InterleavingStore(compete))
    with pytest.raises(InsufficientStockError) as ei:
        await ledger.reserve(session, variant_id="V1", quantity=3)

    assert ei.value.available == 2
    assert await reserved_of(async_session_maker, "V1") == 3


@pytest.mark.asyncio
async def test_lost_write_without_retries_left_is_a_conflict(async_session_maker, session: AsyncSession):
    await seed_variant(async_session_maker, "V1", inventory=100)

    async def compete():
        async with async_session_maker() as other:
            await _ledger().reserve(other, variant_id="V1", quantity=1)

    ledger = _ledger(_InterleavingStore(compete), max_attempts=1)
    with pytest.raises(ConcurrencyConflictError) as ei:
        await ledger.reserve(session, variant_id="V1", quantity=5)

    assert ei.value.attempts == 1
    # only the competitor's unit is held
    assert await reserved_of(async_session_maker, "V1") == 1
