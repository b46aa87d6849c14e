# storefront/services/cart_repo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.cart_item import CartItem
from storefront.services.inventory_errors import ConcurrencyConflictError
from storefront.services.variant_stock_store import translate_store_errors
from storefront.utils.timeutils import utc_now


@dataclass(frozen=True)
class ExpiredHold:
    """Snapshot of a cart line whose hold has passed reserved_until."""

    item_id: int
    variant_id: str
    quantity: int
    reserved_until: datetime


def _owner_clause(*, user_id: Optional[str], session_id: Optional[str]):
    if user_id:
        return CartItem.user_id == user_id
    if session_id:
        return and_(CartItem.session_id == session_id, CartItem.user_id.is_(None))
    raise ValueError("cart owner requires user_id or session_id")


def _hold_clause(reserved_until: Optional[datetime]):
    if reserved_until is None:
        return CartItem.reserved_until.is_(None)
    return CartItem.reserved_until == reserved_until


class CartRepo:
    """cart_items access. Never commits; guarded writes report whether they applied."""

    async def get(self, session: AsyncSession, item_id: int) -> Optional[CartItem]:
        with translate_store_errors():
            return await session.get(CartItem, int(item_id), populate_existing=True)

    async def list_for_owner(
        self,
        session: AsyncSession,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> List[CartItem]:
        stmt = (
            select(CartItem)
            .where(_owner_clause(user_id=user_id, session_id=session_id))
            .order_by(CartItem.id)
            .execution_options(populate_existing=True)
        )
        with translate_store_errors():
            return list((await session.execute(stmt)).scalars().all())

    async def find_line(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Optional[CartItem]:
        stmt = (
            select(CartItem)
            .where(
                _owner_clause(user_id=user_id, session_id=session_id),
                CartItem.variant_id == variant_id,
            )
            .order_by(CartItem.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        with translate_store_errors():
            return (await session.execute(stmt)).scalars().first()

    async def insert(
        self,
        session: AsyncSession,
        *,
        user_id: Optional[str],
        session_id: Optional[str],
        product_id: str,
        variant_id: str,
        quantity: int,
        price_at_time: Decimal,
        reserved_until: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> CartItem:
        ts = now or utc_now()
        item = CartItem(
            user_id=user_id,
            session_id=None if user_id else session_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=int(quantity),
            price_at_time=price_at_time,
            reserved_until=reserved_until,
            created_at=ts,
            updated_at=ts,
        )
        session.add(item)
        try:
            with translate_store_errors():
                await session.flush()
        except sa_exc.IntegrityError as e:
            # a concurrent request created the line for this variant first
            raise ConcurrencyConflictError(
                variant_id, attempts=1, message=f"cart line for variant {variant_id} already exists"
            ) from e
        return item

    async def update_line(
        self,
        session: AsyncSession,
        item: CartItem,
        *,
        quantity: int,
        reserved_until: Optional[datetime],
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Guarded UPDATE: applies only if quantity / reserved_until are still what
        `item` was read with, i.e. nobody (another request, the sweep) touched
        the line in between.
        """
        values = {
            "quantity": int(quantity),
            "reserved_until": reserved_until,
            "updated_at": now or utc_now(),
        }
        if user_id is not None:
            values["user_id"] = user_id
            values["session_id"] = None

        stmt = (
            update(CartItem)
            .where(
                CartItem.id == item.id,
                CartItem.quantity == item.quantity,
                _hold_clause(item.reserved_until),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with translate_store_errors():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return False
            await session.refresh(item)
        return True

    async def delete_line(self, session: AsyncSession, item: CartItem) -> bool:
        """Guarded DELETE, same guard as update_line."""
        stmt = (
            delete(CartItem)
            .where(
                CartItem.id == item.id,
                CartItem.quantity == item.quantity,
                _hold_clause(item.reserved_until),
            )
            .execution_options(synchronize_session=False)
        )
        with translate_store_errors():
            result = await session.execute(stmt)
        if result.rowcount != 1:
            return False
        session.expunge(item)
        return True

    # ------------------------------------------------------------------
    # sweep support
    # ------------------------------------------------------------------
    async def list_expired(
        self,
        session: AsyncSession,
        *,
        now: datetime,
        after_id: int = 0,
        limit: int = 100,
    ) -> List[ExpiredHold]:
        stmt = (
            select(
                CartItem.id,
                CartItem.variant_id,
                CartItem.quantity,
                CartItem.reserved_until,
            )
            .where(
                CartItem.reserved_until.is_not(None),
                CartItem.reserved_until < now,
                CartItem.id > after_id,
            )
            .order_by(CartItem.id)
            .limit(int(limit))
        )
        with translate_store_errors():
            rows = (await session.execute(stmt)).all()
        return [
            ExpiredHold(
                item_id=int(r.id),
                variant_id=str(r.variant_id),
                quantity=int(r.quantity),
                reserved_until=r.reserved_until,
            )
            for r in rows
        ]

    async def claim_expired(self, session: AsyncSession, hold: ExpiredHold, *, now: datetime) -> bool:
        """
        Clear reserved_until if the line is exactly as listed and still expired.
        False means a request renewed / changed / removed it in the meantime.
        """
        stmt = (
            update(CartItem)
            .where(
                CartItem.id == hold.item_id,
                CartItem.quantity == hold.quantity,
                CartItem.reserved_until == hold.reserved_until,
                CartItem.reserved_until < now,
            )
            .values(reserved_until=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with translate_store_errors():
            result = await session.execute(stmt)
        return result.rowcount == 1
