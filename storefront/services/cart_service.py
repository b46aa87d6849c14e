# storefront/services/cart_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.cart_item import CartItem
from storefront.services.cart_repo import CartRepo
from storefront.services.inventory_errors import ConcurrencyConflictError, NotFoundError
from storefront.services.inventory_reservation_service import InventoryReservationService
from storefront.utils.timeutils import utc_now

log = logging.getLogger("storefront.cart")

TAX_RATE = Decimal("0.085")
FREE_SHIPPING_FROM = Decimal("150.00")
FLAT_SHIPPING = Decimal("15.00")
_CENT = Decimal("0.01")


@dataclass
class CartView:
    user_id: Optional[str]
    session_id: Optional[str]
    items: List[CartItem] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.user_id or self.session_id or "anonymous"


@dataclass(frozen=True)
class CartSummary:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    item_count: int


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class CartService:
    """
    Cart lines + their stock holds, kept in step inside one transaction.

    A line holds `quantity` units while reserved_until is set; once the sweep
    clears reserved_until the line holds nothing, and the next touch reserves
    its full quantity again.
    """

    def __init__(
        self,
        ledger: Optional[InventoryReservationService] = None,
        repo: Optional[CartRepo] = None,
        *,
        utc_now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.ledger = ledger or InventoryReservationService()
        self.repo = repo or CartRepo()
        self._utc_now = utc_now_fn

    async def _run_in_tx(self, session: AsyncSession, fn):
        if session.in_transaction():
            return await fn()
        async with session.begin():
            return await fn()

    # ------------------------------------------------------------------
    # read
    # ------------------------------------------------------------------
    async def get_cart(
        self,
        session: AsyncSession,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> CartView:
        if not user_id and not session_id:
            return CartView(user_id=None, session_id=None)
        items = await self.repo.list_for_owner(session, user_id=user_id, session_id=session_id)
        return CartView(user_id=user_id, session_id=None if user_id else session_id, items=items)

    @staticmethod
    def summarize(cart: CartView) -> CartSummary:
        if not cart.items:
            zero = Decimal("0.00")
            return CartSummary(zero, zero, zero, zero, zero, 0)

        subtotal = sum((Decimal(i.price_at_time) * i.quantity for i in cart.items), Decimal("0"))
        item_count = sum(i.quantity for i in cart.items)
        tax = subtotal * TAX_RATE
        shipping = Decimal("0.00") if subtotal >= FREE_SHIPPING_FROM else FLAT_SHIPPING
        discount = Decimal("0.00")
        total = subtotal + tax + shipping - discount

        return CartSummary(
            subtotal=_money(subtotal),
            tax=_money(tax),
            shipping=_money(shipping),
            discount=discount,
            total=_money(total),
            item_count=item_count,
        )

    # ------------------------------------------------------------------
    # write
    # ------------------------------------------------------------------
    async def add_item(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        quantity: int = 1,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> CartItem:
        """
        Existing line for the variant → its quantity grows by `quantity`.
        New line → reserve first; the line is only inserted once the hold exists.
        """
        if int(quantity) <= 0:
            raise ValueError("quantity must be positive")
        if not user_id and not session_id:
            raise ValueError("cart owner requires user_id or session_id")

        async def _inner() -> CartItem:
            existing = await self.repo.find_line(
                session, variant_id=variant_id, user_id=user_id, session_id=session_id
            )
            if existing is not None:
                return await self._set_quantity(session, existing, existing.quantity + int(quantity))

            variant = await self.ledger.store.get_variant(session, variant_id)
            if variant is None:
                raise NotFoundError("variant", variant_id)

            now = self._utc_now()
            reserved_until = await self.ledger.reserve(
                session, variant_id=variant_id, quantity=int(quantity), now=now
            )
            item = await self.repo.insert(
                session,
                user_id=user_id,
                session_id=session_id,
                product_id=variant.product_id,
                variant_id=variant_id,
                quantity=int(quantity),
                price_at_time=variant.price,
                reserved_until=reserved_until,
                now=now,
            )
            log.info("cart add: cart=%s variant=%s qty=%s", user_id or session_id, variant_id, quantity)
            return item

        return await self._run_in_tx(session, _inner)

    async def update_item_quantity(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        quantity: int,
    ) -> Optional[CartItem]:
        """
        quantity <= 0 removes the line (returns None).

        InsufficientStockError leaves both the line and the counter unchanged.
        """

        async def _inner() -> Optional[CartItem]:
            item = await self.repo.get(session, item_id)
            if item is None:
                raise NotFoundError("cart_item", item_id)
            if int(quantity) <= 0:
                await self._remove(session, item)
                return None
            return await self._set_quantity(session, item, int(quantity))

        return await self._run_in_tx(session, _inner)

    async def remove_item(self, session: AsyncSession, *, item_id: int) -> None:
        async def _inner() -> None:
            item = await self.repo.get(session, item_id)
            if item is None:
                raise NotFoundError("cart_item", item_id)
            await self._remove(session, item)

        await self._run_in_tx(session, _inner)

    async def clear_cart(
        self,
        session: AsyncSession,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> int:
        if not user_id and not session_id:
            return 0

        async def _inner() -> int:
            items = await self.repo.list_for_owner(session, user_id=user_id, session_id=session_id)
            for item in items:
                await self._remove(session, item)
            return len(items)

        return await self._run_in_tx(session, _inner)

    async def merge_guest_cart(
        self,
        session: AsyncSession,
        *,
        guest_session_id: str,
        user_id: str,
    ) -> CartView:
        """
        Sign-in merge: guest lines for variants the user already has are folded
        into the user's line; the rest change owner, keeping their hold.
        """

        async def _inner() -> CartView:
            guest_items = await self.repo.list_for_owner(session, session_id=guest_session_id)
            for guest in guest_items:
                user_line = await self.repo.find_line(session, variant_id=guest.variant_id, user_id=user_id)
                if user_line is None:
                    if not await self.repo.update_line(
                        session,
                        guest,
                        quantity=guest.quantity,
                        reserved_until=guest.reserved_until,
                        user_id=user_id,
                        now=self._utc_now(),
                    ):
                        raise ConcurrencyConflictError(
                            guest.variant_id, attempts=1, message=f"cart line {guest.id} changed during merge"
                        )
                    continue

                merged_quantity = user_line.quantity + guest.quantity
                # release the guest hold first so the user line can re-claim those units
                await self._remove(session, guest)
                await self._set_quantity(session, user_line, merged_quantity)

            return await self.get_cart(session, user_id=user_id)

        return await self._run_in_tx(session, _inner)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _set_quantity(self, session: AsyncSession, item: CartItem, quantity: int) -> CartItem:
        now = self._utc_now()
        reserved_until = await self.ledger.adjust(
            session,
            variant_id=item.variant_id,
            old_quantity=item.held_quantity,
            new_quantity=quantity,
            now=now,
        )
        if not await self.repo.update_line(
            session, item, quantity=quantity, reserved_until=reserved_until, now=now
        ):
            # raising rolls the counter change back together with the line
            raise ConcurrencyConflictError(
                item.variant_id, attempts=1, message=f"cart line {item.id} changed concurrently"
            )
        return item

    async def _remove(self, session: AsyncSession, item: CartItem) -> None:
        held = item.held_quantity
        variant_id = item.variant_id
        if not await self.repo.delete_line(session, item):
            raise ConcurrencyConflictError(
                variant_id, attempts=1, message=f"cart line {item.id} changed concurrently"
            )
        if held:
            await self.ledger.release(session, variant_id=variant_id, quantity=held)
