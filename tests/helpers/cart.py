# tests/helpers/cart.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.models.cart_item import CartItem
from storefront.models.product_variant import ProductVariant


async def seed_variant(
    maker: async_sessionmaker[AsyncSession],
    variant_id: str,
    *,
    inventory: int,
    reserved: int = 0,
    price: str = "10.00",
    product_id: str = "P-1",
) -> None:
    async with maker() as s:
        async with s.begin():
            s.add(
                ProductVariant(
                    id=variant_id,
                    product_id=product_id,
                    sku=f"SKU-{variant_id}",
                    price=Decimal(price),
                    inventory_quantity=inventory,
                    reserved_quantity=reserved,
                    version=0,
                )
            )


async def seed_line(
    maker: async_sessionmaker[AsyncSession],
    *,
    variant_id: str,
    quantity: int,
    reserved_until: Optional[datetime],
    user_id: Optional[str] = None,
    session_id: Optional[str] = "guest-1",
    price: str = "10.00",
) -> int:
    """Cart line written directly; the caller keeps reserved_quantity in step."""
    async with maker() as s:
        async with s.begin():
            item = CartItem(
                user_id=user_id,
                session_id=None if user_id else session_id,
                product_id="P-1",
                variant_id=variant_id,
                quantity=quantity,
                price_at_time=Decimal(price),
                reserved_until=reserved_until,
            )
            s.add(item)
            await s.flush()
            return int(item.id)


async def reserved_of(maker: async_sessionmaker[AsyncSession], variant_id: str) -> int:
    async with maker() as s:
        return int(
            (
                await s.execute(
                    select(ProductVariant.reserved_quantity).where(ProductVariant.id == variant_id)
                )
            ).scalar_one()
        )


async def version_of(maker: async_sessionmaker[AsyncSession], variant_id: str) -> int:
    async with maker() as s:
        return int(
            (await s.execute(select(ProductVariant.version).where(ProductVariant.id == variant_id))).scalar_one()
        )


async def line_of(maker: async_sessionmaker[AsyncSession], item_id: int) -> Optional[CartItem]:
    async with maker() as s:
        return await s.get(CartItem, item_id)


async def held_sum(maker: async_sessionmaker[AsyncSession], variant_id: str) -> int:
    async with maker() as s:
        rows = (
            await s.execute(
                select(CartItem.quantity).where(
                    CartItem.variant_id == variant_id,
                    CartItem.reserved_until.is_not(None),
                )
            )
        ).scalars()
        return sum(int(q) for q in rows)
