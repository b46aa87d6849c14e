# storefront/services/variant_stock_store.py
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.product_variant import ProductVariant
from storefront.services.inventory_errors import StoreUnavailableError
from storefront.utils.timeutils import as_utc, utc_now


@dataclass(frozen=True)
class VariantStock:
    variant_id: str
    inventory_quantity: int
    reserved_quantity: int
    version: int
    updated_at: Optional[datetime] = None

    @property
    def available(self) -> int:
        return self.inventory_quantity - self.reserved_quantity


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """
    Transport level failures → StoreUnavailableError.

    Integrity / programming errors are bugs and keep propagating as-is.
    """
    try:
        yield
    except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, OSError) as e:
        raise StoreUnavailableError(f"stock store unavailable: {e}") from e


class VariantStockStore:
    """
    Read / conditional write of product_variants stock counters.

    The store never commits; it runs inside whatever transaction the caller
    has open on `session`.
    """

    async def load(self, session: AsyncSession, variant_id: str) -> Optional[VariantStock]:
        stmt = select(
            ProductVariant.id,
            ProductVariant.inventory_quantity,
            ProductVariant.reserved_quantity,
            ProductVariant.version,
            ProductVariant.updated_at,
        ).where(ProductVariant.id == variant_id)

        with translate_store_errors():
            row = (await session.execute(stmt)).first()

        if row is None:
            return None
        return VariantStock(
            variant_id=str(row.id),
            inventory_quantity=int(row.inventory_quantity),
            reserved_quantity=int(row.reserved_quantity),
            version=int(row.version),
            updated_at=as_utc(row.updated_at),
        )

    async def compare_and_set_reserved(
        self,
        session: AsyncSession,
        *,
        variant_id: str,
        expected_version: int,
        reserved_quantity: int,
        ceiling_check: bool,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        UPDATE reserved_quantity only if `version` is still `expected_version`.

        ceiling_check=True additionally requires inventory_quantity >= the new
        counter, so a concurrent stock decrease by inventory management that
        did not bump `version` still cannot be oversold.

        Returns True when exactly one row changed.
        """
        stmt = (
            update(ProductVariant)
            .where(
                ProductVariant.id == variant_id,
                ProductVariant.version == expected_version,
            )
            .values(
                reserved_quantity=reserved_quantity,
                version=ProductVariant.version + 1,
                updated_at=now or utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if ceiling_check:
            stmt = stmt.where(ProductVariant.inventory_quantity >= reserved_quantity)

        with translate_store_errors():
            result = await session.execute(stmt)
        return result.rowcount == 1

    async def get_variant(self, session: AsyncSession, variant_id: str) -> Optional[ProductVariant]:
        """Full catalogue row (price / product_id) for the cart."""
        with translate_store_errors():
            return await session.get(ProductVariant, variant_id)
