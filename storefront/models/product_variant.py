# storefront/models/product_variant.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.base import Base


class ProductVariant(Base):
    """
    Sellable SKU of a product, together with its stock counters.

    inventory_quantity: physical units, written by inventory management only
    reserved_quantity:  units held by open cart lines
    version:            optimistic concurrency marker, +1 per counter write
    """

    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0")

    inventory_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("inventory_quantity >= 0", name="ck_product_variants_inventory_nonneg"),
        CheckConstraint("reserved_quantity >= 0", name="ck_product_variants_reserved_nonneg"),
        UniqueConstraint("sku", name="uq_product_variants_sku"),
    )

    @property
    def available_quantity(self) -> int:
        return self.inventory_quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<ProductVariant id={self.id} sku={self.sku} "
            f"inventory={self.inventory_quantity} reserved={self.reserved_quantity} v={self.version}>"
        )
