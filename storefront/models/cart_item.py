# storefront/models/cart_item.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.base import Base


class CartItem(Base):
    """
    Cart line. Also carries the stock hold for its variant:

      reserved_until IS NOT NULL → `quantity` units are counted in
                                   product_variants.reserved_quantity
      reserved_until IS NULL     → the hold was reclaimed by the sweep
    """

    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # cart identity: signed-in user or guest session
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    variant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_time: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    reserved_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_pos"),
        CheckConstraint(
            "user_id IS NOT NULL OR session_id IS NOT NULL",
            name="ck_cart_items_owner",
        ),
        Index("ix_cart_items_reserved_until", "reserved_until"),
        Index("ix_cart_items_user_id", "user_id"),
        Index("ix_cart_items_session_id", "session_id"),
        # one line per variant per cart: signed-in carts by user_id, guest carts by session_id
        Index(
            "uq_cart_items_user_variant",
            "user_id",
            "variant_id",
            unique=True,
            postgresql_where=text("user_id IS NOT NULL"),
            sqlite_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_cart_items_guest_variant",
            "session_id",
            "variant_id",
            unique=True,
            postgresql_where=text("user_id IS NULL"),
            sqlite_where=text("user_id IS NULL"),
        ),
    )

    @property
    def held_quantity(self) -> int:
        """Units this line currently holds in the variant's reserved counter."""
        return self.quantity if self.reserved_until is not None else 0

    def __repr__(self) -> str:
        return (
            f"<CartItem id={self.id} variant={self.variant_id} qty={self.quantity} "
            f"reserved_until={self.reserved_until}>"
        )
