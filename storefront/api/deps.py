# storefront/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.problem import raise_problem
from storefront.db.session import get_session as _get_session
from storefront.services.cart_service import CartService


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one AsyncSession per request."""
    async for session in _get_session():
        yield session


def get_cart_service() -> CartService:
    return CartService()


@dataclass(frozen=True)
class CartOwner:
    user_id: Optional[str]
    session_id: Optional[str]


def get_cart_owner(
    x_user_id: Optional[str] = Header(default=None),
    x_session_id: Optional[str] = Header(default=None),
) -> CartOwner:
    """
    Cart identity from headers. Issuing / verifying these identities belongs
    to the auth layer; here they are taken as given.
    """
    user_id = (x_user_id or "").strip() or None
    session_id = (x_session_id or "").strip() or None
    if not user_id and not session_id:
        raise_problem(400, "cart_owner_required", "X-User-Id or X-Session-Id header is required")
    return CartOwner(user_id=user_id, session_id=session_id)
