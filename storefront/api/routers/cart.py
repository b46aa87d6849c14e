# storefront/api/routers/cart.py
from __future__ import annotations

from fastapi import APIRouter

from storefront.api.routers import cart_routes

router = APIRouter(tags=["cart"])


def _register_all_routes() -> None:
    cart_routes.register(router)


_register_all_routes()

__all__ = ["router"]
