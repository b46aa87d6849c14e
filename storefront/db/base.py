# storefront/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("storefront.models")


class Base(DeclarativeBase):
    """ORM base shared by every table (alembic/env.py compares against Base.metadata)."""


# variants first: cart_items points at product_variants
MODEL_MODULES = (
    "storefront.models.product_variant",
    "storefront.models.cart_item",
)

_initialized = False


def init_models(*, force: bool = False) -> None:
    """Register every mapped class on Base.metadata, once per process."""
    global _initialized
    if _initialized and not force:
        return

    for mod in MODEL_MODULES:
        importlib.import_module(mod)
    configure_mappers()

    _initialized = True
    log.debug("models registered: %s", ", ".join(sorted(Base.metadata.tables)))
