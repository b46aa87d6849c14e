# storefront/db/__init__.py
from storefront.db.base import Base, init_models

__all__ = ["Base", "init_models"]
