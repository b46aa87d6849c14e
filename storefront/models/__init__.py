# storefront/models/__init__.py
from storefront.models.cart_item import CartItem
from storefront.models.product_variant import ProductVariant

__all__ = ["CartItem", "ProductVariant"]
