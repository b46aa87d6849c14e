# storefront/core/__init__.py
