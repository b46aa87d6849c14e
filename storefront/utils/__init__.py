# storefront/utils/__init__.py
