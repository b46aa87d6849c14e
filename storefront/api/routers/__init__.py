# storefront/api/routers/__init__.py
