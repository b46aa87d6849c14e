# storefront/jobs/__init__.py
