# storefront/services/inventory_errors.py
from __future__ import annotations

from typing import Optional


class ReservationError(Exception):
    """Base class for recoverable stock reservation failures."""


class InsufficientStockError(ReservationError):
    """Requested increase exceeds the units currently available."""

    def __init__(self, variant_id: str, *, requested: int, available: int) -> None:
        self.variant_id = variant_id
        self.requested = int(requested)
        self.available = int(available)
        super().__init__(
            f"insufficient stock for variant {variant_id}: "
            f"requested={self.requested}, available={self.available}"
        )


class ConcurrencyConflictError(ReservationError):
    """Optimistic write retries exhausted; the caller may retry the whole operation."""

    def __init__(self, variant_id: str, *, attempts: int, message: Optional[str] = None) -> None:
        self.variant_id = variant_id
        self.attempts = int(attempts)
        super().__init__(message or f"concurrent update on variant {variant_id} (attempts={self.attempts})")


class NotFoundError(ReservationError):
    """Variant record or cart line missing."""

    def __init__(self, entity: str, key) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class StoreUnavailableError(ReservationError):
    """Backing store could not be reached or failed at transport level."""
