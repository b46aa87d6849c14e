# storefront/api/routers/cart_schemas.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.utils.timeutils import as_utc


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: str
    variant_id: str
    quantity: int
    price_at_time: Decimal
    reserved_until: Optional[datetime] = None

    @field_validator("reserved_until")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class CartOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    items: List[CartItemOut] = Field(default_factory=list)


class CartSummaryOut(BaseModel):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    item_count: int


class AddItemIn(BaseModel):
    variant_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(default=1, gt=0, le=10_000)


class UpdateItemIn(BaseModel):
    # 0 removes the line
    quantity: int = Field(..., ge=0, le=10_000)


class MergeCartIn(BaseModel):
    guest_session_id: str = Field(..., min_length=1, max_length=64)


class ClearCartOut(BaseModel):
    removed: int


class AvailabilityOut(BaseModel):
    variant_id: str
    available: int
