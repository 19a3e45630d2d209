"""Booking schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from dropmarket.schemas.base import BaseCreateSchema, BaseResponseSchema


class BookingClaim(BaseCreateSchema):
    """Claim one unit of a sellable unit in an active drop."""
    drop_id: uuid.UUID
    unit_key: str = Field(..., min_length=1, description="SKU, or product id for SKU-less rows")
    size: Optional[str] = None
    color: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=100)


class BookingRelease(BaseCreateSchema):
    reason: Optional[str] = None


class BookingResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    drop_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    original_price: Decimal
    discount_percentage: Decimal
    authorized_amount: Decimal
    final_discount_percentage: Optional[Decimal] = None
    final_price: Optional[Decimal] = None
    payment_status: str
    captured_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    release_reason: Optional[str] = None
    created_at: datetime
