"""Order and fulfillment schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import Field

from dropmarket.schemas.base import BaseCreateSchema, BaseResponseSchema


class OrderItemResponse(BaseResponseSchema):
    id: uuid.UUID
    order_id: uuid.UUID
    booking_id: uuid.UUID
    user_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    product_name: Optional[str] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    quantity: int
    unit_price: Decimal
    pickup_status: str
    customer_notified_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    returned_to_sender: bool
    return_reason: Optional[str] = None
    returned_at: Optional[datetime] = None


class OrderItemDetail(OrderItemResponse):
    """Order item enriched with the customer's profile for staff views."""
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class OrderResponse(BaseResponseSchema):
    id: uuid.UUID
    order_number: str
    drop_id: uuid.UUID
    supplier_id: uuid.UUID
    supplier_list_id: uuid.UUID
    pickup_point_id: uuid.UUID
    status: str
    total_amount: Decimal
    commission_amount: Decimal
    item_count: int
    shipped_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime


class OrderDetail(OrderResponse):
    items: List[OrderItemDetail] = Field(default_factory=list)


class OrderListResponse(BaseResponseSchema):
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int


class ItemReturn(BaseCreateSchema):
    reason: str = Field(..., min_length=1)


class OrderCancel(BaseCreateSchema):
    reason: Optional[str] = None
