"""Interest and drop schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import Field

from dropmarket.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== INTEREST SCHEMAS ====================

class InterestCreate(BaseCreateSchema):
    product_id: uuid.UUID
    pickup_point_id: uuid.UUID


class InterestResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    product_id: uuid.UUID
    supplier_list_id: uuid.UUID
    pickup_point_id: uuid.UUID
    created_at: datetime


class InterestRegistration(BaseResponseSchema):
    interest: InterestResponse
    interest_value: Decimal
    drop_id: Optional[uuid.UUID] = None
    drop_created: bool = False


# ==================== DROP SCHEMAS ====================

class DropCreate(BaseCreateSchema):
    """Admin creation of an approved drop for a (list, pickup point) pair."""
    supplier_list_id: uuid.UUID
    pickup_point_id: uuid.UUID
    start_time: Optional[datetime] = None
    name: Optional[str] = Field(None, max_length=255)


class DropApproval(BaseCreateSchema):
    start_time: Optional[datetime] = None


class DropAction(BaseCreateSchema):
    notes: Optional[str] = None


class DropStatusHistoryResponse(BaseResponseSchema):
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    created_at: datetime


class DropResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    supplier_list_id: uuid.UUID
    pickup_point_id: uuid.UUID
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    current_value: Decimal
    current_discount: Decimal
    target_value: Optional[Decimal] = None
    approved_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class DropDetail(DropResponse):
    status_history: List[DropStatusHistoryResponse] = Field(default_factory=list)


class DropListResponse(BaseResponseSchema):
    items: List[DropResponse]
    total: int
    page: int
    size: int
    pages: int


class DropCloseResponse(BaseResponseSchema):
    drop_id: uuid.UUID
    status: str
    captured: int = 0
    released: int = 0
    failed: int = 0
    order_id: Optional[uuid.UUID] = None
    notified_users: int = 0


class LifecycleRunResponse(BaseResponseSchema):
    activated: int
    closed: List[DropCloseResponse]
    settled: List[DropCloseResponse] = []
