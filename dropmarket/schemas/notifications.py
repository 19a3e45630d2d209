"""Notification schemas."""
import uuid
from datetime import datetime
from typing import Optional, List

from dropmarket.schemas.base import BaseCreateSchema, BaseResponseSchema


class NotificationResponse(BaseResponseSchema):
    id: uuid.UUID
    notification_type: str
    title: str
    message: str
    related_id: Optional[uuid.UUID] = None
    related_type: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(BaseResponseSchema):
    items: List[NotificationResponse]
    unread_count: int


class MarkReadRequest(BaseCreateSchema):
    notification_ids: Optional[List[uuid.UUID]] = None


class MarkReadResponse(BaseResponseSchema):
    updated: int
