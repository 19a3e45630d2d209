"""API endpoints for consumer notifications."""
from fastapi import APIRouter, Query

from dropmarket.api.deps import DB, CurrentUserId
from dropmarket.schemas.notifications import (
    NotificationResponse,
    NotificationListResponse,
    MarkReadRequest,
    MarkReadResponse,
)
from dropmarket.services.notification_service import NotificationService

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_my_notifications(
    db: DB,
    user_id: CurrentUserId,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
):
    service = NotificationService(db)
    notifications = await service.list_for_user(user_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=await service.unread_count(user_id),
    )


@router.post("/mark-read", response_model=MarkReadResponse)
async def mark_read(data: MarkReadRequest, db: DB, user_id: CurrentUserId):
    """Mark the given notifications as read, or all of them when none are given."""
    service = NotificationService(db)
    updated = await service.mark_read(user_id, data.notification_ids)
    return MarkReadResponse(updated=updated)
