"""Order and pickup API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from dropmarket.api.deps import DB, CurrentUserId, Gateway, raise_for_result
from dropmarket.models.order import OrderStatus
from dropmarket.schemas.base import parse_status_filter
from dropmarket.schemas.order import (
    OrderResponse,
    OrderDetail,
    OrderListResponse,
    OrderItemResponse,
    ItemReturn,
    OrderCancel,
)
from dropmarket.services.fulfillment_service import FulfillmentService


router = APIRouter()


@router.get("", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    pickup_point_id: Optional[uuid.UUID] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[uuid.UUID] = Query(None),
):
    """
    Get paginated list of orders.
    Pickup point staff filter by their pickup point.
    """
    try:
        order_status = parse_status_filter(status_filter, OrderStatus)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    service = FulfillmentService(db)
    orders, total = await service.list_orders(
        pickup_point_id=pickup_point_id,
        status=order_status,
        user_id=user_id,
        page=page,
        size=size,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=service.pages(total, size),
    )


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: uuid.UUID, db: DB):
    """Get order with items and customer contact details."""
    service = FulfillmentService(db)
    detail = await service.get_order_detail(order_id)
    if not detail:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )
    return OrderDetail.model_validate(detail)


@router.post("/{order_id}/ship", response_model=OrderResponse)
async def mark_shipped(order_id: uuid.UUID, db: DB, user_id: CurrentUserId):
    service = FulfillmentService(db)
    result = await service.mark_shipped(order_id, user_id=user_id)
    raise_for_result(result)
    return OrderResponse.model_validate(result.value)


@router.post("/{order_id}/arrive", response_model=OrderResponse)
async def confirm_arrival(order_id: uuid.UUID, db: DB, user_id: CurrentUserId):
    """Goods arrived at the pickup point; customers are told to collect."""
    service = FulfillmentService(db)
    result = await service.confirm_arrival(order_id, user_id=user_id)
    raise_for_result(result)
    return OrderResponse.model_validate(result.value)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: uuid.UUID, data: OrderCancel, db: DB, user_id: CurrentUserId, gateway: Gateway):
    service = FulfillmentService(db, gateway=gateway)
    result = await service.cancel_order(order_id, reason=data.reason, user_id=user_id)
    raise_for_result(result)
    return OrderResponse.model_validate(result.value)


@router.post("/items/{item_id}/pickup", response_model=OrderItemResponse)
async def confirm_pickup(item_id: uuid.UUID, db: DB, user_id: CurrentUserId):
    service = FulfillmentService(db)
    result = await service.confirm_pickup(item_id, user_id=user_id)
    raise_for_result(result)
    return OrderItemResponse.model_validate(result.value)


@router.post("/items/{item_id}/return", response_model=OrderItemResponse)
async def confirm_return(item_id: uuid.UUID, data: ItemReturn, db: DB, user_id: CurrentUserId):
    """Item was not collected and goes back to the supplier."""
    service = FulfillmentService(db)
    result = await service.confirm_return(item_id, data.reason, user_id=user_id)
    raise_for_result(result)
    return OrderItemResponse.model_validate(result.value)
