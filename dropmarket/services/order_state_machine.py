"""
Order and order item state machines.

Order:  PENDING/CONFIRMED -> IN_TRANSIT -> ARRIVED -> READY_FOR_PICKUP -> COMPLETED
        any pre-completion status -> CANCELLED
Item:   PENDING -> READY -> PICKED_UP, plus the returned_to_sender flag
        which may be set from PENDING or READY.

An order completes as soon as every item is terminal. That move is derived
from item state, so COMPLETED is reachable from every non-terminal status.
"""
from typing import Optional, List, Dict, Iterable

from dropmarket.core.enum_utils import get_enum_value
from dropmarket.core.results import InvalidTransitionError
from dropmarket.db_types import utc_now
from dropmarket.models.order import OrderStatus, OrderStatusHistory, PickupStatus


ORDER_TRANSITIONS: Dict[str, List[str]] = {
    OrderStatus.PENDING.value: [
        OrderStatus.IN_TRANSIT.value,
        OrderStatus.ARRIVED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.CONFIRMED.value: [
        OrderStatus.IN_TRANSIT.value,
        OrderStatus.ARRIVED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.IN_TRANSIT.value: [
        OrderStatus.ARRIVED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.ARRIVED.value: [
        OrderStatus.READY_FOR_PICKUP.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.READY_FOR_PICKUP.value: [
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.COMPLETED.value: [],
    OrderStatus.CANCELLED.value: [],
}

ITEM_TRANSITIONS: Dict[str, List[str]] = {
    PickupStatus.PENDING.value: [PickupStatus.READY.value],
    PickupStatus.READY.value: [PickupStatus.PICKED_UP.value],
    PickupStatus.PICKED_UP.value: [],
}


def can_transition_order(current_status: str, new_status: str) -> bool:
    return get_enum_value(new_status) in ORDER_TRANSITIONS.get(get_enum_value(current_status), [])


def is_order_terminal(status: str) -> bool:
    return not ORDER_TRANSITIONS.get(get_enum_value(status), [])


def transition_order(order, new_status: str, user_id=None, notes: Optional[str] = None) -> OrderStatusHistory:
    """
    Transition an order, set its audit timestamp and return the history row.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    current_status = get_enum_value(order.status)
    new_status = get_enum_value(new_status)
    if not can_transition_order(current_status, new_status):
        raise InvalidTransitionError(
            "Order", current_status, new_status, ORDER_TRANSITIONS.get(current_status, [])
        )

    order.status = new_status
    now = utc_now()

    if new_status == OrderStatus.IN_TRANSIT.value:
        order.shipped_at = now
    elif new_status == OrderStatus.ARRIVED.value:
        order.arrived_at = now
    elif new_status == OrderStatus.READY_FOR_PICKUP.value:
        order.ready_at = now
    elif new_status == OrderStatus.COMPLETED.value:
        order.completed_at = now
    elif new_status == OrderStatus.CANCELLED.value:
        order.cancelled_at = now

    return OrderStatusHistory(
        order_id=order.id,
        from_status=current_status,
        to_status=new_status,
        changed_by=user_id,
        notes=notes,
    )


def is_item_terminal(item) -> bool:
    return bool(item.returned_to_sender) or item.pickup_status == PickupStatus.PICKED_UP.value


def can_mark_item_ready(item) -> bool:
    return not is_item_terminal(item) and item.pickup_status == PickupStatus.PENDING.value


def mark_item_picked_up(item) -> None:
    """READY -> PICKED_UP."""
    current = get_enum_value(item.pickup_status)
    if is_item_terminal(item) or PickupStatus.PICKED_UP.value not in ITEM_TRANSITIONS.get(current, []):
        raise InvalidTransitionError(
            "Order item",
            "RETURNED_TO_SENDER" if item.returned_to_sender else current,
            PickupStatus.PICKED_UP.value,
            [] if is_item_terminal(item) else ITEM_TRANSITIONS.get(current, []),
        )
    item.pickup_status = PickupStatus.PICKED_UP.value
    item.picked_up_at = utc_now()


def mark_item_returned(item, reason: str) -> None:
    """PENDING/READY -> returned to sender."""
    if is_item_terminal(item):
        raise InvalidTransitionError(
            "Order item",
            "RETURNED_TO_SENDER" if item.returned_to_sender else get_enum_value(item.pickup_status),
            "RETURNED_TO_SENDER",
            [],
        )
    item.returned_to_sender = True
    item.return_reason = reason
    item.returned_at = utc_now()


def all_items_terminal(items: Iterable) -> bool:
    items = list(items)
    return bool(items) and all(is_item_terminal(i) for i in items)
