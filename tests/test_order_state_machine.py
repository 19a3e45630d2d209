"""Order and item transitions."""
import uuid
from types import SimpleNamespace

import pytest

from dropmarket.core.results import InvalidTransitionError
from dropmarket.models.order import OrderStatus, PickupStatus
from dropmarket.services.order_state_machine import (
    all_items_terminal,
    can_mark_item_ready,
    can_transition_order,
    is_order_terminal,
    mark_item_picked_up,
    mark_item_returned,
    transition_order,
)


def make_order(status=OrderStatus.CONFIRMED):
    return SimpleNamespace(
        id=uuid.uuid4(), status=status,
        shipped_at=None, arrived_at=None, ready_at=None, completed_at=None, cancelled_at=None,
    )


def make_item(pickup_status=PickupStatus.PENDING, returned=False):
    return SimpleNamespace(
        pickup_status=pickup_status, returned_to_sender=returned,
        return_reason=None, returned_at=None, picked_up_at=None,
    )


def test_happy_path_sets_timestamps():
    order = make_order()
    for status in (OrderStatus.IN_TRANSIT, OrderStatus.ARRIVED, OrderStatus.READY_FOR_PICKUP, OrderStatus.COMPLETED):
        history = transition_order(order, status)
        assert history.to_status == status

    assert order.shipped_at and order.arrived_at and order.ready_at and order.completed_at
    assert is_order_terminal(order.status)


def test_cancel_from_any_open_status():
    for status in (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT,
                   OrderStatus.ARRIVED, OrderStatus.READY_FOR_PICKUP):
        assert can_transition_order(status, OrderStatus.CANCELLED)


def test_no_transition_out_of_terminal():
    order = make_order(OrderStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        transition_order(order, OrderStatus.CANCELLED)
    assert order.status == OrderStatus.COMPLETED


def test_cannot_go_backwards():
    assert not can_transition_order(OrderStatus.ARRIVED, OrderStatus.IN_TRANSIT)


class TestItems:
    def test_pickup_requires_ready(self):
        item = make_item()
        with pytest.raises(InvalidTransitionError):
            mark_item_picked_up(item)

        item.pickup_status = PickupStatus.READY
        mark_item_picked_up(item)
        assert item.pickup_status == PickupStatus.PICKED_UP
        assert item.picked_up_at is not None

    def test_return_from_ready(self):
        item = make_item(PickupStatus.READY)
        mark_item_returned(item, "not collected")
        assert item.returned_to_sender
        assert item.return_reason == "not collected"
        assert not can_mark_item_ready(item)

    def test_returned_item_cannot_be_picked_up(self):
        item = make_item(PickupStatus.READY, returned=True)
        with pytest.raises(InvalidTransitionError):
            mark_item_picked_up(item)

    def test_picked_up_item_cannot_be_returned(self):
        item = make_item(PickupStatus.PICKED_UP)
        with pytest.raises(InvalidTransitionError):
            mark_item_returned(item, "too late")

    def test_all_items_terminal(self):
        assert not all_items_terminal([])
        assert not all_items_terminal([make_item(PickupStatus.PICKED_UP), make_item(PickupStatus.READY)])
        assert all_items_terminal([make_item(PickupStatus.PICKED_UP), make_item(returned=True)])
