"""Orders built from completed drops, pickup and return tracking."""
import re
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List

import pytest
from sqlalchemy import select

from dropmarket.core.results import ErrorCode
from dropmarket.db_types import utc_now
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.catalog import Product
from dropmarket.models.drop import DropStatus
from dropmarket.models.notifications import Notification, NotificationType
from dropmarket.models.order import OrderStatus, PickupStatus
from dropmarket.models.profile import Profile
from dropmarket.services.booking_service import BookingService
from dropmarket.services.drop_service import DropService
from dropmarket.services.fulfillment_service import FulfillmentService

from tests.factories import seed_drop, seed_pickup_point, seed_product, seed_supplier_list


@dataclass
class CompletedDrop:
    drop_id: uuid.UUID
    order_id: uuid.UUID
    alice: uuid.UUID
    bob: uuid.UUID
    bag: Product
    hat: Product
    booking_ids: List[uuid.UUID]


@pytest.fixture
async def completed(db, gateway):
    """A drop that closed COMPLETED with three captured bookings from two users."""
    supplier_list = await seed_supplier_list(db)
    pickup_point = await seed_pickup_point(db, name="Bar Centrale")
    drop = await seed_drop(db, supplier_list, pickup_point, current_value="5000")
    bag = await seed_product(db, supplier_list, name="Tote Bag", price="100", stock=5)
    hat = await seed_product(db, supplier_list, name="Bucket Hat", price="50", stock=2)
    alice, bob = uuid.uuid4(), uuid.uuid4()

    bookings = BookingService(db, gateway=gateway)
    booking_ids = []
    for user_id, product in ((alice, bag), (alice, hat), (bob, bag)):
        result = await bookings.claim(user_id, drop.id, str(product.id))
        booking_ids.append(result.value.id)

    closed = await DropService(db, gateway=gateway).close_ended_drops(now=utc_now() + timedelta(days=6))
    assert closed[0].status == DropStatus.COMPLETED.value
    return CompletedDrop(drop.id, closed[0].order_id, alice, bob, bag, hat, booking_ids)


@pytest.fixture
def fulfillment(db, gateway):
    return FulfillmentService(db, gateway=gateway)


def items_of(order, user_id=None):
    return [i for i in order.items if user_id is None or i.user_id == user_id]


class TestOrderCreation:
    async def test_order_from_completed_drop(self, completed, fulfillment):
        order = await fulfillment.get_order(completed.order_id)

        assert re.fullmatch(r"ORD-\d{8}-0001", order.order_number)
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.item_count == 3
        # 5250 committed -> 30.5% off
        assert order.total_amount == Decimal("173.75")
        assert order.commission_amount == Decimal("8.69")
        assert sorted(i.product_name for i in items_of(order, completed.alice)) == ["Bucket Hat", "Tote Bag"]
        assert all(i.pickup_status == PickupStatus.PENDING.value for i in order.items)
        assert {i.booking_id for i in order.items} == set(completed.booking_ids)

    async def test_creation_is_idempotent(self, completed, fulfillment):
        again = await fulfillment.create_order_for_drop(completed.drop_id)

        assert again.success
        assert again.message == "order already exists"
        assert again.value.id == completed.order_id

    async def test_requires_a_completed_drop(self, db, fulfillment):
        supplier_list = await seed_supplier_list(db)
        pickup_point = await seed_pickup_point(db)
        drop = await seed_drop(db, supplier_list, pickup_point)

        result = await fulfillment.create_order_for_drop(drop.id)

        assert result.error_code == ErrorCode.DROP_NOT_COMPLETED

    async def test_no_order_without_captured_bookings(self, db, fulfillment):
        supplier_list = await seed_supplier_list(db)
        pickup_point = await seed_pickup_point(db)
        drop = await seed_drop(db, supplier_list, pickup_point, status=DropStatus.COMPLETED.value)

        result = await fulfillment.create_order_for_drop(drop.id)

        assert result.success
        assert result.value is None


class TestPickup:
    async def test_arrival_makes_items_ready_and_notifies_once_per_user(self, db, completed, fulfillment):
        shipped = await fulfillment.mark_shipped(completed.order_id)
        assert shipped.value.status == OrderStatus.IN_TRANSIT.value

        result = await fulfillment.confirm_arrival(completed.order_id)

        order = result.value
        assert order.status == OrderStatus.READY_FOR_PICKUP.value
        assert order.arrived_at is not None and order.ready_at is not None
        assert all(i.pickup_status == PickupStatus.READY.value for i in order.items)

        sent = (await db.execute(
            select(Notification).where(
                Notification.related_id == completed.order_id,
                Notification.notification_type == NotificationType.ORDER_READY_FOR_PICKUP.value,
            )
        )).scalars().all()
        assert sorted(n.user_id for n in sent) == sorted([completed.alice, completed.bob])
        assert all("Bar Centrale" in n.message for n in sent)

    async def test_pickup_before_arrival_is_rejected(self, completed, fulfillment):
        order = await fulfillment.get_order(completed.order_id)

        result = await fulfillment.confirm_pickup(order.items[0].id)

        assert result.error_code == ErrorCode.INVALID_TRANSITION

    async def test_order_completes_when_every_item_is_settled(self, db, completed, fulfillment):
        order = (await fulfillment.confirm_arrival(completed.order_id)).value
        alice_items = items_of(order, completed.alice)
        bob_item = items_of(order, completed.bob)[0]

        for item in alice_items:
            picked = await fulfillment.confirm_pickup(item.id)
            assert picked.value.pickup_status == PickupStatus.PICKED_UP.value
        assert (await fulfillment.get_order(completed.order_id)).status == OrderStatus.READY_FOR_PICKUP.value

        returned = await fulfillment.confirm_return(bob_item.id, "not collected in 7 days")

        assert returned.value.returned_to_sender
        finished = await fulfillment.get_order(completed.order_id)
        assert finished.status == OrderStatus.COMPLETED.value
        assert finished.completed_at is not None

        notice = (await db.execute(
            select(Notification).where(Notification.notification_type == NotificationType.ITEM_RETURNED.value)
        )).scalar_one()
        assert notice.user_id == completed.bob

        late = await fulfillment.confirm_pickup(bob_item.id)
        assert late.error_code == ErrorCode.INVALID_TRANSITION

    async def test_item_cannot_be_returned_twice(self, completed, fulfillment):
        order = (await fulfillment.confirm_arrival(completed.order_id)).value
        item = items_of(order, completed.alice)[0]

        await fulfillment.confirm_return(item.id, "damaged")
        again = await fulfillment.confirm_return(item.id, "damaged")

        assert again.error_code == ErrorCode.INVALID_TRANSITION


class TestCancellationAndViews:
    async def test_cancel_refunds_every_booking(self, db, completed, fulfillment, gateway):
        result = await fulfillment.cancel_order(completed.order_id, reason="supplier out of business")

        assert result.value.status == OrderStatus.CANCELLED.value
        statuses = (await db.execute(
            select(Booking.payment_status)
            .where(Booking.id.in_(completed.booking_ids))
            .execution_options(populate_existing=True)
        )).scalars().all()
        assert statuses == [PaymentStatus.REFUNDED.value] * 3
        assert len(gateway.released) == 3

        stock = (await db.execute(
            select(Product.stock).where(Product.id == completed.hat.id)
        )).scalar_one()
        assert stock == 2

    async def test_cannot_cancel_completed_order(self, completed, fulfillment):
        order = (await fulfillment.confirm_arrival(completed.order_id)).value
        for item in order.items:
            await fulfillment.confirm_pickup(item.id)

        result = await fulfillment.cancel_order(completed.order_id)

        assert result.error_code == ErrorCode.INVALID_TRANSITION

    async def test_detail_labels_customers(self, db, completed, fulfillment):
        db.add(Profile(user_id=completed.alice, full_name="Alice Rossi", email="alice@example.com"))
        await db.commit()

        detail = await fulfillment.get_order_detail(completed.order_id)

        labels = {item["user_id"]: item["customer_name"] for item in detail["items"]}
        assert labels[completed.alice] == "Alice Rossi"
        assert labels[completed.bob] == "Customer"
        assert detail["order_number"].startswith("ORD-")

    async def test_list_orders_for_a_consumer(self, completed, fulfillment):
        mine, total = await fulfillment.list_orders(user_id=completed.bob)
        assert total == 1
        assert mine[0].id == completed.order_id

        _, nobody = await fulfillment.list_orders(user_id=uuid.uuid4())
        assert nobody == 0
