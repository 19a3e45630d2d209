"""
Fulfillment Orchestrator.

Turns a completed drop's captured bookings into one order at the drop's
pickup point and tracks each item through pickup or return to sender.
The order completes by itself as soon as every item is terminal.
"""
import logging
import math
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dropmarket.config import settings
from dropmarket.core.results import ErrorCode, InvalidTransitionError, OperationResult
from dropmarket.db_types import utc_now
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.catalog import Product, SupplierList
from dropmarket.models.drop import Drop, DropStatus
from dropmarket.models.notifications import NotificationType
from dropmarket.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory, PickupStatus
from dropmarket.models.pickup_point import PickupPoint
from dropmarket.models.profile import Profile
from dropmarket.services.discount_engine import quantize_money
from dropmarket.services.notification_service import NotificationMessage, NotificationService
from dropmarket.services.payment_service import PaymentGateway
from dropmarket.services.order_state_machine import (
    all_items_terminal,
    can_mark_item_ready,
    is_order_terminal,
    mark_item_picked_up,
    mark_item_returned,
    transition_order,
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3


class FulfillmentService:
    """Orders, pickup confirmations and returns."""

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.notifications = NotificationService(db)

    async def generate_order_number(self) -> str:
        """Generate unique order number: ORD-YYYYMMDD-NNNN"""
        today = utc_now().strftime("%Y%m%d")
        prefix = f"ORD-{today}-"

        stmt = select(func.count(Order.id)).where(
            Order.order_number.like(f"{prefix}%")
        )
        count = (await self.db.execute(stmt)).scalar() or 0

        return f"{prefix}{(count + 1):04d}"

    # ==================== Lookups ====================

    async def get_order(self, order_id: uuid.UUID, with_items: bool = True) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if with_items:
            query = query.options(selectinload(Order.items))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_order_for_drop(self, drop_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.drop_id == drop_id)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_item(self, item_id: uuid.UUID) -> Optional[OrderItem]:
        result = await self.db.execute(
            select(OrderItem).where(OrderItem.id == item_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        pickup_point_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Order], int]:
        query = select(Order)
        count_query = select(func.count(Order.id))

        filters = []
        if pickup_point_id:
            filters.append(Order.pickup_point_id == pickup_point_id)
        if status:
            filters.append(Order.status == status)
        if user_id:
            filters.append(Order.id.in_(select(OrderItem.order_id).where(OrderItem.user_id == user_id)))
        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(Order.created_at.desc()).offset((page - 1) * size).limit(size)
        orders = (await self.db.execute(query)).scalars().all()
        return list(orders), total

    @staticmethod
    def pages(total: int, size: int) -> int:
        return math.ceil(total / size) if total > 0 else 1

    # ==================== Order Creation ====================

    async def create_order_for_drop(self, drop_id: uuid.UUID) -> OperationResult:
        """
        Create the order for a completed drop from its captured bookings.

        Idempotent: a second call returns the existing order. A drop with no
        captured booking gets no order.
        """
        existing = await self.get_order_for_drop(drop_id)
        if existing:
            return OperationResult.ok(existing, "order already exists")

        drop = await self.db.get(Drop, drop_id)
        if not drop:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Drop not found")
        if drop.status != DropStatus.COMPLETED.value:
            return OperationResult.fail(ErrorCode.DROP_NOT_COMPLETED, "Drop has not completed")

        bookings = (await self.db.execute(
            select(Booking)
            .where(Booking.drop_id == drop_id, Booking.payment_status == PaymentStatus.CAPTURED.value)
            .order_by(Booking.created_at, Booking.id)
            .execution_options(populate_existing=True)
        )).scalars().all()
        if not bookings:
            logger.info(f"Drop {drop_id} completed without captured bookings; no order created")
            return OperationResult.ok(None, "no captured bookings")

        supplier_list = await self.db.get(SupplierList, drop.supplier_list_id)
        pickup_point = await self.db.get(PickupPoint, drop.pickup_point_id)
        names: Dict[uuid.UUID, str] = dict((await self.db.execute(
            select(Product.id, Product.name).where(Product.id.in_({b.product_id for b in bookings}))
        )).all())

        # Plain snapshot: a rollback below expires ORM state.
        item_rows = [
            dict(
                booking_id=b.id,
                user_id=b.user_id,
                product_id=b.product_id,
                variant_id=b.variant_id,
                product_name=names.get(b.product_id),
                selected_size=b.selected_size,
                selected_color=b.selected_color,
                quantity=1,
                unit_price=b.final_price,
            )
            for b in bookings
        ]
        supplier_id = supplier_list.supplier_id
        supplier_list_id, pickup_point_id = drop.supplier_list_id, drop.pickup_point_id

        total = quantize_money(sum((Decimal(str(s["unit_price"])) for s in item_rows), Decimal("0")))
        rate = pickup_point.commission_rate if pickup_point and pickup_point.commission_rate is not None \
            else settings.DEFAULT_COMMISSION_RATE
        commission = quantize_money(total * Decimal(str(rate)))

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order = Order(
                id=uuid.uuid4(),
                order_number=await self.generate_order_number(),
                drop_id=drop_id,
                supplier_id=supplier_id,
                supplier_list_id=supplier_list_id,
                pickup_point_id=pickup_point_id,
                status=OrderStatus.CONFIRMED.value,
                total_amount=total,
                commission_amount=commission,
                item_count=len(item_rows),
            )
            order.items = [OrderItem(**row, pickup_status=PickupStatus.PENDING.value) for row in item_rows]
            self.db.add(order)
            try:
                await self.db.flush()
                self.db.add(OrderStatusHistory(
                    order_id=order.id,
                    from_status=None,
                    to_status=OrderStatus.CONFIRMED.value,
                    notes="Created from completed drop",
                ))
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                existing = await self.get_order_for_drop(drop_id)
                if existing:
                    return OperationResult.ok(existing, "order already exists")
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    logger.error(f"Could not allocate an order number for drop {drop_id}: {e}")
                    return OperationResult.fail(
                        ErrorCode.INFRASTRUCTURE_ERROR, "Order could not be created", e
                    )
                logger.warning(f"Order number collision for drop {drop_id}, retrying")
                continue
            break

        logger.info(
            f"Created order {order.order_number} for drop {drop_id}: "
            f"{len(item_rows)} items, total {total}, commission {commission}"
        )
        return OperationResult.ok(await self.get_order(order.id))

    # ==================== Order Transitions ====================

    def _transition(self, order: Order, new_status: str, user_id=None, notes=None) -> Optional[OperationResult]:
        try:
            history = transition_order(order, new_status, user_id, notes)
        except InvalidTransitionError as e:
            return OperationResult.fail(ErrorCode.INVALID_TRANSITION, str(e), e)
        self.db.add(history)
        logger.info(f"Order {order.order_number}: {history.from_status} -> {new_status}")
        return None

    async def mark_shipped(self, order_id: uuid.UUID, user_id=None) -> OperationResult:
        """Supplier shipped the goods to the pickup point."""
        order = await self.get_order(order_id)
        if not order:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Order not found")
        failure = self._transition(order, OrderStatus.IN_TRANSIT.value, user_id)
        if failure:
            return failure
        await self.db.commit()
        return OperationResult.ok(await self.get_order(order_id))

    async def confirm_arrival(self, order_id: uuid.UUID, user_id=None) -> OperationResult:
        """
        Pickup point received the goods.

        Moves the order through ARRIVED to READY_FOR_PICKUP, marks every open
        item READY and notifies each distinct consumer once.
        """
        order = await self.get_order(order_id)
        if not order:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Order not found")

        failure = self._transition(order, OrderStatus.ARRIVED.value, user_id)
        if failure:
            return failure
        failure = self._transition(order, OrderStatus.READY_FOR_PICKUP.value, user_id)
        if failure:
            await self.db.rollback()
            return failure

        now = utc_now()
        notified_users: List[uuid.UUID] = []
        for item in order.items:
            if can_mark_item_ready(item):
                item.pickup_status = PickupStatus.READY.value
                item.customer_notified_at = now
                if item.user_id not in notified_users:
                    notified_users.append(item.user_id)
        await self.db.commit()

        pickup_point = await self.db.get(PickupPoint, order.pickup_point_id)
        location = pickup_point.name if pickup_point else "your pickup point"
        await self.notifications.notify_many([
            NotificationMessage(
                user_id=uid,
                title="Your order is ready for pickup",
                message=f"Order {order.order_number} is waiting for you at {location}.",
                notification_type=NotificationType.ORDER_READY_FOR_PICKUP,
                related_id=order.id,
                related_type="order",
            )
            for uid in notified_users
        ])
        return OperationResult.ok(await self.get_order(order_id))

    async def cancel_order(self, order_id: uuid.UUID, reason: Optional[str] = None, user_id=None) -> OperationResult:
        """Cancel before completion; captured bookings are refunded."""
        from dropmarket.services.booking_service import BookingService

        order = await self.get_order(order_id)
        if not order:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Order not found")
        failure = self._transition(order, OrderStatus.CANCELLED.value, user_id, reason)
        if failure:
            return failure
        order.cancellation_reason = reason
        booking_ids = [item.booking_id for item in order.items]
        await self.db.commit()

        booking_service = BookingService(self.db, gateway=self.gateway)
        for booking_id in booking_ids:
            result = await booking_service.release(booking_id, reason=reason or "order cancelled")
            if not result.success:
                logger.error(f"Refund failed for booking {booking_id} of cancelled order {order_id}")
        return OperationResult.ok(await self.get_order(order_id))

    # ==================== Item Transitions ====================

    async def _load_open_item(self, item_id: uuid.UUID) -> Tuple[Optional[OrderItem], Optional[Order], Optional[OperationResult]]:
        item = await self._get_item(item_id)
        if not item:
            return None, None, OperationResult.fail(ErrorCode.NOT_FOUND, "Order item not found")
        order = await self.get_order(item.order_id)
        if is_order_terminal(order.status):
            return item, order, OperationResult.fail(
                ErrorCode.INVALID_TRANSITION, f"Order is {order.status.lower()}"
            )
        return item, order, None

    async def confirm_pickup(self, item_id: uuid.UUID, user_id=None) -> OperationResult:
        """Consumer collected the item: READY -> PICKED_UP."""
        item, order, failure = await self._load_open_item(item_id)
        if failure:
            return failure
        try:
            mark_item_picked_up(item)
        except InvalidTransitionError as e:
            return OperationResult.fail(ErrorCode.INVALID_TRANSITION, str(e), e)

        await self._check_order_completion(order, user_id)
        await self.db.commit()
        logger.info(f"Order item {item_id} picked up")
        return OperationResult.ok(await self._get_item(item_id))

    async def confirm_return(self, item_id: uuid.UUID, reason: str, user_id=None) -> OperationResult:
        """Item was not collected and goes back to the supplier."""
        item, order, failure = await self._load_open_item(item_id)
        if failure:
            return failure
        try:
            mark_item_returned(item, reason)
        except InvalidTransitionError as e:
            return OperationResult.fail(ErrorCode.INVALID_TRANSITION, str(e), e)

        await self._check_order_completion(order, user_id)
        await self.db.commit()
        logger.info(f"Order item {item_id} returned to sender: {reason}")

        await self.notifications.notify(
            item.user_id,
            "Item returned to sender",
            f"{item.product_name or 'An item'} from order {order.order_number} was returned: {reason}",
            NotificationType.ITEM_RETURNED,
            related_id=order.id,
            related_type="order",
        )
        return OperationResult.ok(await self._get_item(item_id))

    async def _check_order_completion(self, order: Order, user_id=None) -> bool:
        """Complete the order when every item is picked up or returned."""
        if is_order_terminal(order.status) or not all_items_terminal(order.items):
            return False
        history = transition_order(order, OrderStatus.COMPLETED.value, user_id, "All items collected or returned")
        self.db.add(history)
        logger.info(f"Order {order.order_number} completed")
        return True

    # ==================== Staff Views ====================

    async def _profile_labels(self, user_ids: List[uuid.UUID]) -> Dict[uuid.UUID, Profile]:
        """Best-effort profile lookup; an empty mapping when it fails."""
        if not user_ids:
            return {}
        try:
            result = await self.db.execute(select(Profile).where(Profile.user_id.in_(user_ids)))
            return {p.user_id: p for p in result.scalars().all()}
        except SQLAlchemyError as e:
            logger.warning(f"Profile lookup failed, using placeholder labels: {e}")
            await self.db.rollback()
            return {}

    async def get_order_detail(self, order_id: uuid.UUID) -> Optional[dict]:
        """Order with items enriched by customer profile data."""
        order = await self.get_order(order_id)
        if not order:
            return None

        profiles = await self._profile_labels(list({item.user_id for item in order.items}))
        items = []
        for item in sorted(order.items, key=lambda i: (i.created_at, str(i.id))):
            profile = profiles.get(item.user_id)
            items.append({
                **{c.name: getattr(item, c.name) for c in OrderItem.__table__.columns},
                "customer_name": (profile.full_name if profile and profile.full_name else settings.UNKNOWN_CUSTOMER_LABEL),
                "customer_email": profile.email if profile else None,
                "customer_phone": profile.phone if profile else None,
            })

        detail = {c.name: getattr(order, c.name) for c in Order.__table__.columns}
        detail["items"] = items
        return detail

