"""
Drop Service.

Interest registration, drop creation and every drop lifecycle operation:
approve / reject / withdraw / pause / resume, activation of due drops,
closing of ended drops and value recalculation.

Closing a drop:
- COMPLETED: capture every authorized booking, create the order and send
  each consumer one summary notification.
- EXPIRED / UNDERFUNDED / CANCELLED: release every booking and notify each
  consumer once.
"""
import logging
import math
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, or_, select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dropmarket.config import settings
from dropmarket.core.enum_utils import get_enum_value
from dropmarket.core.events import RowChange, get_change_feed
from dropmarket.core.results import ErrorCode, InvalidTransitionError, OperationResult
from dropmarket.db_types import utc_now
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.catalog import Product, SupplierList, SupplierListStatus
from dropmarket.models.drop import Drop, DropStatus, DropStatusHistory, OPEN_DROP_STATUSES
from dropmarket.models.interest import UserInterest
from dropmarket.models.notifications import Notification, NotificationType
from dropmarket.models.order import Order
from dropmarket.models.pickup_point import PickupPoint
from dropmarket.services.booking_service import BookingService
from dropmarket.services.discount_engine import discount_for_list
from dropmarket.services.drop_state_machine import (
    evaluate_drop_close,
    is_due_for_activation,
    transition_drop,
)
from dropmarket.services.fulfillment_service import FulfillmentService
from dropmarket.services.notification_service import NotificationMessage, NotificationService
from dropmarket.services.payment_service import PaymentGateway

logger = logging.getLogger(__name__)


FAILED_CLOSE_MESSAGES = {
    DropStatus.EXPIRED.value: (
        NotificationType.DROP_EXPIRED,
        "Drop ended",
        "{name} did not reach its minimum. Your {count} booking(s) were cancelled and nothing was charged.",
    ),
    DropStatus.UNDERFUNDED.value: (
        NotificationType.DROP_UNDERFUNDED,
        "Drop closed",
        "{name} closed without enough reservations. Your {count} booking(s) were cancelled and nothing was charged.",
    ),
    DropStatus.CANCELLED.value: (
        NotificationType.DROP_CANCELLED,
        "Drop cancelled",
        "{name} was cancelled. Your {count} booking(s) were released.",
    ),
}


@dataclass
class DropCloseSummary:
    drop_id: uuid.UUID
    status: str
    captured: int = 0
    released: int = 0
    failed: int = 0
    order_id: Optional[uuid.UUID] = None
    notified_users: int = 0


@dataclass
class InterestRegistration:
    interest: UserInterest
    interest_value: Decimal
    drop: Optional[Drop] = None
    drop_created: bool = False


@dataclass
class LifecycleRun:
    activated: int = 0
    closed: List[DropCloseSummary] = field(default_factory=list)
    settled: List[DropCloseSummary] = field(default_factory=list)


class DropService:
    """Drop lifecycle and interest tracking."""

    def __init__(self, db: AsyncSession, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.notifications = NotificationService(db)

    def _bookings(self) -> BookingService:
        return BookingService(self.db, gateway=self.gateway)

    # ==================== Lookups ====================

    async def get_drop(self, drop_id: uuid.UUID, for_update: bool = False) -> Optional[Drop]:
        query = select(Drop).where(Drop.id == drop_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_drop_detail(self, drop_id: uuid.UUID) -> Optional[Drop]:
        result = await self.db.execute(
            select(Drop)
            .where(Drop.id == drop_id)
            .options(selectinload(Drop.status_history))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_open_drop(self, supplier_list_id: uuid.UUID, pickup_point_id: uuid.UUID) -> Optional[Drop]:
        result = await self.db.execute(
            select(Drop)
            .where(
                Drop.supplier_list_id == supplier_list_id,
                Drop.pickup_point_id == pickup_point_id,
                Drop.status.in_(OPEN_DROP_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_drops(
        self,
        status: Optional[str] = None,
        pickup_point_id: Optional[uuid.UUID] = None,
        supplier_list_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Drop], int]:
        query = select(Drop)
        count_query = select(func.count(Drop.id))

        filters = []
        if status:
            filters.append(Drop.status == status)
        if pickup_point_id:
            filters.append(Drop.pickup_point_id == pickup_point_id)
        if supplier_list_id:
            filters.append(Drop.supplier_list_id == supplier_list_id)
        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = (
            query.order_by(Drop.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
            .execution_options(populate_existing=True)
        )
        drops = (await self.db.execute(query)).scalars().all()
        return list(drops), total

    @staticmethod
    def pages(total: int, size: int) -> int:
        return math.ceil(total / size) if total > 0 else 1

    # ==================== Interest ====================

    async def get_interest_value(self, supplier_list_id: uuid.UUID, pickup_point_id: uuid.UUID) -> Decimal:
        """Summed original price of every interested product for the pair."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Product.price), 0))
            .select_from(UserInterest)
            .join(Product, Product.id == UserInterest.product_id)
            .where(
                UserInterest.supplier_list_id == supplier_list_id,
                UserInterest.pickup_point_id == pickup_point_id,
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def register_interest(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        pickup_point_id: uuid.UUID,
    ) -> OperationResult:
        """Record interest (idempotent per user/product/pickup) and evaluate drop creation."""
        product = await self.db.get(Product, product_id)
        if not product:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Product not found")
        pickup_point = await self.db.get(PickupPoint, pickup_point_id)
        if not pickup_point:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Pickup point not found")
        supplier_list_id = product.supplier_list_id
        supplier_list = await self.db.get(SupplierList, supplier_list_id)
        if supplier_list.status != SupplierListStatus.ACTIVE.value:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "This list is not open for interest")

        interest = await self._find_interest(user_id, product_id, pickup_point_id)
        if interest is None:
            interest = UserInterest(
                user_id=user_id,
                product_id=product_id,
                supplier_list_id=supplier_list_id,
                pickup_point_id=pickup_point_id,
            )
            self.db.add(interest)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                interest = await self._find_interest(user_id, product_id, pickup_point_id)

        creation = await self.evaluate_drop_creation(supplier_list_id, pickup_point_id)
        if not creation.success:
            return creation
        drop, created = creation.value

        return OperationResult.ok(InterestRegistration(
            interest=interest,
            interest_value=await self.get_interest_value(supplier_list_id, pickup_point_id),
            drop=drop,
            drop_created=created,
        ))

    async def _find_interest(self, user_id, product_id, pickup_point_id) -> Optional[UserInterest]:
        result = await self.db.execute(
            select(UserInterest).where(
                UserInterest.user_id == user_id,
                UserInterest.product_id == product_id,
                UserInterest.pickup_point_id == pickup_point_id,
            )
        )
        return result.scalar_one_or_none()

    async def remove_interest(self, user_id: uuid.UUID, interest_id: uuid.UUID) -> OperationResult:
        interest = await self.db.get(UserInterest, interest_id)
        if not interest or interest.user_id != user_id:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Interest not found")
        await self.db.delete(interest)
        await self.db.commit()
        return OperationResult.ok(None)

    async def list_interests(self, user_id: uuid.UUID) -> List[UserInterest]:
        result = await self.db.execute(
            select(UserInterest).where(UserInterest.user_id == user_id).order_by(UserInterest.created_at.desc())
        )
        return list(result.scalars().all())

    # ==================== Drop Creation ====================

    async def evaluate_drop_creation(
        self,
        supplier_list_id: uuid.UUID,
        pickup_point_id: uuid.UUID,
    ) -> OperationResult:
        """
        Create a PENDING_APPROVAL drop the first time interest reaches the
        list's minimum value. Value is (drop, created).

        A no-op while a non-terminal drop exists for the pair.
        """
        existing = await self.get_open_drop(supplier_list_id, pickup_point_id)
        if existing:
            return OperationResult.ok((existing, False))

        supplier_list = await self.db.get(SupplierList, supplier_list_id)
        pickup_point = await self.db.get(PickupPoint, pickup_point_id)
        if not supplier_list or not pickup_point:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list or pickup point not found")

        interest_value = await self.get_interest_value(supplier_list_id, pickup_point_id)
        if interest_value < Decimal(str(supplier_list.min_reservation_value)):
            return OperationResult.ok((None, False))

        result = await self._insert_drop(supplier_list, pickup_point, DropStatus.PENDING_APPROVAL.value)
        if result.success and result.value[1]:
            logger.info(
                f"Interest {interest_value} reached {supplier_list.min_reservation_value} for "
                f"list {supplier_list_id} at {pickup_point_id}; drop {result.value[0].id} proposed"
            )
        return result

    async def create_drop(
        self,
        supplier_list_id: uuid.UUID,
        pickup_point_id: uuid.UUID,
        admin_id: Optional[uuid.UUID] = None,
        start_time: Optional[datetime] = None,
        name: Optional[str] = None,
    ) -> OperationResult:
        """Admin creation of a drop directly in APPROVED."""
        supplier_list = await self.db.get(SupplierList, supplier_list_id)
        pickup_point = await self.db.get(PickupPoint, pickup_point_id)
        if not supplier_list or not pickup_point:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list or pickup point not found")
        if supplier_list.status != SupplierListStatus.ACTIVE.value:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Supplier list is not active")
        if await self.get_open_drop(supplier_list_id, pickup_point_id):
            return OperationResult.fail(
                ErrorCode.INVALID_TRANSITION, "A drop is already open for this list and pickup point"
            )

        result = await self._insert_drop(
            supplier_list, pickup_point, DropStatus.APPROVED.value,
            admin_id=admin_id, start_time=start_time or utc_now(), name=name,
        )
        if result.success and not result.value[1]:
            return OperationResult.fail(
                ErrorCode.INVALID_TRANSITION, "A drop is already open for this list and pickup point"
            )
        return OperationResult.ok(result.value[0]) if result.success else result

    async def _insert_drop(
        self,
        supplier_list: SupplierList,
        pickup_point: PickupPoint,
        status: str,
        admin_id: Optional[uuid.UUID] = None,
        start_time: Optional[datetime] = None,
        name: Optional[str] = None,
    ) -> OperationResult:
        supplier_list_id, pickup_point_id = supplier_list.id, pickup_point.id
        drop = Drop(
            id=uuid.uuid4(),
            name=name or f"{pickup_point.city or pickup_point.name} - {supplier_list.name}",
            supplier_list_id=supplier_list_id,
            pickup_point_id=pickup_point_id,
            status=status,
            current_value=Decimal("0"),
            current_discount=supplier_list.min_discount,
            target_value=supplier_list.max_reservation_value,
        )
        if status == DropStatus.APPROVED.value:
            self._schedule(drop, start_time)
            drop.approved_at = utc_now()
            drop.approved_by = admin_id

        self.db.add(drop)
        try:
            await self.db.flush()
            self.db.add(DropStatusHistory(
                drop_id=drop.id,
                from_status=None,
                to_status=status,
                changed_by=admin_id,
                notes="Created by admin" if admin_id else "Interest threshold reached",
            ))
            await self.db.commit()
        except IntegrityError:
            # Another request opened a drop for the pair first.
            await self.db.rollback()
            existing = await self.get_open_drop(supplier_list_id, pickup_point_id)
            if existing:
                return OperationResult.ok((existing, False))
            raise

        await get_change_feed().publish(RowChange("drops", drop.id, "INSERT", {"status": status}))
        return OperationResult.ok((drop, True))

    @staticmethod
    def _schedule(drop: Drop, start_time: Optional[datetime]) -> None:
        drop.start_time = start_time or utc_now()
        drop.end_time = drop.start_time + timedelta(days=settings.DROP_DURATION_DAYS)

    # ==================== Admin Transitions ====================

    async def _apply(
        self,
        drop_id: uuid.UUID,
        new_status: str,
        user_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        before_commit=None,
    ) -> OperationResult:
        drop = await self.get_drop(drop_id, for_update=True)
        if not drop:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Drop not found")
        try:
            history = transition_drop(drop, new_status, user_id, notes)
        except InvalidTransitionError as e:
            await self.db.rollback()
            return OperationResult.fail(ErrorCode.INVALID_TRANSITION, str(e), e)

        if before_commit:
            before_commit(drop)
        self.db.add(history)
        await self.db.commit()

        logger.info(f"Drop {drop.id}: {history.from_status} -> {new_status}")
        await get_change_feed().publish(RowChange("drops", drop.id, "UPDATE", {"status": new_status}))
        return OperationResult.ok(drop)

    async def approve_drop(
        self,
        drop_id: uuid.UUID,
        admin_id: Optional[uuid.UUID] = None,
        start_time: Optional[datetime] = None,
    ) -> OperationResult:
        """PENDING_APPROVAL -> APPROVED; schedules start and end time."""
        return await self._apply(
            drop_id, DropStatus.APPROVED.value, admin_id,
            before_commit=lambda drop: self._schedule(drop, start_time),
        )

    async def reject_drop(self, drop_id: uuid.UUID, admin_id=None, notes: Optional[str] = None) -> OperationResult:
        return await self.close_drop(drop_id, DropStatus.CANCELLED.value, admin_id, notes or "Rejected")

    async def withdraw_drop(self, drop_id: uuid.UUID, admin_id=None, notes: Optional[str] = None) -> OperationResult:
        return await self.close_drop(drop_id, DropStatus.CANCELLED.value, admin_id, notes or "Withdrawn")

    async def pause_drop(self, drop_id: uuid.UUID, admin_id=None, notes: Optional[str] = None) -> OperationResult:
        return await self._apply(drop_id, DropStatus.INACTIVE.value, admin_id, notes)

    async def resume_drop(self, drop_id: uuid.UUID, admin_id=None, notes: Optional[str] = None) -> OperationResult:
        return await self._apply(drop_id, DropStatus.ACTIVE.value, admin_id, notes)

    # ==================== Lifecycle ====================

    async def activate_due_drops(self, now: Optional[datetime] = None) -> int:
        """APPROVED drops whose start_time has passed become ACTIVE."""
        now = now or utc_now()
        result = await self.db.execute(
            select(Drop.id).where(Drop.status == DropStatus.APPROVED.value, Drop.start_time <= now)
        )
        activated = 0
        for drop_id in result.scalars().all():
            drop = await self.get_drop(drop_id, for_update=True)
            if drop is None or not is_due_for_activation(drop, now):
                continue
            supplier_list = await self.db.get(SupplierList, drop.supplier_list_id)
            history = transition_drop(drop, DropStatus.ACTIVE.value, notes="Start time reached")
            drop.current_discount = discount_for_list(drop.current_value or 0, supplier_list)
            self.db.add(history)
            await self.db.commit()
            activated += 1
            logger.info(f"Drop {drop.id} activated")
            await self._notify_interested(drop)
        return activated

    async def _notify_interested(self, drop: Drop) -> None:
        result = await self.db.execute(
            select(UserInterest.user_id)
            .where(
                UserInterest.supplier_list_id == drop.supplier_list_id,
                UserInterest.pickup_point_id == drop.pickup_point_id,
            )
            .distinct()
        )
        await self.notifications.notify_many([
            NotificationMessage(
                user_id=user_id,
                title="A drop you follow is live",
                message=f"{drop.name} is open for bookings until {drop.end_time:%d/%m %H:%M}.",
                notification_type=NotificationType.DROP_ACTIVATED,
                related_id=drop.id,
                related_type="drop",
            )
            for user_id in result.scalars().all()
        ])

    async def _notified_users(self, drop_id: uuid.UUID, notification_type: NotificationType) -> set:
        result = await self.db.execute(
            select(Notification.user_id).where(
                Notification.related_id == drop_id,
                Notification.notification_type == notification_type.value,
            )
        )
        return set(result.scalars().all())

    async def close_ended_drops(self, now: Optional[datetime] = None) -> List[DropCloseSummary]:
        """Close ACTIVE/INACTIVE drops past end_time. Idempotent."""
        now = now or utc_now()
        result = await self.db.execute(
            select(Drop.id).where(
                Drop.status.in_([DropStatus.ACTIVE.value, DropStatus.INACTIVE.value]),
                Drop.end_time <= now,
            )
        )
        summaries = []
        for drop_id in result.scalars().all():
            drop = await self.get_drop(drop_id)
            supplier_list = await self.db.get(SupplierList, drop.supplier_list_id)
            target = evaluate_drop_close(drop, supplier_list.min_reservation_value, now)
            if target is None:
                continue
            closed = await self.close_drop(drop_id, target, notes="End time reached")
            if closed.success:
                summaries.append(closed.value)
        return summaries

    async def run_lifecycle(self, now: Optional[datetime] = None) -> LifecycleRun:
        now = now or utc_now()
        activated = await self.activate_due_drops(now)
        closed = await self.close_ended_drops(now)
        settled = await self.settle_completed_drops()
        return LifecycleRun(activated=activated, closed=closed, settled=settled)

    async def settle_completed_drops(self) -> List[DropCloseSummary]:
        """
        Finish settling COMPLETED drops that an earlier close left half done.

        A drop is picked up while it still holds AUTHORIZED bookings, or has
        CAPTURED bookings but no order. Capture and order creation are both
        idempotent, so revisiting a drop is safe.
        """
        pending_capture = select(Booking.id).where(
            Booking.drop_id == Drop.id,
            Booking.payment_status == PaymentStatus.AUTHORIZED.value,
        ).exists()
        captured = select(Booking.id).where(
            Booking.drop_id == Drop.id,
            Booking.payment_status == PaymentStatus.CAPTURED.value,
        ).exists()
        has_order = select(Order.id).where(Order.drop_id == Drop.id).exists()

        result = await self.db.execute(
            select(Drop.id).where(
                Drop.status == DropStatus.COMPLETED.value,
                or_(pending_capture, and_(captured, ~has_order)),
            )
        )
        summaries = []
        for drop_id in result.scalars().all():
            drop = await self.get_drop(drop_id)
            logger.warning(f"Drop {drop_id} completed but is not fully settled; resuming settlement")
            summaries.append(await self._settle_completed(drop))
        return summaries

    async def close_drop(
        self,
        drop_id: uuid.UUID,
        target_status: str,
        user_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> OperationResult:
        """Move a drop to a terminal status and settle its bookings."""
        target_status = get_enum_value(target_status)
        transition = await self._apply(drop_id, target_status, user_id, notes)
        if not transition.success:
            return transition
        drop = transition.value

        if target_status == DropStatus.COMPLETED.value:
            summary = await self._settle_completed(drop)
        else:
            summary = await self._settle_failed(drop, target_status)
        return OperationResult.ok(summary)

    async def _settle_completed(self, drop: Drop) -> DropCloseSummary:
        batch = await self._bookings().capture_drop_bookings(drop.id)
        summary = DropCloseSummary(
            drop_id=drop.id,
            status=DropStatus.COMPLETED.value,
            captured=len(batch.succeeded),
            failed=len(batch.failed),
        )

        order_result = await FulfillmentService(self.db, gateway=self.gateway).create_order_for_drop(drop.id)
        if order_result.success and order_result.value is not None:
            summary.order_id = order_result.value.id
        elif not order_result.success:
            logger.error(f"Order creation failed for drop {drop.id}: {order_result.message}")

        captured: Dict[uuid.UUID, List[Booking]] = defaultdict(list)
        failed: Dict[uuid.UUID, List[Booking]] = defaultdict(list)
        for booking in batch.succeeded:
            captured[booking.user_id].append(booking)
        for booking in batch.failed:
            failed[booking.user_id].append(booking)

        already_notified = await self._notified_users(drop.id, NotificationType.DROP_COMPLETED)
        messages = []
        for user_id in list(dict.fromkeys([*captured.keys(), *failed.keys()])):
            if user_id in already_notified:
                continue
            ok_bookings, failed_bookings = captured.get(user_id, []), failed.get(user_id, [])
            parts = []
            if ok_bookings:
                total = sum((Decimal(str(b.final_price)) for b in ok_bookings), Decimal("0"))
                parts.append(
                    f"{len(ok_bookings)} item(s) confirmed at {drop.current_discount}% off, total {total}."
                )
            if failed_bookings:
                parts.append(f"{len(failed_bookings)} item(s) could not be charged and were released.")
            messages.append(NotificationMessage(
                user_id=user_id,
                title="Drop completed",
                message=f"{drop.name}: " + " ".join(parts),
                notification_type=NotificationType.DROP_COMPLETED,
                related_id=drop.id,
                related_type="drop",
            ))
        summary.notified_users = await self.notifications.notify_many(messages)

        logger.info(
            f"Drop {drop.id} completed: {summary.captured} captured, {summary.failed} failed, "
            f"order {summary.order_id}"
        )
        return summary

    async def _settle_failed(self, drop: Drop, status: str) -> DropCloseSummary:
        batch = await self._bookings().release_drop_bookings(drop.id, reason=f"drop {status.lower()}")
        summary = DropCloseSummary(
            drop_id=drop.id,
            status=status,
            released=len(batch.succeeded),
            failed=len(batch.failed),
        )

        per_user: Dict[uuid.UUID, int] = defaultdict(int)
        for booking in batch.succeeded:
            per_user[booking.user_id] += 1

        notification_type, title, template = FAILED_CLOSE_MESSAGES[status]
        summary.notified_users = await self.notifications.notify_many([
            NotificationMessage(
                user_id=user_id,
                title=title,
                message=template.format(name=drop.name, count=count),
                notification_type=notification_type,
                related_id=drop.id,
                related_type="drop",
            )
            for user_id, count in per_user.items()
        ])
        logger.info(f"Drop {drop.id} closed as {status}: {summary.released} released, {summary.failed} failed")
        return summary

    # ==================== Recalculation ====================

    async def recalculate_drop(self, drop_id: uuid.UUID) -> OperationResult:
        """
        Re-derive committed value and discount from live bookings.

        Repairs a stored value that fell behind the bookings. The value never
        goes down: a stored value above the recomputed one is kept, since
        released bookings do not reduce a drop's value. Only ACTIVE drops
        change; any other status is a no-op.
        """
        drop = await self.get_drop(drop_id, for_update=True)
        if not drop:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Drop not found")
        if drop.status != DropStatus.ACTIVE.value:
            return OperationResult.ok(drop, "drop not active, nothing recalculated")

        recomputed = (await self.db.execute(
            select(func.coalesce(func.sum(Booking.original_price), 0)).where(
                Booking.drop_id == drop_id,
                Booking.payment_status.in_([PaymentStatus.AUTHORIZED.value, PaymentStatus.CAPTURED.value]),
            )
        )).scalar()
        recomputed = Decimal(str(recomputed or 0))
        stored = Decimal(str(drop.current_value or 0))
        if recomputed < stored:
            logger.info(f"Drop {drop_id}: live bookings sum to {recomputed}, keeping stored value {stored}")
        value = max(recomputed, stored)
        supplier_list = await self.db.get(SupplierList, drop.supplier_list_id)
        discount = discount_for_list(value, supplier_list)

        result = await self.db.execute(
            update(Drop)
            .where(
                Drop.id == drop_id,
                Drop.status == DropStatus.ACTIVE.value,
                Drop.current_value <= value,
            )
            .values(current_value=value, current_discount=discount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        drop = await self.get_drop(drop_id)
        if result.rowcount:
            logger.info(f"Drop {drop_id} recalculated: value {value}, discount {discount}%")
        return OperationResult.ok(drop)
