"""
Booking Coordinator.

claim -> capture | release, with the payment protocol authorize -> capture
or authorize -> release.

Flow:
1. claim() - consumer books one unit in an ACTIVE drop. Stock is taken with
   a single conditional UPDATE (stock > 0), the payment is authorized at the
   current discounted price, the drop's committed value is incremented and
   the discount re-evaluated, all in one transaction.
2. capture() - after the drop COMPLETED, charge the final price.
3. release() - on expiry/cancellation or a failed capture; restores the
   stock unit. Releasing twice is a no-op.

Expected failures come back as OperationResult; nothing here raises for
out-of-stock, incomplete selections or a drop that changed state.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dropmarket.config import settings
from dropmarket.core.events import RowChange, get_change_feed
from dropmarket.core.results import ErrorCode, OperationResult
from dropmarket.core.retry import RetryExhaustedError, RetryPolicy
from dropmarket.db_types import utc_now
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.catalog import Product, ProductVariant, SupplierList, VariantStatus
from dropmarket.models.drop import Drop, DropStatus
from dropmarket.services.catalog_service import CatalogService
from dropmarket.services.discount_engine import (
    calculate_final_price,
    discount_for_list,
    discounted_price,
)
from dropmarket.services.payment_service import PaymentGateway, get_payment_gateway
from dropmarket.services.variant_resolver import ResolutionStatus, resolve_selection

logger = logging.getLogger(__name__)


RESOLUTION_ERRORS = {
    ResolutionStatus.SELECTION_INCOMPLETE: (ErrorCode.SELECTION_INCOMPLETE, "Please select {missing}"),
    ResolutionStatus.SELECTION_UNAVAILABLE: (ErrorCode.SELECTION_UNAVAILABLE, "This option is not available"),
    ResolutionStatus.OUT_OF_STOCK: (ErrorCode.OUT_OF_STOCK, "This item is out of stock"),
}


@dataclass
class BatchResult:
    """Outcome of capturing or releasing every booking of a drop."""
    succeeded: List[Booking] = field(default_factory=list)
    failed: List[Booking] = field(default_factory=list)


class BookingService:
    """
    Books units against drops.

    Uses a RetryPolicy for transient write conflicts and a payment gateway
    for the authorize/capture/release protocol.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
        retry_policy: Optional[RetryPolicy] = None,
        claim_timeout: Optional[float] = None,
    ):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.BOOKING_MAX_RETRIES,
            backoff_seconds=settings.BOOKING_RETRY_BACKOFF_SECONDS,
        )
        self.claim_timeout = claim_timeout if claim_timeout is not None else settings.CLAIM_TIMEOUT_SECONDS
        self._inflight_token: Optional[str] = None
        self._pending_authorization: Optional[asyncio.Future] = None

    # ==================== Lookups ====================

    async def get_booking(self, booking_id: uuid.UUID) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_by_idempotency_key(self, key: str) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.idempotency_key == key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_drop(self, drop_id: uuid.UUID) -> Optional[Drop]:
        result = await self.db.execute(
            select(Drop)
            .where(Drop.id == drop_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_bookings(
        self,
        user_id: Optional[uuid.UUID] = None,
        drop_id: Optional[uuid.UUID] = None,
        payment_status: Optional[str] = None,
    ) -> List[Booking]:
        query = select(Booking).execution_options(populate_existing=True)
        if user_id:
            query = query.where(Booking.user_id == user_id)
        if drop_id:
            query = query.where(Booking.drop_id == drop_id)
        if payment_status:
            query = query.where(Booking.payment_status == payment_status)
        result = await self.db.execute(query.order_by(Booking.created_at, Booking.id))
        return list(result.scalars().all())

    # ==================== Claim ====================

    async def claim(
        self,
        user_id: uuid.UUID,
        drop_id: uuid.UUID,
        unit_key: str,
        size: Optional[str] = None,
        color: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> OperationResult:
        """Book one unit. Replaying an idempotency key returns the original booking."""
        if idempotency_key:
            existing = await self._find_by_idempotency_key(idempotency_key)
            if existing:
                return self._replay(existing, user_id)

        async def attempt():
            return await self._claim_once(user_id, drop_id, unit_key, size, color, idempotency_key)

        try:
            return await asyncio.wait_for(
                self.retry_policy.run(attempt, on_retry=self._on_retry),
                timeout=self.claim_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Claim timed out after {self.claim_timeout}s for drop {drop_id}")
            await self._abort_claim()
            return OperationResult.fail(ErrorCode.TIMEOUT, "Booking took too long, please try again", e)
        except RetryExhaustedError as e:
            await self._abort_claim()
            return OperationResult.fail(
                ErrorCode.INFRASTRUCTURE_ERROR, "Booking could not be saved, please try again", e
            )
        except SQLAlchemyError as e:
            logger.error(f"Claim failed for drop {drop_id}: {e}")
            await self._abort_claim()
            return OperationResult.fail(
                ErrorCode.INFRASTRUCTURE_ERROR, "Booking could not be saved, please try again", e
            )

    def _replay(self, booking: Booking, user_id: uuid.UUID) -> OperationResult:
        if booking.user_id != user_id:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Idempotency key already used")
        logger.info(f"Replayed booking {booking.id} for idempotency key {booking.idempotency_key}")
        return OperationResult.ok(booking, "replayed")

    async def _on_retry(self, error: BaseException) -> None:
        await self.db.rollback()

    async def _abort_claim(self) -> None:
        await self.db.rollback()
        pending, self._pending_authorization = self._pending_authorization, None
        if pending is not None:
            try:
                self._inflight_token = await pending
            except Exception as e:
                logger.warning(f"Authorization for an aborted claim failed: {e}")
        token, self._inflight_token = self._inflight_token, None
        if token:
            await self._release_token(token)

    async def _release_token(self, token: str) -> None:
        try:
            await self.gateway.release(token)
        except Exception as e:
            logger.error(f"Failed to release payment authorization {token}: {e}")

    async def _fail_claim(self, code: ErrorCode, message: str) -> OperationResult:
        await self.db.rollback()
        token, self._inflight_token = self._inflight_token, None
        if token:
            await self._release_token(token)
        return OperationResult.fail(code, message)

    async def _claim_once(
        self,
        user_id: uuid.UUID,
        drop_id: uuid.UUID,
        unit_key: str,
        size: Optional[str],
        color: Optional[str],
        idempotency_key: Optional[str],
    ) -> OperationResult:
        drop = await self._get_drop(drop_id)
        if not drop:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Drop not found")
        if drop.status != DropStatus.ACTIVE.value:
            return OperationResult.fail(ErrorCode.DROP_NOT_ACTIVE, "This drop is no longer accepting bookings")

        supplier_list = await self.db.get(SupplierList, drop.supplier_list_id)
        unit = await CatalogService(self.db).load_unit(drop.supplier_list_id, unit_key)
        if unit is None:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Product not found in this drop")

        resolution = resolve_selection(unit, size, color)
        if not resolution.resolved:
            code, message = RESOLUTION_ERRORS[resolution.status]
            return OperationResult.fail(code, message.format(missing=" and ".join(resolution.missing or [])))

        product_id = uuid.UUID(resolution.product_id)
        variant_id = uuid.UUID(resolution.variant_id) if resolution.variant_id else None

        try:
            # Single conditional decrement: of two claims on the last unit one gets rowcount 0.
            if variant_id:
                stmt = (
                    update(ProductVariant)
                    .where(
                        ProductVariant.id == variant_id,
                        ProductVariant.stock > 0,
                        ProductVariant.status == VariantStatus.ACTIVE.value,
                    )
                    .values(stock=ProductVariant.stock - 1)
                )
            else:
                stmt = (
                    update(Product)
                    .where(Product.id == product_id, Product.stock > 0)
                    .values(stock=Product.stock - 1)
                )
            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            if result.rowcount == 0:
                return await self._fail_claim(ErrorCode.OUT_OF_STOCK, "This item just sold out")

            price = (await self.db.execute(
                select(Product.price).where(Product.id == product_id)
            )).scalar_one()
            price = Decimal(str(price))
            claim_discount = Decimal(str(drop.current_discount or 0))
            amount = discounted_price(price, claim_discount)

            booking_id = uuid.uuid4()
            try:
                # Shielded: on a claim timeout _abort_claim awaits it and releases the hold.
                self._pending_authorization = asyncio.ensure_future(
                    self.gateway.authorize(amount, f"booking:{booking_id}")
                )
                self._inflight_token = await asyncio.shield(self._pending_authorization)
                self._pending_authorization = None
            except Exception as e:
                self._pending_authorization = None
                logger.error(f"Payment authorization failed for drop {drop_id}: {e}")
                await self.db.rollback()
                return OperationResult.fail(
                    ErrorCode.PAYMENT_FAILED, "Payment could not be authorized, please try again", e
                )

            booking = Booking(
                id=booking_id,
                user_id=user_id,
                drop_id=drop_id,
                product_id=product_id,
                variant_id=variant_id,
                selected_size=resolution.size,
                selected_color=resolution.color,
                original_price=price,
                discount_percentage=claim_discount,
                authorized_amount=amount,
                payment_status=PaymentStatus.AUTHORIZED.value,
                payment_token=self._inflight_token,
                idempotency_key=idempotency_key,
            )
            self.db.add(booking)

            value_update = await self.db.execute(
                update(Drop)
                .where(Drop.id == drop_id, Drop.status == DropStatus.ACTIVE.value)
                .values(current_value=Drop.current_value + price, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if value_update.rowcount == 0:
                return await self._fail_claim(
                    ErrorCode.DROP_NOT_ACTIVE, "This drop is no longer accepting bookings"
                )

            new_value = (await self.db.execute(
                select(Drop.current_value).where(Drop.id == drop_id)
            )).scalar_one()
            new_discount = discount_for_list(new_value, supplier_list)
            await self.db.execute(
                update(Drop)
                .where(Drop.id == drop_id, Drop.status == DropStatus.ACTIVE.value)
                .values(current_discount=new_discount)
                .execution_options(synchronize_session=False)
            )

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            token, self._inflight_token = self._inflight_token, None
            if token:
                await self._release_token(token)
            if idempotency_key:
                existing = await self._find_by_idempotency_key(idempotency_key)
                if existing:
                    return self._replay(existing, user_id)
            raise e
        except Exception:
            await self.db.rollback()
            token, self._inflight_token = self._inflight_token, None
            if token:
                await self._release_token(token)
            raise

        self._inflight_token = None
        logger.info(
            f"Booking {booking.id} claimed on drop {drop_id}: value {new_value}, discount {new_discount}%"
        )

        stock_table = "product_variants" if variant_id else "products"
        await get_change_feed().publish_many([
            RowChange(stock_table, variant_id or product_id, "UPDATE",
                      {"supplier_list_id": str(drop.supplier_list_id)}),
            RowChange("drops", drop_id, "UPDATE",
                      {"current_value": str(new_value), "current_discount": str(new_discount)}),
        ])
        return OperationResult.ok(booking)

    # ==================== Capture ====================

    async def capture(self, booking_id: uuid.UUID) -> OperationResult:
        """
        Charge a booking once its drop has COMPLETED.

        Final price uses the completion-time discount, capped at the
        authorized amount. Capturing twice returns the captured booking.
        A failed charge releases the booking.
        """
        booking = await self.get_booking(booking_id)
        if not booking:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Booking not found")
        if booking.payment_status == PaymentStatus.CAPTURED.value:
            return OperationResult.ok(booking, "already captured")
        if booking.payment_status != PaymentStatus.AUTHORIZED.value:
            return OperationResult.fail(
                ErrorCode.INVALID_TRANSITION, f"Booking is {booking.payment_status.lower()}"
            )

        drop = await self._get_drop(booking.drop_id)
        if drop is None or drop.status != DropStatus.COMPLETED.value:
            return OperationResult.fail(ErrorCode.DROP_NOT_COMPLETED, "Drop has not completed")

        final_discount = Decimal(str(drop.current_discount or 0))
        final_price = calculate_final_price(booking.original_price, final_discount, booking.authorized_amount)

        try:
            receipt = await self.gateway.capture(booking.payment_token, final_price)
        except Exception as e:
            logger.error(f"Capture failed for booking {booking.id}: {e}")
            await self.release(booking.id, reason="payment capture failed")
            return OperationResult.fail(ErrorCode.PAYMENT_FAILED, "Payment could not be captured", e)

        try:
            result = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.payment_status == PaymentStatus.AUTHORIZED.value)
                .values(
                    payment_status=PaymentStatus.CAPTURED.value,
                    final_price=final_price,
                    final_discount_percentage=final_discount,
                    payment_receipt=receipt,
                    captured_at=utc_now(),
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record capture for booking {booking.id}: {e}")
            return OperationResult.fail(ErrorCode.INFRASTRUCTURE_ERROR, "Capture could not be recorded", e)

        booking = await self.get_booking(booking.id)
        if result.rowcount == 0 and booking.payment_status != PaymentStatus.CAPTURED.value:
            return OperationResult.fail(
                ErrorCode.INVALID_TRANSITION, f"Booking is {booking.payment_status.lower()}"
            )

        logger.info(f"Booking {booking.id} captured at {booking.final_price}")
        return OperationResult.ok(booking)

    # ==================== Release ====================

    async def release(self, booking_id: uuid.UUID, reason: Optional[str] = None) -> OperationResult:
        """
        Void or refund a booking and put its unit back in stock.

        Captured bookings end REFUNDED, authorized ones CANCELLED. The drop's
        committed value is not touched.
        """
        booking = await self.get_booking(booking_id)
        if not booking:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Booking not found")
        if booking.payment_status in (PaymentStatus.REFUNDED.value, PaymentStatus.CANCELLED.value):
            return OperationResult.ok(booking, "already released")

        current_status = booking.payment_status
        new_status = (
            PaymentStatus.REFUNDED.value
            if current_status == PaymentStatus.CAPTURED.value
            else PaymentStatus.CANCELLED.value
        )

        if booking.payment_token:
            try:
                await self.gateway.release(booking.payment_token)
            except Exception as e:
                logger.error(f"Payment release failed for booking {booking.id}: {e}")
                return OperationResult.fail(ErrorCode.PAYMENT_FAILED, "Payment could not be released", e)

        try:
            result = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.payment_status == current_status)
                .values(
                    payment_status=new_status,
                    released_at=utc_now(),
                    release_reason=reason,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                return OperationResult.ok(await self.get_booking(booking.id), "already released")

            if booking.variant_id:
                await self.db.execute(
                    update(ProductVariant)
                    .where(ProductVariant.id == booking.variant_id)
                    .values(stock=ProductVariant.stock + 1)
                    .execution_options(synchronize_session=False)
                )
            else:
                await self.db.execute(
                    update(Product)
                    .where(Product.id == booking.product_id)
                    .values(stock=Product.stock + 1)
                    .execution_options(synchronize_session=False)
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record release for booking {booking.id}: {e}")
            return OperationResult.fail(ErrorCode.INFRASTRUCTURE_ERROR, "Release could not be recorded", e)

        logger.info(f"Booking {booking.id} released ({new_status}): {reason or 'no reason'}")

        supplier_list_id = (await self.db.execute(
            select(Product.supplier_list_id).where(Product.id == booking.product_id)
        )).scalar_one_or_none()
        await get_change_feed().publish(RowChange(
            "product_variants" if booking.variant_id else "products",
            booking.variant_id or booking.product_id,
            "UPDATE",
            {"supplier_list_id": str(supplier_list_id) if supplier_list_id else None},
        ))
        return OperationResult.ok(await self.get_booking(booking.id))

    # ==================== Batch ====================

    async def capture_drop_bookings(self, drop_id: uuid.UUID) -> BatchResult:
        """Capture every authorized booking of a completed drop."""
        batch = BatchResult()
        for booking in await self.list_bookings(drop_id=drop_id, payment_status=PaymentStatus.AUTHORIZED.value):
            result = await self.capture(booking.id)
            if result.success:
                batch.succeeded.append(result.value)
            else:
                batch.failed.append(booking)
        logger.info(f"Drop {drop_id}: captured {len(batch.succeeded)}, failed {len(batch.failed)}")
        return batch

    async def release_drop_bookings(self, drop_id: uuid.UUID, reason: str) -> BatchResult:
        """Release every open booking of a drop that did not complete."""
        batch = BatchResult()
        open_bookings = [
            b for b in await self.list_bookings(drop_id=drop_id)
            if b.payment_status in (PaymentStatus.AUTHORIZED.value, PaymentStatus.CAPTURED.value)
        ]
        for booking in open_bookings:
            result = await self.release(booking.id, reason=reason)
            if result.success:
                batch.succeeded.append(result.value)
            else:
                batch.failed.append(booking)
        logger.info(f"Drop {drop_id}: released {len(batch.succeeded)}, failed {len(batch.failed)}")
        return batch
