"""
Booking claim, capture and release against a real (SQLite) store.

Stock conservation: for every stock-bearing row, live stock plus open
bookings (AUTHORIZED or CAPTURED) equals the stock it started with.
"""
import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from dropmarket.core.results import ErrorCode, ErrorKind, UserAction
from dropmarket.models.booking import Booking, PaymentStatus
from dropmarket.models.catalog import Product, ProductVariant
from dropmarket.models.drop import Drop, DropStatus
from dropmarket.services.booking_service import BookingService

from tests.factories import seed_drop, seed_pickup_point, seed_product, seed_supplier_list


async def variant_id_for(db, product, size):
    return (await db.execute(
        select(ProductVariant.id).where(ProductVariant.product_id == product.id, ProductVariant.size == size)
    )).scalar_one()


async def variant_stock(db, variant_id):
    return (await db.execute(select(ProductVariant.stock).where(ProductVariant.id == variant_id))).scalar_one()


async def product_stock(db, product_id):
    return (await db.execute(select(Product.stock).where(Product.id == product_id))).scalar_one()


async def open_bookings(db, product_id):
    return (await db.execute(
        select(func.count(Booking.id)).where(
            Booking.product_id == product_id,
            Booking.payment_status.in_([PaymentStatus.AUTHORIZED.value, PaymentStatus.CAPTURED.value]),
        )
    )).scalar()


async def set_drop(db, drop_id, **values):
    await db.execute(update(Drop).where(Drop.id == drop_id).values(**values))
    await db.commit()


async def fresh_drop(db, drop_id):
    return (await db.execute(
        select(Drop).where(Drop.id == drop_id).execution_options(populate_existing=True)
    )).scalar_one()


@pytest.fixture
async def market(db):
    supplier_list = await seed_supplier_list(db)
    pickup_point = await seed_pickup_point(db)
    drop = await seed_drop(db, supplier_list, pickup_point)
    return supplier_list, pickup_point, drop


@pytest.fixture
async def sized_tee(db, market):
    """Tee in S/M/L, one unit each, at 100."""
    supplier_list, _, _ = market
    return await seed_product(
        db, supplier_list, name="Tee", price="100", sku="TEE",
        variants=(("S", None, 1), ("M", None, 1), ("L", None, 1)),
    )


@pytest.fixture
def bookings(db, gateway, fast_retry):
    return BookingService(db, gateway=gateway, retry_policy=fast_retry)


class TestClaim:
    async def test_size_must_be_selected(self, db, market, sized_tee, bookings):
        _, _, drop = market

        result = await bookings.claim(uuid.uuid4(), drop.id, "TEE")

        assert not result.success
        assert result.error_code == ErrorCode.SELECTION_INCOMPLETE
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.action == UserAction.RESELECT
        assert await variant_stock(db, await variant_id_for(db, sized_tee, "M")) == 1

    async def test_claims_the_selected_size(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        user_id = uuid.uuid4()
        medium = await variant_id_for(db, sized_tee, "M")

        result = await bookings.claim(user_id, drop.id, "TEE", size="M")

        assert result.success
        booking = result.value
        assert booking.user_id == user_id
        assert booking.variant_id == medium
        assert booking.selected_size == "M"
        assert booking.payment_status == PaymentStatus.AUTHORIZED.value
        assert booking.discount_percentage == Decimal("30.00")
        assert booking.authorized_amount == Decimal("70.00")
        assert gateway.authorized[booking.payment_token] == Decimal("70.00")

        assert await variant_stock(db, medium) == 0
        assert await variant_stock(db, await variant_id_for(db, sized_tee, "S")) == 1

    async def test_sold_out_size(self, db, market, sized_tee, bookings):
        _, _, drop = market
        await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="L")

        result = await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="L")

        assert result.error_code == ErrorCode.OUT_OF_STOCK
        assert result.error.kind == ErrorKind.CONTENTION

    async def test_unknown_size(self, market, sized_tee, bookings):
        _, _, drop = market
        result = await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="XL")
        assert result.error_code == ErrorCode.SELECTION_UNAVAILABLE

    async def test_unknown_unit(self, market, bookings):
        _, _, drop = market
        result = await bookings.claim(uuid.uuid4(), drop.id, "NOPE")
        assert result.error_code == ErrorCode.NOT_FOUND

    async def test_drop_must_be_active(self, db, market, sized_tee, bookings):
        _, _, drop = market
        await set_drop(db, drop.id, status=DropStatus.INACTIVE.value)

        result = await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="S")

        assert result.error_code == ErrorCode.DROP_NOT_ACTIVE
        assert await variant_stock(db, await variant_id_for(db, sized_tee, "S")) == 1

    async def test_value_and_discount_follow_the_claim(self, db, market, bookings):
        supplier_list, _, drop = market
        await set_drop(db, drop.id, current_value=Decimal("5000"))
        coat = await seed_product(db, supplier_list, name="Coat", price="12500", stock=1)

        result = await bookings.claim(uuid.uuid4(), drop.id, str(coat.id))

        assert result.success
        # Priced at the discount in force when claimed
        assert result.value.authorized_amount == Decimal("8750.00")
        refreshed = await fresh_drop(db, drop.id)
        assert refreshed.current_value == Decimal("17500.00")
        assert refreshed.current_discount == Decimal("55.00")

    async def test_idempotency_key_replays_the_booking(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        user_id = uuid.uuid4()

        first = await bookings.claim(user_id, drop.id, "TEE", size="S", idempotency_key="req-1")
        again = await bookings.claim(user_id, drop.id, "TEE", size="S", idempotency_key="req-1")

        assert again.success
        assert again.message == "replayed"
        assert again.value.id == first.value.id
        assert len(gateway.authorized) == 1

        stolen = await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="M", idempotency_key="req-1")
        assert stolen.error_code == ErrorCode.INVALID_INPUT

    async def test_declined_payment_keeps_the_stock(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        drop_id = drop.id
        small = await variant_id_for(db, sized_tee, "S")
        gateway.fail_authorize = True

        result = await bookings.claim(uuid.uuid4(), drop_id, "TEE", size="S")

        assert result.error_code == ErrorCode.PAYMENT_FAILED
        assert result.error.action == UserAction.RETRY_LATER
        assert await variant_stock(db, small) == 1
        assert (await fresh_drop(db, drop_id)).current_value == Decimal("0")
        assert (await db.execute(select(func.count(Booking.id)))).scalar() == 0

    async def test_timed_out_claim_releases_a_late_authorization(self, db, market, sized_tee, gateway, fast_retry):
        _, _, drop = market
        drop_id = drop.id
        small = await variant_id_for(db, sized_tee, "S")
        gateway.authorize_delay = 0.3
        slow = BookingService(db, gateway=gateway, retry_policy=fast_retry, claim_timeout=0.1)

        result = await slow.claim(uuid.uuid4(), drop_id, "TEE", size="S")

        assert result.error_code == ErrorCode.TIMEOUT
        assert result.error.action == UserAction.RETRY_LATER
        # Granted after the claim gave up, then released
        assert list(gateway.authorized) == ["tok_1"]
        assert gateway.released == ["tok_1"]
        assert await variant_stock(db, small) == 1
        assert (await fresh_drop(db, drop_id)).current_value == Decimal("0")
        assert (await db.execute(select(func.count(Booking.id)))).scalar() == 0

    async def test_concurrent_claims_on_the_last_unit(self, db, session_factory, market, gateway, fast_retry):
        supplier_list, _, drop = market
        last_one = await seed_product(db, supplier_list, name="Last Bag", price="200", stock=1)

        async def claim_in_own_session():
            async with session_factory() as session:
                service = BookingService(session, gateway=gateway, retry_policy=fast_retry)
                return await service.claim(uuid.uuid4(), drop.id, str(last_one.id))

        results = await asyncio.gather(claim_in_own_session(), claim_in_own_session())

        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].error_code == ErrorCode.OUT_OF_STOCK

        assert await product_stock(db, last_one.id) == 0
        assert await open_bookings(db, last_one.id) == 1
        assert (await fresh_drop(db, drop.id)).current_value == Decimal("200.00")


class TestCaptureAndRelease:
    async def test_capture_waits_for_completion(self, db, market, sized_tee, bookings):
        _, _, drop = market
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="S")).value

        result = await bookings.capture(booking.id)

        assert result.error_code == ErrorCode.DROP_NOT_COMPLETED

    async def test_capture_uses_completion_discount(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="S")).value
        await set_drop(db, drop.id, status=DropStatus.COMPLETED.value, current_discount=Decimal("55"))

        result = await bookings.capture(booking.id)

        assert result.success
        captured = result.value
        assert captured.payment_status == PaymentStatus.CAPTURED.value
        assert captured.final_price == Decimal("45.00")
        assert captured.final_discount_percentage == Decimal("55.00")
        assert captured.payment_receipt == f"rcpt_{booking.payment_token}"
        assert gateway.captured[booking.payment_token] == Decimal("45.00")

        again = await bookings.capture(booking.id)
        assert again.success
        assert again.message == "already captured"
        assert len(gateway.captured) == 1

    async def test_capture_never_exceeds_the_authorization(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        await set_drop(db, drop.id, current_discount=Decimal("55"))
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="S")).value
        assert booking.authorized_amount == Decimal("45.00")
        await set_drop(db, drop.id, status=DropStatus.COMPLETED.value, current_discount=Decimal("30"))

        result = await bookings.capture(booking.id)

        assert result.value.final_price == Decimal("45.00")
        assert result.value.final_price <= result.value.authorized_amount

    async def test_failed_capture_releases_the_booking(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="M")).value
        await set_drop(db, drop.id, status=DropStatus.COMPLETED.value)
        gateway.fail_capture_tokens.add(booking.payment_token)

        result = await bookings.capture(booking.id)

        assert result.error_code == ErrorCode.PAYMENT_FAILED
        released = await bookings.get_booking(booking.id)
        assert released.payment_status == PaymentStatus.CANCELLED.value
        assert released.release_reason == "payment capture failed"
        assert await variant_stock(db, await variant_id_for(db, sized_tee, "M")) == 1

    async def test_release_restores_stock_once(self, db, market, sized_tee, bookings, gateway):
        _, _, drop = market
        small = await variant_id_for(db, sized_tee, "S")
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="S")).value
        value_after_claim = (await fresh_drop(db, drop.id)).current_value

        first = await bookings.release(booking.id, reason="changed my mind")
        second = await bookings.release(booking.id)

        assert first.value.payment_status == PaymentStatus.CANCELLED.value
        assert second.success
        assert second.message == "already released"
        assert await variant_stock(db, small) == 1
        assert gateway.released == [booking.payment_token]
        assert (await fresh_drop(db, drop.id)).current_value == value_after_claim

    async def test_release_after_capture_refunds(self, db, market, sized_tee, bookings):
        _, _, drop = market
        booking = (await bookings.claim(uuid.uuid4(), drop.id, "TEE", size="L")).value
        await set_drop(db, drop.id, status=DropStatus.COMPLETED.value)
        await bookings.capture(booking.id)

        result = await bookings.release(booking.id, reason="order cancelled")

        assert result.value.payment_status == PaymentStatus.REFUNDED.value

    async def test_stock_is_conserved(self, db, market, bookings):
        supplier_list, _, drop = market
        scarf = await seed_product(db, supplier_list, name="Scarf", price="40", stock=3)
        scarf_id = scarf.id
        key = str(scarf_id)

        claimed = [await bookings.claim(uuid.uuid4(), drop.id, key) for _ in range(4)]
        assert [r.success for r in claimed] == [True, True, True, False]
        assert await product_stock(db, scarf_id) + await open_bookings(db, scarf_id) == 3

        await bookings.release(claimed[0].value.id)
        assert await product_stock(db, scarf_id) == 1
        assert await product_stock(db, scarf_id) + await open_bookings(db, scarf_id) == 3

        assert (await bookings.claim(uuid.uuid4(), drop.id, key)).success
        assert await product_stock(db, scarf_id) + await open_bookings(db, scarf_id) == 3

    async def test_batch_release_for_a_failed_drop(self, db, market, sized_tee, bookings):
        _, _, drop = market
        for size in ("S", "M"):
            await bookings.claim(uuid.uuid4(), drop.id, "TEE", size=size)

        batch = await bookings.release_drop_bookings(drop.id, reason="drop expired")

        assert len(batch.succeeded) == 2
        assert batch.failed == []
        assert all(b.payment_status == PaymentStatus.CANCELLED.value for b in batch.succeeded)
