"""Booking API endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from dropmarket.api.deps import DB, CurrentUserId, Gateway, raise_for_result
from dropmarket.models.booking import PaymentStatus
from dropmarket.schemas.base import parse_status_filter
from dropmarket.schemas.booking import BookingClaim, BookingRelease, BookingResponse
from dropmarket.services.booking_service import BookingService


router = APIRouter()


@router.get("", response_model=List[BookingResponse])
async def list_my_bookings(
    db: DB,
    user_id: CurrentUserId,
    drop_id: Optional[uuid.UUID] = Query(None),
    payment_status: Optional[str] = Query(None),
):
    try:
        status_value = parse_status_filter(payment_status, PaymentStatus)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    service = BookingService(db)
    bookings = await service.list_bookings(user_id=user_id, drop_id=drop_id, payment_status=status_value)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_unit(data: BookingClaim, db: DB, user_id: CurrentUserId, gateway: Gateway):
    """
    Book one unit of a sellable unit in an active drop.

    Size and color are required only for dimensions the unit offers.
    Failures carry a code and the action the client should take:
    RESELECT for a bad selection, REFRESH when stock or the drop changed,
    RETRY_LATER for transient errors.
    """
    service = BookingService(db, gateway=gateway)
    result = await service.claim(
        user_id,
        data.drop_id,
        data.unit_key,
        size=data.size,
        color=data.color,
        idempotency_key=data.idempotency_key,
    )
    raise_for_result(result)
    return BookingResponse.model_validate(result.value)


async def _owned_booking(service: BookingService, booking_id: uuid.UUID, user_id: uuid.UUID):
    booking = await service.get_booking(booking_id)
    if not booking or booking.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found"
        )
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: uuid.UUID, db: DB, user_id: CurrentUserId):
    booking = await _owned_booking(BookingService(db), booking_id, user_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/capture", response_model=BookingResponse)
async def capture_booking(booking_id: uuid.UUID, db: DB, user_id: CurrentUserId, gateway: Gateway):
    """Charge a booking of a COMPLETED drop at its final price."""
    service = BookingService(db, gateway=gateway)
    await _owned_booking(service, booking_id, user_id)
    result = await service.capture(booking_id)
    raise_for_result(result)
    return BookingResponse.model_validate(result.value)


@router.post("/{booking_id}/release", response_model=BookingResponse)
async def release_booking(
    booking_id: uuid.UUID,
    data: BookingRelease,
    db: DB,
    user_id: CurrentUserId,
    gateway: Gateway,
):
    """Void or refund one of the caller's bookings and restore its stock unit."""
    service = BookingService(db, gateway=gateway)
    await _owned_booking(service, booking_id, user_id)
    result = await service.release(booking_id, reason=data.reason)
    raise_for_result(result)
    return BookingResponse.model_validate(result.value)
