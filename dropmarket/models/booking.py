"""Bookings: one claimed unit of stock against an active drop."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, UTCDateTime, utc_now


class PaymentStatus(str, Enum):
    """Booking payment status."""
    AUTHORIZED = "AUTHORIZED"  # Funds held, stock claimed
    CAPTURED = "CAPTURED"  # Charged at drop completion
    REFUNDED = "REFUNDED"  # Released after capture
    CANCELLED = "CANCELLED"  # Released before capture


class Booking(Base):
    """
    A consumer's reservation of one unit.

    ``final_price`` never exceeds ``authorized_amount`` and is fixed once
    captured.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_drop_status", "drop_id", "payment_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    drop_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("drops.id", ondelete="RESTRICT"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=True
    )
    selected_size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    selected_color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Pricing
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    authorized_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    final_discount_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    final_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Payment
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.AUTHORIZED.value,
        nullable=False,
        comment="AUTHORIZED, CAPTURED, REFUNDED, CANCELLED"
    )
    payment_token: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_receipt: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)

    captured_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    release_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status='{self.payment_status}', amount={self.authorized_amount})>"
