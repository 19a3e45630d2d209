"""Fulfillment orders created from completed drops."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Text, Integer, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, UTCDateTime, utc_now


class OrderStatus(str, Enum):
    """Order status."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"  # Created from a completed drop
    IN_TRANSIT = "IN_TRANSIT"  # Shipped by supplier
    ARRIVED = "ARRIVED"  # Received at pickup point
    READY_FOR_PICKUP = "READY_FOR_PICKUP"  # Consumers notified
    COMPLETED = "COMPLETED"  # Every item picked up or returned
    CANCELLED = "CANCELLED"


class PickupStatus(str, Enum):
    """Order item pickup status."""
    PENDING = "PENDING"
    READY = "READY"
    PICKED_UP = "PICKED_UP"


class Order(Base):
    """One order per completed drop with at least one captured booking."""
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    drop_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("drops.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    supplier_list_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("supplier_lists.id", ondelete="RESTRICT"), nullable=False
    )
    pickup_point_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("pickup_points.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.CONFIRMED.value,
        nullable=False,
        index=True,
        comment="PENDING, CONFIRMED, IN_TRANSIT, ARRIVED, READY_FOR_PICKUP, COMPLETED, CANCELLED"
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    shipped_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    arrived_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    ready_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Order(order_number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """
    One captured booking inside an order.

    Terminal once picked up or returned to sender.
    """
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("bookings.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    selected_size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    selected_color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    pickup_status: Mapped[str] = mapped_column(
        String(20),
        default=PickupStatus.PENDING.value,
        nullable=False,
        comment="PENDING, READY, PICKED_UP"
    )
    customer_notified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    returned_to_sender: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    return_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    returned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    @property
    def is_terminal(self) -> bool:
        return self.returned_to_sender or self.pickup_status == PickupStatus.PICKED_UP.value

    def __repr__(self) -> str:
        return f"<OrderItem(order={self.order_id}, status='{self.pickup_status}')>"


class OrderStatusHistory(Base):
    """One row per order status transition."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
