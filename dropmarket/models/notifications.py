"""In-app notifications."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, UTCDateTime, utc_now


class NotificationType(str, Enum):
    """Types of notifications."""
    # Drops
    DROP_CREATED = "DROP_CREATED"
    DROP_APPROVED = "DROP_APPROVED"
    DROP_ACTIVATED = "DROP_ACTIVATED"
    DROP_COMPLETED = "DROP_COMPLETED"
    DROP_EXPIRED = "DROP_EXPIRED"
    DROP_UNDERFUNDED = "DROP_UNDERFUNDED"
    DROP_CANCELLED = "DROP_CANCELLED"

    # Orders
    ORDER_READY_FOR_PICKUP = "ORDER_READY_FOR_PICKUP"
    ITEM_RETURNED = "ITEM_RETURNED"

    # Payments
    PAYMENT_FAILED = "PAYMENT_FAILED"

    SYSTEM = "SYSTEM"


class Notification(Base):
    """Notification shown to one user. Unread count is derived from ``is_read``."""
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    notification_type: Mapped[str] = mapped_column(
        String(50),
        default=NotificationType.SYSTEM.value,
        nullable=False,
        comment="DROP_*, ORDER_READY_FOR_PICKUP, ITEM_RETURNED, PAYMENT_FAILED, SYSTEM"
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Reference to related entity
    related_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    related_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # "drop", "order", "booking"

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Notification(type='{self.notification_type}', user={self.user_id})>"
