"""Drops: time-boxed, location-scoped discount events."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Text, Numeric, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, UTCDateTime, utc_now


class DropStatus(str, Enum):
    """Drop lifecycle status."""
    PENDING_APPROVAL = "PENDING_APPROVAL"  # Interest threshold reached
    APPROVED = "APPROVED"  # Waiting for start_time
    ACTIVE = "ACTIVE"  # Accepting bookings
    INACTIVE = "INACTIVE"  # Paused by admin
    COMPLETED = "COMPLETED"  # Ended at or above min value
    EXPIRED = "EXPIRED"  # Ended below min value
    CANCELLED = "CANCELLED"  # Rejected or withdrawn
    UNDERFUNDED = "UNDERFUNDED"  # Ended while paused below min value


OPEN_DROP_STATUSES = (
    DropStatus.PENDING_APPROVAL.value,
    DropStatus.APPROVED.value,
    DropStatus.ACTIVE.value,
    DropStatus.INACTIVE.value,
)

_OPEN_DROP_PREDICATE = text(
    "status IN ('PENDING_APPROVAL', 'APPROVED', 'ACTIVE', 'INACTIVE')"
)


class Drop(Base):
    """
    A drop for one supplier list at one pickup point.

    ``current_value`` and ``current_discount`` only change while the drop is
    ACTIVE. At most one non-terminal drop exists per (list, pickup point).
    """
    __tablename__ = "drops"
    __table_args__ = (
        Index(
            "uq_drops_open_per_list_pickup",
            "supplier_list_id",
            "pickup_point_id",
            unique=True,
            postgresql_where=_OPEN_DROP_PREDICATE,
            sqlite_where=_OPEN_DROP_PREDICATE,
        ),
        CheckConstraint("current_value >= 0", name="ck_drops_value_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    supplier_list_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("supplier_lists.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    pickup_point_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("pickup_points.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=DropStatus.PENDING_APPROVAL.value,
        nullable=False,
        index=True,
        comment="PENDING_APPROVAL, APPROVED, ACTIVE, INACTIVE, COMPLETED, EXPIRED, CANCELLED, UNDERFUNDED"
    )

    start_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)

    current_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    current_discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    target_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Audit
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    activated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    deactivated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    underfunded_notified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    status_history: Mapped[List["DropStatusHistory"]] = relationship(
        "DropStatusHistory",
        back_populates="drop",
        cascade="all, delete-orphan",
        order_by="DropStatusHistory.created_at"
    )

    def __repr__(self) -> str:
        return f"<Drop(name='{self.name}', status='{self.status}', value={self.current_value})>"


class DropStatusHistory(Base):
    """One row per drop status transition."""
    __tablename__ = "drop_status_history"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    drop_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("drops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    drop: Mapped["Drop"] = relationship("Drop", back_populates="status_history")
