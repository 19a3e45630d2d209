"""Consumer interest in a product at a pickup point."""
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, UTCDateTime, utc_now


class UserInterest(Base):
    """
    One consumer's interest in one product at one pickup point.

    The summed price of interested products per (supplier list, pickup point)
    decides when a drop is proposed.
    """
    __tablename__ = "user_interests"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "pickup_point_id", name="uq_user_interests_user_product_pickup"),
        Index("ix_user_interests_list_pickup", "supplier_list_id", "pickup_point_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    supplier_list_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("supplier_lists.id", ondelete="CASCADE"), nullable=False
    )
    pickup_point_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, ForeignKey("pickup_points.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<UserInterest(user={self.user_id}, product={self.product_id})>"
