"""Supplier lists, product rows and their size/color variants."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Text, Integer, Numeric, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropmarket.database import Base
from dropmarket.db_types import UUIDType, JSONType, UTCDateTime, utc_now


class SupplierListStatus(str, Enum):
    """
    Supplier list status.

    ACTIVE and INACTIVE are toggled by the supplier; only ACTIVE lists take
    interest or new drops. Lists with products are archived, never deleted.
    """
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class VariantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SupplierList(Base):
    """
    A supplier's product list with its drop economics.

    Discount grows linearly from min_discount at min_reservation_value to
    max_discount at max_reservation_value.
    """
    __tablename__ = "supplier_lists"
    __table_args__ = (
        CheckConstraint("min_discount >= 0 AND max_discount <= 100", name="ck_supplier_lists_discount_range"),
        CheckConstraint("min_discount <= max_discount", name="ck_supplier_lists_discount_order"),
        CheckConstraint(
            "min_reservation_value > 0 AND min_reservation_value < max_reservation_value",
            name="ck_supplier_lists_value_order",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    supplier_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Drop economics
    min_discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    max_discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    min_reservation_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_reservation_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=SupplierListStatus.ACTIVE.value,
        nullable=False,
        comment="ACTIVE, INACTIVE, ARCHIVED"
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    products: Mapped[List["Product"]] = relationship("Product", back_populates="supplier_list")

    def __repr__(self) -> str:
        return f"<SupplierList(name='{self.name}', status='{self.status}')>"


class Product(Base):
    """
    One raw product row as imported by the supplier.

    Several rows may share a SKU; the catalog aggregator merges them into a
    single sellable unit.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        Index("ix_products_list_sku", "supplier_list_id", "sku"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    supplier_list_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("supplier_lists.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    additional_images: Mapped[Optional[list]] = mapped_column(JSONType, default=list, nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    available_sizes: Mapped[Optional[list]] = mapped_column(JSONType, default=list, nullable=True)
    available_colors: Mapped[Optional[list]] = mapped_column(JSONType, default=list, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    supplier_list: Mapped["SupplierList"] = relationship("SupplierList", back_populates="products")
    variants: Mapped[List["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', sku='{self.sku}', stock={self.stock})>"


class ProductVariant(Base):
    """A concrete (size, color) combination with its own stock."""
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint("product_id", "size", "color", name="uq_product_variants_product_size_color"),
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=VariantStatus.ACTIVE.value,
        nullable=False,
        comment="ACTIVE, INACTIVE"
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return f"<ProductVariant(size='{self.size}', color='{self.color}', stock={self.stock})>"
