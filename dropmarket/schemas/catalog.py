"""Supplier list, product import and catalog schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import Field, field_validator, model_validator

from dropmarket.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema


# ==================== SUPPLIER LIST SCHEMAS ====================

class SupplierListCreate(BaseCreateSchema):
    supplier_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    min_discount: Decimal = Field(..., ge=0, le=100)
    max_discount: Decimal = Field(..., ge=0, le=100)
    min_reservation_value: Decimal = Field(..., gt=0)
    max_reservation_value: Decimal = Field(..., gt=0)


class SupplierListUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    min_discount: Optional[Decimal] = Field(None, ge=0, le=100)
    max_discount: Optional[Decimal] = Field(None, ge=0, le=100)
    min_reservation_value: Optional[Decimal] = Field(None, gt=0)
    max_reservation_value: Optional[Decimal] = Field(None, gt=0)


class SupplierListResponse(BaseResponseSchema):
    id: uuid.UUID
    supplier_id: uuid.UUID
    name: str
    description: Optional[str] = None
    min_discount: Decimal
    max_discount: Decimal
    min_reservation_value: Decimal
    max_reservation_value: Decimal
    status: str
    created_at: datetime


# ==================== PRODUCT IMPORT SCHEMAS ====================

class VariantImport(BaseCreateSchema):
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None

    @model_validator(mode="after")
    def require_dimension(self):
        if not self.size and not self.color:
            raise ValueError("A variant needs a size or a color")
        return self


class ProductImportRow(BaseCreateSchema):
    """One validated row from a supplier's spreadsheet."""
    name: str = Field(..., min_length=1, max_length=255)
    image_url: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    condition: Optional[str] = None
    category: Optional[str] = None
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    variants: List[VariantImport] = Field(default_factory=list)

    @field_validator("sizes", "colors", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @model_validator(mode="after")
    def unique_variant_combinations(self):
        seen = set()
        for variant in self.variants:
            combo = (variant.size, variant.color)
            if combo in seen:
                raise ValueError(f"Duplicate variant {variant.size}/{variant.color} for {self.name}")
            seen.add(combo)
        return self


class ProductImportRequest(BaseCreateSchema):
    rows: List[ProductImportRow] = Field(..., min_length=1)


class ProductImportResponse(BaseResponseSchema):
    supplier_list_id: uuid.UUID
    imported: int
    variants: int


class VariantStockUpdate(BaseUpdateSchema):
    stock: int = Field(..., ge=0)
    status: Optional[str] = None


# ==================== CATALOG SCHEMAS ====================

class CatalogVariant(BaseResponseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int
    status: str


class SellableUnitResponse(BaseResponseSchema):
    key: str
    supplier_list_id: uuid.UUID
    name: str
    sku: Optional[str] = None
    price: Decimal
    total_stock: int
    sizes: List[str]
    colors: List[str]
    product_ids: List[uuid.UUID]
    has_variants: bool
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    variants: List[CatalogVariant] = Field(default_factory=list)


class CatalogResponse(BaseResponseSchema):
    supplier_list_id: uuid.UUID
    units: List[SellableUnitResponse]
    orphan_variant_ids: List[str] = Field(default_factory=list)


# ==================== PICKUP POINT SCHEMAS ====================

class PickupPointCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    manager_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)


class PickupPointResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    manager_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: str
    commission_rate: Decimal
