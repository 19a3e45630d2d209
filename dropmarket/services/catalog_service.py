"""
Catalog Service.

Supplier lists, pickup points, product imports and the aggregated catalog
feed built by the catalog aggregator. The feed per supplier list is cached
and dropped whenever a product or variant change is published.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dropmarket.config import settings
from dropmarket.core.events import RowChange, get_change_feed
from dropmarket.core.results import ErrorCode, InvalidConfigurationError, OperationResult
from dropmarket.models.catalog import (
    SupplierList, SupplierListStatus, Product, ProductVariant, VariantStatus,
)
from dropmarket.models.pickup_point import PickupPoint, PickupPointStatus
from dropmarket.schemas.catalog import (
    SupplierListCreate, SupplierListUpdate, ProductImportRow, PickupPointCreate,
)
from dropmarket.services.cache_service import get_cache
from dropmarket.services.catalog_aggregator import (
    AggregationResult,
    SellableUnit,
    aggregate_catalog,
    product_record_from_row,
    variant_record_from_row,
)
from dropmarket.services.discount_engine import validate_discount_configuration

logger = logging.getLogger(__name__)

CATALOG_TABLES = ("products", "product_variants")

_invalidation_registered = False


async def _invalidate_on_change(change: RowChange) -> None:
    supplier_list_id = change.payload.get("supplier_list_id")
    await get_cache().invalidate_catalog(supplier_list_id)


def register_catalog_cache_invalidation() -> None:
    """Subscribe the catalog cache to product and variant changes. Idempotent."""
    global _invalidation_registered
    if _invalidation_registered:
        return
    feed = get_change_feed()
    for table in CATALOG_TABLES:
        feed.subscribe(table, _invalidate_on_change)
    _invalidation_registered = True


def reset_catalog_cache_invalidation() -> None:
    global _invalidation_registered
    _invalidation_registered = False


class CatalogService:
    """Supplier lists, pickup points and sellable units."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    # ==================== Supplier Lists ====================

    async def create_supplier_list(self, data: SupplierListCreate) -> OperationResult:
        try:
            validate_discount_configuration(
                data.min_discount, data.max_discount,
                data.min_reservation_value, data.max_reservation_value,
            )
        except InvalidConfigurationError as e:
            return OperationResult.fail(ErrorCode.INVALID_CONFIGURATION, str(e), e)

        supplier_list = SupplierList(
            supplier_id=data.supplier_id,
            name=data.name,
            description=data.description,
            min_discount=data.min_discount,
            max_discount=data.max_discount,
            min_reservation_value=data.min_reservation_value,
            max_reservation_value=data.max_reservation_value,
            status=SupplierListStatus.ACTIVE.value,
        )
        self.db.add(supplier_list)
        await self.db.commit()
        await self.db.refresh(supplier_list)

        logger.info(f"Created supplier list {supplier_list.id} '{supplier_list.name}'")
        return OperationResult.ok(supplier_list)

    async def update_supplier_list(self, list_id: uuid.UUID, data: SupplierListUpdate) -> OperationResult:
        supplier_list = await self.get_supplier_list(list_id)
        if not supplier_list:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list not found")

        update_data = data.model_dump(exclude_unset=True)
        merged = {
            "min_discount": update_data.get("min_discount", supplier_list.min_discount),
            "max_discount": update_data.get("max_discount", supplier_list.max_discount),
            "min_value": update_data.get("min_reservation_value", supplier_list.min_reservation_value),
            "max_value": update_data.get("max_reservation_value", supplier_list.max_reservation_value),
        }
        try:
            validate_discount_configuration(**merged)
        except InvalidConfigurationError as e:
            return OperationResult.fail(ErrorCode.INVALID_CONFIGURATION, str(e), e)

        for field, value in update_data.items():
            setattr(supplier_list, field, value)
        await self.db.commit()
        await self.db.refresh(supplier_list)
        return OperationResult.ok(supplier_list)

    async def get_supplier_list(self, list_id: uuid.UUID) -> Optional[SupplierList]:
        result = await self.db.execute(select(SupplierList).where(SupplierList.id == list_id))
        return result.scalar_one_or_none()

    async def list_supplier_lists(
        self,
        supplier_id: Optional[uuid.UUID] = None,
        include_archived: bool = False,
    ) -> List[SupplierList]:
        query = select(SupplierList)
        if supplier_id:
            query = query.where(SupplierList.supplier_id == supplier_id)
        if not include_archived:
            query = query.where(SupplierList.status != SupplierListStatus.ARCHIVED.value)
        result = await self.db.execute(query.order_by(SupplierList.created_at.desc()))
        return list(result.scalars().all())

    async def set_supplier_list_active(self, list_id: uuid.UUID, active: bool) -> OperationResult:
        """
        Toggle a list between ACTIVE and INACTIVE.

        An INACTIVE list takes no interest and no new drops; drops already
        running are unaffected. Archived lists cannot be toggled.
        """
        supplier_list = await self.get_supplier_list(list_id)
        if not supplier_list:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list not found")
        if supplier_list.status == SupplierListStatus.ARCHIVED.value:
            return OperationResult.fail(ErrorCode.INVALID_TRANSITION, "Archived supplier lists cannot be changed")

        target = SupplierListStatus.ACTIVE.value if active else SupplierListStatus.INACTIVE.value
        if supplier_list.status == target:
            return OperationResult.ok(supplier_list, "unchanged")

        supplier_list.status = target
        await self.db.commit()
        await self.db.refresh(supplier_list)
        logger.info(f"Supplier list {list_id} is now {target}")
        return OperationResult.ok(supplier_list)

    async def remove_supplier_list(self, list_id: uuid.UUID) -> OperationResult:
        """Delete an empty list; a list with products is archived instead."""
        supplier_list = await self.get_supplier_list(list_id)
        if not supplier_list:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list not found")

        product_count = (await self.db.execute(
            select(func.count(Product.id)).where(Product.supplier_list_id == list_id)
        )).scalar() or 0

        if product_count:
            supplier_list.status = SupplierListStatus.ARCHIVED.value
            await self.db.commit()
            logger.info(f"Archived supplier list {list_id} with {product_count} products")
            return OperationResult.ok(supplier_list, "archived")

        await self.db.delete(supplier_list)
        await self.db.commit()
        logger.info(f"Deleted empty supplier list {list_id}")
        return OperationResult.ok(None, "deleted")

    # ==================== Pickup Points ====================

    async def create_pickup_point(self, data: PickupPointCreate) -> PickupPoint:
        pickup_point = PickupPoint(
            **data.model_dump(exclude={"commission_rate"}),
            commission_rate=data.commission_rate if data.commission_rate is not None else settings.DEFAULT_COMMISSION_RATE,
            status=PickupPointStatus.ACTIVE.value,
        )
        self.db.add(pickup_point)
        await self.db.commit()
        await self.db.refresh(pickup_point)
        return pickup_point

    async def get_pickup_point(self, pickup_point_id: uuid.UUID) -> Optional[PickupPoint]:
        result = await self.db.execute(select(PickupPoint).where(PickupPoint.id == pickup_point_id))
        return result.scalar_one_or_none()

    async def list_pickup_points(self, city: Optional[str] = None) -> List[PickupPoint]:
        query = select(PickupPoint).where(PickupPoint.status == PickupPointStatus.ACTIVE.value)
        if city:
            query = query.where(func.lower(PickupPoint.city) == city.lower())
        result = await self.db.execute(query.order_by(PickupPoint.name))
        return list(result.scalars().all())

    # ==================== Products ====================

    async def import_products(self, list_id: uuid.UUID, rows: List[ProductImportRow]) -> OperationResult:
        """Insert validated import rows (and their variants) into a list."""
        supplier_list = await self.get_supplier_list(list_id)
        if not supplier_list:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Supplier list not found")
        if supplier_list.status == SupplierListStatus.ARCHIVED.value:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Cannot import into an archived list")

        products: List[Product] = []
        variant_count = 0
        for row in rows:
            product = Product(
                id=uuid.uuid4(),
                supplier_list_id=list_id,
                name=row.name,
                sku=row.sku.strip() if row.sku and row.sku.strip() else None,
                brand=row.brand,
                category=row.category,
                condition=row.condition,
                description=row.description,
                image_url=row.image_url,
                price=row.price,
                stock=row.stock,
                available_sizes=list(row.sizes),
                available_colors=list(row.colors),
            )
            self.db.add(product)
            for variant in row.variants:
                self.db.add(ProductVariant(
                    product_id=product.id,
                    size=variant.size,
                    color=variant.color,
                    sku=variant.sku,
                    stock=variant.stock,
                    status=VariantStatus.ACTIVE.value,
                ))
                variant_count += 1
            products.append(product)

        await self.db.commit()
        logger.info(f"Imported {len(products)} products ({variant_count} variants) into list {list_id}")

        await get_change_feed().publish_many([
            RowChange("products", p.id, "INSERT", {"supplier_list_id": str(list_id)}) for p in products
        ])
        return OperationResult.ok({"products": products, "variants": variant_count})

    async def update_variant_stock(
        self,
        variant_id: uuid.UUID,
        stock: int,
        status: Optional[str] = None,
    ) -> OperationResult:
        """Restock or deactivate a variant."""
        result = await self.db.execute(
            select(ProductVariant, Product.supplier_list_id)
            .join(Product, Product.id == ProductVariant.product_id)
            .where(ProductVariant.id == variant_id)
        )
        row = result.first()
        if not row:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Variant not found")
        variant, supplier_list_id = row

        if stock < 0:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Stock cannot be negative")
        variant.stock = stock
        if status is not None:
            if status.upper() not in {s.value for s in VariantStatus}:
                return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid variant status '{status}'")
            variant.status = status.upper()
        await self.db.commit()

        await get_change_feed().publish(
            RowChange("product_variants", variant.id, "UPDATE", {"supplier_list_id": str(supplier_list_id)})
        )
        return OperationResult.ok(variant)

    # ==================== Sellable Units ====================

    async def load_aggregation(self, list_id: uuid.UUID) -> AggregationResult:
        """Aggregate a list's product rows straight from the database."""
        products = (await self.db.execute(
            select(Product)
            .where(Product.supplier_list_id == list_id)
            .execution_options(populate_existing=True)
        )).scalars().all()

        product_ids = [p.id for p in products]
        variants = []
        if product_ids:
            variants = (await self.db.execute(
                select(ProductVariant)
                .where(ProductVariant.product_id.in_(product_ids))
                .execution_options(populate_existing=True)
            )).scalars().all()

        return aggregate_catalog(
            [product_record_from_row(p) for p in products],
            [variant_record_from_row(v) for v in variants],
        )

    async def load_unit(self, list_id: uuid.UUID, unit_key: str) -> Optional[SellableUnit]:
        """Fresh sellable unit for a booking; never served from cache."""
        aggregation = await self.load_aggregation(list_id)
        return aggregation.by_key().get((str(list_id), unit_key))

    async def get_catalog(self, list_id: uuid.UUID) -> dict:
        """Aggregated catalog feed for presentation, cached per list."""
        cached = await self.cache.get_catalog(str(list_id))
        if cached is not None:
            return cached

        aggregation = await self.load_aggregation(list_id)
        feed = {
            "supplier_list_id": str(list_id),
            "units": [unit.to_dict() for unit in aggregation.units],
            "orphan_variant_ids": aggregation.orphan_variant_ids,
        }
        await self.cache.set_catalog(str(list_id), feed)
        return feed
