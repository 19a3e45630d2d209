"""
Catalog Aggregator.

Merges raw product rows that share a SKU into one sellable unit:
- stock summed (live variant stock when a row has variants, else row stock)
- sizes and colors unioned in first-seen order
- variants concatenated

Pure functions over plain records. Output never depends on input order:
rows and variants are sorted by id before grouping.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

ACTIVE_VARIANT_STATUS = "ACTIVE"


@dataclass(frozen=True)
class VariantRecord:
    id: str
    product_id: str
    size: Optional[str]
    color: Optional[str]
    stock: int
    status: str = ACTIVE_VARIANT_STATUS

    @property
    def is_live(self) -> bool:
        return self.status == ACTIVE_VARIANT_STATUS

    @property
    def is_available(self) -> bool:
        return self.is_live and self.stock > 0


@dataclass(frozen=True)
class ProductRecord:
    id: str
    supplier_list_id: str
    name: str
    price: Decimal
    stock: int
    sku: Optional[str] = None
    available_sizes: Tuple[str, ...] = ()
    available_colors: Tuple[str, ...] = ()
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None


@dataclass
class SellableUnit:
    """One SKU-deduplicated catalog entry."""
    key: str
    supplier_list_id: str
    name: str
    price: Decimal
    total_stock: int
    sizes: List[str]
    colors: List[str]
    product_ids: List[str]
    variants: List[VariantRecord] = field(default_factory=list)
    sku: Optional[str] = None
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    member_stock: Dict[str, int] = field(default_factory=dict)

    @property
    def has_variants(self) -> bool:
        return len(self.variants) > 0

    @property
    def display_variants(self) -> List[VariantRecord]:
        """Variants offered to consumers: active and in stock."""
        return [v for v in self.variants if v.is_available]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "supplier_list_id": self.supplier_list_id,
            "name": self.name,
            "sku": self.sku,
            "price": str(self.price),
            "total_stock": self.total_stock,
            "sizes": list(self.sizes),
            "colors": list(self.colors),
            "product_ids": list(self.product_ids),
            "has_variants": self.has_variants,
            "image_url": self.image_url,
            "brand": self.brand,
            "category": self.category,
            "condition": self.condition,
            "variants": [
                {
                    "id": v.id,
                    "product_id": v.product_id,
                    "size": v.size,
                    "color": v.color,
                    "stock": v.stock,
                    "status": v.status,
                }
                for v in self.display_variants
            ],
        }


@dataclass
class AggregationResult:
    units: List[SellableUnit]
    orphan_variant_ids: List[str]

    def by_key(self) -> Dict[Tuple[str, str], SellableUnit]:
        return {(u.supplier_list_id, u.key): u for u in self.units}


def sellable_unit_key(product: ProductRecord) -> str:
    """SKU when present and non-blank, else the row's own identity."""
    if product.sku is not None and product.sku.strip():
        return product.sku.strip()
    return str(product.id)


def group_variants(
    variants: Iterable[VariantRecord],
    product_ids: Iterable[str],
) -> Tuple[Dict[str, List[VariantRecord]], List[str]]:
    """
    Group variants by product id.

    Returns the grouping and the ids of orphan variants whose product is
    unknown. All variants are kept regardless of status.
    """
    known = set(str(pid) for pid in product_ids)
    grouped: Dict[str, List[VariantRecord]] = {}
    orphans: List[str] = []
    for variant in sorted(variants, key=lambda v: str(v.id)):
        pid = str(variant.product_id)
        if pid not in known:
            orphans.append(str(variant.id))
            continue
        grouped.setdefault(pid, []).append(variant)
    return grouped, orphans


def _row_stock(product: ProductRecord, variants: Sequence[VariantRecord]) -> int:
    if variants:
        return sum(max(v.stock, 0) for v in variants if v.is_live)
    return max(product.stock, 0)


def _union(values: Iterable[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _build_unit(key: str, members: List[ProductRecord], variants_by_product: Dict[str, List[VariantRecord]]) -> SellableUnit:
    first = members[0]
    unit_variants: List[VariantRecord] = []
    member_stock: Dict[str, int] = {}
    sizes: List[Optional[str]] = []
    colors: List[Optional[str]] = []

    for member in members:
        row_variants = variants_by_product.get(str(member.id), [])
        unit_variants.extend(row_variants)
        member_stock[str(member.id)] = _row_stock(member, row_variants)
        sizes.extend(member.available_sizes or ())
        colors.extend(member.available_colors or ())
        sizes.extend(v.size for v in row_variants)
        colors.extend(v.color for v in row_variants)

    return SellableUnit(
        key=key,
        supplier_list_id=str(first.supplier_list_id),
        name=first.name,
        price=first.price,
        total_stock=sum(member_stock.values()),
        sizes=_union(sizes),
        colors=_union(colors),
        product_ids=[str(m.id) for m in members],
        variants=unit_variants,
        sku=first.sku.strip() if first.sku and first.sku.strip() else None,
        image_url=next((m.image_url for m in members if m.image_url), None),
        brand=first.brand,
        category=first.category,
        condition=first.condition,
        member_stock=member_stock,
    )


def aggregate_catalog(
    products: Iterable[ProductRecord],
    variants: Iterable[VariantRecord] = (),
) -> AggregationResult:
    """
    Build sellable units from raw product and variant rows.

    Groups are scoped by supplier list, so two lists reusing a SKU produce
    two units. Every product row lands in exactly one unit.
    """
    rows = sorted(products, key=lambda p: str(p.id))
    variants_by_product, orphans = group_variants(variants, (p.id for p in rows))

    if orphans:
        logger.warning(f"Catalog aggregation skipped {len(orphans)} orphan variant(s): {orphans}")

    groups: Dict[Tuple[str, str], List[ProductRecord]] = {}
    for row in rows:
        groups.setdefault((str(row.supplier_list_id), sellable_unit_key(row)), []).append(row)

    units = [
        _build_unit(key, members, variants_by_product)
        for (_, key), members in sorted(groups.items())
    ]
    return AggregationResult(units=units, orphan_variant_ids=orphans)


def product_record_from_row(row: Any) -> ProductRecord:
    """Build a ProductRecord from a Product ORM row."""
    return ProductRecord(
        id=str(row.id),
        supplier_list_id=str(row.supplier_list_id),
        name=row.name,
        price=Decimal(str(row.price)),
        stock=row.stock or 0,
        sku=row.sku,
        available_sizes=tuple(row.available_sizes or ()),
        available_colors=tuple(row.available_colors or ()),
        image_url=row.image_url,
        brand=row.brand,
        category=row.category,
        condition=row.condition,
    )


def variant_record_from_row(row: Any) -> VariantRecord:
    """Build a VariantRecord from a ProductVariant ORM row."""
    return VariantRecord(
        id=str(row.id),
        product_id=str(row.product_id),
        size=row.size,
        color=row.color,
        stock=row.stock or 0,
        status=row.status,
    )
