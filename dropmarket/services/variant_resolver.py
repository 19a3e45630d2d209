"""
Variant Resolver.

Maps a consumer's (size, color) selection on a sellable unit to the concrete
stock-bearing row that a booking will decrement:
- a variant row when the unit has variants
- the product row itself when it has none

A dimension the unit does not offer is never required and a value sent for
it is ignored. An offered dimension must be selected.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from dropmarket.services.catalog_aggregator import SellableUnit, VariantRecord


class ResolutionStatus(str, Enum):
    RESOLVED = "RESOLVED"
    SELECTION_INCOMPLETE = "SELECTION_INCOMPLETE"
    SELECTION_UNAVAILABLE = "SELECTION_UNAVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"


@dataclass
class VariantResolution:
    status: ResolutionStatus
    product_id: Optional[str] = None
    variant: Optional[VariantRecord] = None
    size: Optional[str] = None
    color: Optional[str] = None
    missing: Optional[List[str]] = None

    @property
    def resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED

    @property
    def variant_id(self) -> Optional[str]:
        return self.variant.id if self.variant else None


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_selection(
    unit: SellableUnit,
    size: Optional[str] = None,
    color: Optional[str] = None,
) -> VariantResolution:
    """Resolve a selection, reporting why it cannot be booked when it fails."""
    size = _normalize(size) if unit.sizes else None
    color = _normalize(color) if unit.colors else None

    if (size is not None and size not in unit.sizes) or (color is not None and color not in unit.colors):
        return VariantResolution(ResolutionStatus.SELECTION_UNAVAILABLE, size=size, color=color)

    missing = []
    if unit.sizes and size is None:
        missing.append("size")
    if unit.colors and color is None:
        missing.append("color")
    if missing:
        return VariantResolution(
            ResolutionStatus.SELECTION_INCOMPLETE, size=size, color=color, missing=missing
        )

    if not unit.has_variants:
        for product_id in unit.product_ids:
            if unit.member_stock.get(product_id, 0) > 0:
                return VariantResolution(
                    ResolutionStatus.RESOLVED, product_id=product_id, size=size, color=color
                )
        return VariantResolution(ResolutionStatus.OUT_OF_STOCK, size=size, color=color)

    matches = [
        v for v in unit.variants
        if v.is_live
        and (not unit.sizes or v.size == size)
        and (not unit.colors or v.color == color)
    ]
    if not matches:
        return VariantResolution(ResolutionStatus.SELECTION_UNAVAILABLE, size=size, color=color)

    for variant in matches:
        if variant.stock > 0:
            return VariantResolution(
                ResolutionStatus.RESOLVED,
                product_id=variant.product_id,
                variant=variant,
                size=size,
                color=color,
            )
    return VariantResolution(ResolutionStatus.OUT_OF_STOCK, size=size, color=color)


def resolve_variant(
    unit: SellableUnit,
    size: Optional[str] = None,
    color: Optional[str] = None,
) -> Optional[VariantRecord]:
    """The unique in-stock variant for the selection, or None."""
    resolution = resolve_selection(unit, size, color)
    return resolution.variant if resolution.resolved else None
