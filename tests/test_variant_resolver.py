"""Resolving a (size, color) selection to a stock-bearing row."""
from decimal import Decimal

from dropmarket.services.catalog_aggregator import ProductRecord, VariantRecord, aggregate_catalog
from dropmarket.services.variant_resolver import ResolutionStatus, resolve_selection, resolve_variant


def unit_with_sizes(stocks):
    """Single-row unit offering S/M/L with the given per-size stock."""
    products = [ProductRecord(id="p1", supplier_list_id="L1", name="Tee", price=Decimal("20"), stock=0, sku="TEE")]
    variants = [
        VariantRecord(id=f"v{size}", product_id="p1", size=size, color=None, stock=stock)
        for size, stock in stocks.items()
    ]
    return aggregate_catalog(products, variants).units[0]


def test_offered_size_is_required():
    unit = unit_with_sizes({"S": 1, "M": 1, "L": 1})

    resolution = resolve_selection(unit)

    assert resolution.status == ResolutionStatus.SELECTION_INCOMPLETE
    assert resolution.missing == ["size"]


def test_resolves_to_the_matching_variant():
    unit = unit_with_sizes({"S": 1, "M": 3, "L": 1})

    resolution = resolve_selection(unit, size="M")

    assert resolution.resolved
    assert resolution.variant_id == "vM"
    assert resolution.product_id == "p1"
    assert resolve_variant(unit, size="M").id == "vM"


def test_color_is_ignored_when_not_offered():
    unit = unit_with_sizes({"S": 1})

    resolution = resolve_selection(unit, size="S", color="red")

    assert resolution.resolved
    assert resolution.color is None


def test_unknown_size_is_unavailable():
    unit = unit_with_sizes({"S": 1, "M": 1})

    assert resolve_selection(unit, size="XXL").status == ResolutionStatus.SELECTION_UNAVAILABLE


def test_sold_out_size_is_out_of_stock():
    unit = unit_with_sizes({"S": 0, "M": 2})

    assert resolve_selection(unit, size="S").status == ResolutionStatus.OUT_OF_STOCK
    assert resolve_variant(unit, size="S") is None


def test_inactive_variant_is_unavailable():
    products = [ProductRecord(id="p1", supplier_list_id="L1", name="Tee", price=Decimal("20"), stock=0)]
    variants = [
        VariantRecord(id="v1", product_id="p1", size="S", color=None, stock=4, status="INACTIVE"),
        VariantRecord(id="v2", product_id="p1", size="M", color=None, stock=4),
    ]
    unit = aggregate_catalog(products, variants).units[0]

    assert resolve_selection(unit, size="S").status == ResolutionStatus.SELECTION_UNAVAILABLE


def test_size_and_color_both_required():
    products = [ProductRecord(id="p1", supplier_list_id="L1", name="Sneaker", price=Decimal("80"), stock=0)]
    variants = [
        VariantRecord(id="v1", product_id="p1", size="42", color="white", stock=1),
        VariantRecord(id="v2", product_id="p1", size="43", color="black", stock=1),
    ]
    unit = aggregate_catalog(products, variants).units[0]

    incomplete = resolve_selection(unit, size="42")
    assert incomplete.status == ResolutionStatus.SELECTION_INCOMPLETE
    assert incomplete.missing == ["color"]

    # Both values exist, the combination does not
    assert resolve_selection(unit, size="42", color="black").status == ResolutionStatus.SELECTION_UNAVAILABLE
    assert resolve_selection(unit, size="43", color="black").variant_id == "v2"


def test_row_without_variants_resolves_to_first_member_with_stock():
    products = [
        ProductRecord(id="p1", supplier_list_id="L1", name="Bag", price=Decimal("40"), stock=0, sku="BAG"),
        ProductRecord(id="p2", supplier_list_id="L1", name="Bag", price=Decimal("40"), stock=2, sku="BAG"),
    ]
    unit = aggregate_catalog(products).units[0]

    resolution = resolve_selection(unit)

    assert resolution.resolved
    assert resolution.product_id == "p2"
    assert resolution.variant is None


def test_row_without_variants_and_no_stock():
    products = [ProductRecord(id="p1", supplier_list_id="L1", name="Bag", price=Decimal("40"), stock=0)]
    unit = aggregate_catalog(products).units[0]

    assert resolve_selection(unit).status == ResolutionStatus.OUT_OF_STOCK
