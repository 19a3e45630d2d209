"""Supplier lists, product import and the cached catalog feed."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from dropmarket.core.results import ErrorCode
from dropmarket.models.catalog import ProductVariant, SupplierListStatus
from dropmarket.schemas.catalog import ProductImportRow, SupplierListCreate, SupplierListUpdate
from dropmarket.services.catalog_service import CatalogService, register_catalog_cache_invalidation

from tests.factories import seed_supplier_list


def list_payload(**overrides):
    data = dict(
        supplier_id=uuid.uuid4(),
        name="Autumn Outlet",
        min_discount=Decimal("20"),
        max_discount=Decimal("60"),
        min_reservation_value=Decimal("1000"),
        max_reservation_value=Decimal("10000"),
    )
    data.update(overrides)
    return SupplierListCreate(**data)


SHIRT_ROWS = [
    ProductImportRow(
        name="Oxford Shirt", price=Decimal("60"), sku="OX-1",
        variants=[{"size": "S", "stock": 2}, {"size": "M", "stock": 1}],
    ),
    ProductImportRow(
        name="Oxford Shirt", price=Decimal("60"), sku="OX-1",
        variants=[{"size": "L", "stock": 4}],
    ),
    ProductImportRow(name="Wool Socks", price=Decimal("12"), stock=10, sizes="S, M"),
]


@pytest.fixture
def catalog(db):
    return CatalogService(db)


class TestSupplierLists:
    async def test_create(self, catalog):
        result = await catalog.create_supplier_list(list_payload())

        assert result.success
        assert result.value.status == SupplierListStatus.ACTIVE.value

    async def test_inverted_discounts_are_rejected(self, catalog):
        result = await catalog.create_supplier_list(
            list_payload(min_discount=Decimal("60"), max_discount=Decimal("20"))
        )

        assert result.error_code == ErrorCode.INVALID_CONFIGURATION

    async def test_update_is_validated_against_stored_values(self, db, catalog):
        supplier_list = await seed_supplier_list(db)

        bad = await catalog.update_supplier_list(
            supplier_list.id, SupplierListUpdate(min_reservation_value=Decimal("40000"))
        )
        good = await catalog.update_supplier_list(
            supplier_list.id, SupplierListUpdate(name="Renamed", max_discount=Decimal("70"))
        )

        assert bad.error_code == ErrorCode.INVALID_CONFIGURATION
        assert good.value.name == "Renamed"
        assert good.value.max_discount == Decimal("70")

    async def test_remove_archives_a_list_with_products(self, db, catalog):
        full = await seed_supplier_list(db, name="Full")
        empty = await seed_supplier_list(db, name="Empty")
        await catalog.import_products(full.id, SHIRT_ROWS[2:])

        archived = await catalog.remove_supplier_list(full.id)
        deleted = await catalog.remove_supplier_list(empty.id)

        assert archived.message == "archived"
        assert archived.value.status == SupplierListStatus.ARCHIVED.value
        assert deleted.message == "deleted"
        assert await catalog.get_supplier_list(empty.id) is None
        assert [sl.id for sl in await catalog.list_supplier_lists()] == []

        blocked = await catalog.import_products(full.id, SHIRT_ROWS[2:])
        assert blocked.error_code == ErrorCode.INVALID_INPUT

    async def test_toggle_active_and_inactive(self, db, catalog):
        supplier_list = await seed_supplier_list(db)

        paused = await catalog.set_supplier_list_active(supplier_list.id, False)
        assert paused.value.status == SupplierListStatus.INACTIVE.value
        assert [sl.id for sl in await catalog.list_supplier_lists()] == [supplier_list.id]

        again = await catalog.set_supplier_list_active(supplier_list.id, False)
        assert again.message == "unchanged"

        resumed = await catalog.set_supplier_list_active(supplier_list.id, True)
        assert resumed.value.status == SupplierListStatus.ACTIVE.value

    async def test_archived_list_cannot_be_toggled(self, db, catalog):
        supplier_list = await seed_supplier_list(db)
        await catalog.import_products(supplier_list.id, SHIRT_ROWS[2:])
        await catalog.remove_supplier_list(supplier_list.id)

        result = await catalog.set_supplier_list_active(supplier_list.id, True)

        assert result.error_code == ErrorCode.INVALID_TRANSITION
        assert (await catalog.get_supplier_list(supplier_list.id)).status == SupplierListStatus.ARCHIVED.value
        missing = await catalog.set_supplier_list_active(uuid.uuid4(), False)
        assert missing.error_code == ErrorCode.NOT_FOUND


class TestCatalogFeed:
    async def test_feed_merges_rows_sharing_a_sku(self, db, catalog):
        supplier_list = await seed_supplier_list(db)
        imported = await catalog.import_products(supplier_list.id, SHIRT_ROWS)
        assert len(imported.value["products"]) == 3
        assert imported.value["variants"] == 3

        feed = await catalog.get_catalog(supplier_list.id)

        units = {u["name"]: u for u in feed["units"]}
        assert len(units) == 2
        shirt = units["Oxford Shirt"]
        assert shirt["key"] == "OX-1"
        assert shirt["total_stock"] == 7
        assert sorted(shirt["sizes"]) == ["L", "M", "S"]
        assert len(shirt["product_ids"]) == 2
        assert units["Wool Socks"]["sizes"] == ["S", "M"]

    async def test_feed_is_cached_until_stock_changes(self, db, catalog):
        register_catalog_cache_invalidation()
        supplier_list = await seed_supplier_list(db)
        await catalog.import_products(supplier_list.id, SHIRT_ROWS[:1])
        medium = (await db.execute(
            select(ProductVariant.id).where(ProductVariant.size == "M")
        )).scalar_one()

        first = await catalog.get_catalog(supplier_list.id)
        assert await catalog.get_catalog(supplier_list.id) is first

        restocked = await catalog.update_variant_stock(medium, 5)
        assert restocked.success

        fresh = await catalog.get_catalog(supplier_list.id)
        assert fresh is not first
        assert fresh["units"][0]["total_stock"] == 7

    async def test_sold_out_variants_are_hidden(self, db, catalog):
        supplier_list = await seed_supplier_list(db)
        await catalog.import_products(supplier_list.id, SHIRT_ROWS[:1])
        medium = (await db.execute(
            select(ProductVariant.id).where(ProductVariant.size == "M")
        )).scalar_one()

        await catalog.update_variant_stock(medium, 0)
        unit = await catalog.load_unit(supplier_list.id, "OX-1")

        assert [v.size for v in unit.display_variants] == ["S"]
        assert sorted(unit.sizes) == ["M", "S"]

    async def test_invalid_variant_updates(self, catalog):
        missing = await catalog.update_variant_stock(uuid.uuid4(), 3)
        assert missing.error_code == ErrorCode.NOT_FOUND
