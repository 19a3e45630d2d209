"""Catalog API endpoints: supplier lists, product import, sellable units and pickup points."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from dropmarket.api.deps import DB, raise_for_result
from dropmarket.schemas.catalog import (
    SupplierListCreate,
    SupplierListUpdate,
    SupplierListResponse,
    ProductImportRequest,
    ProductImportResponse,
    VariantStockUpdate,
    CatalogVariant,
    CatalogResponse,
    SellableUnitResponse,
    PickupPointCreate,
    PickupPointResponse,
)
from dropmarket.services.catalog_service import CatalogService


router = APIRouter()


# ==================== Supplier Lists ====================

@router.get("/supplier-lists", response_model=List[SupplierListResponse])
async def list_supplier_lists(
    db: DB,
    supplier_id: Optional[uuid.UUID] = Query(None),
    include_archived: bool = Query(False),
):
    """Get supplier lists, newest first."""
    service = CatalogService(db)
    lists = await service.list_supplier_lists(supplier_id=supplier_id, include_archived=include_archived)
    return [SupplierListResponse.model_validate(sl) for sl in lists]


@router.post(
    "/supplier-lists",
    response_model=SupplierListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_supplier_list(data: SupplierListCreate, db: DB):
    """
    Create a supplier list.

    Discount and reservation bounds are validated: min < max for both.
    """
    service = CatalogService(db)
    result = await service.create_supplier_list(data)
    raise_for_result(result)
    return SupplierListResponse.model_validate(result.value)


@router.get("/supplier-lists/{list_id}", response_model=SupplierListResponse)
async def get_supplier_list(list_id: uuid.UUID, db: DB):
    service = CatalogService(db)
    supplier_list = await service.get_supplier_list(list_id)
    if not supplier_list:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Supplier list not found"
        )
    return SupplierListResponse.model_validate(supplier_list)


@router.put("/supplier-lists/{list_id}", response_model=SupplierListResponse)
async def update_supplier_list(list_id: uuid.UUID, data: SupplierListUpdate, db: DB):
    service = CatalogService(db)
    result = await service.update_supplier_list(list_id, data)
    raise_for_result(result)
    return SupplierListResponse.model_validate(result.value)


@router.post("/supplier-lists/{list_id}/activate", response_model=SupplierListResponse)
async def activate_supplier_list(list_id: uuid.UUID, db: DB):
    service = CatalogService(db)
    result = await service.set_supplier_list_active(list_id, True)
    raise_for_result(result)
    return SupplierListResponse.model_validate(result.value)


@router.post("/supplier-lists/{list_id}/deactivate", response_model=SupplierListResponse)
async def deactivate_supplier_list(list_id: uuid.UUID, db: DB):
    """Stop taking interest and new drops for this list. Running drops continue."""
    service = CatalogService(db)
    result = await service.set_supplier_list_active(list_id, False)
    raise_for_result(result)
    return SupplierListResponse.model_validate(result.value)


@router.delete("/supplier-lists/{list_id}")
async def remove_supplier_list(list_id: uuid.UUID, db: DB):
    """Delete an empty list, or archive one that already has products."""
    service = CatalogService(db)
    result = await service.remove_supplier_list(list_id)
    raise_for_result(result)
    return {"id": str(list_id), "result": result.message}


@router.post(
    "/supplier-lists/{list_id}/products",
    response_model=ProductImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_products(list_id: uuid.UUID, data: ProductImportRequest, db: DB):
    """Bulk import product rows (with optional variants) into a list."""
    service = CatalogService(db)
    result = await service.import_products(list_id, data.rows)
    raise_for_result(result)
    return ProductImportResponse(
        supplier_list_id=list_id,
        imported=len(result.value["products"]),
        variants=result.value["variants"],
    )


@router.get("/supplier-lists/{list_id}/catalog", response_model=CatalogResponse)
async def get_catalog(list_id: uuid.UUID, db: DB):
    """Aggregated sellable units of a list."""
    service = CatalogService(db)
    if not await service.get_supplier_list(list_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Supplier list not found"
        )
    feed = await service.get_catalog(list_id)
    return CatalogResponse.model_validate(feed)


@router.get("/supplier-lists/{list_id}/units/{unit_key}", response_model=SellableUnitResponse)
async def get_sellable_unit(list_id: uuid.UUID, unit_key: str, db: DB):
    service = CatalogService(db)
    unit = await service.load_unit(list_id, unit_key)
    if not unit:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )
    return SellableUnitResponse.model_validate(unit.to_dict())


@router.patch("/variants/{variant_id}", response_model=CatalogVariant)
async def update_variant_stock(variant_id: uuid.UUID, data: VariantStockUpdate, db: DB):
    """Restock or deactivate a variant."""
    service = CatalogService(db)
    result = await service.update_variant_stock(variant_id, data.stock, data.status)
    raise_for_result(result)
    return CatalogVariant.model_validate(result.value)


# ==================== Pickup Points ====================

@router.get("/pickup-points", response_model=List[PickupPointResponse])
async def list_pickup_points(db: DB, city: Optional[str] = Query(None)):
    service = CatalogService(db)
    points = await service.list_pickup_points(city=city)
    return [PickupPointResponse.model_validate(p) for p in points]


@router.post(
    "/pickup-points",
    response_model=PickupPointResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_pickup_point(data: PickupPointCreate, db: DB):
    service = CatalogService(db)
    pickup_point = await service.create_pickup_point(data)
    return PickupPointResponse.model_validate(pickup_point)


@router.get("/pickup-points/{pickup_point_id}", response_model=PickupPointResponse)
async def get_pickup_point(pickup_point_id: uuid.UUID, db: DB):
    service = CatalogService(db)
    pickup_point = await service.get_pickup_point(pickup_point_id)
    if not pickup_point:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pickup point not found"
        )
    return PickupPointResponse.model_validate(pickup_point)
