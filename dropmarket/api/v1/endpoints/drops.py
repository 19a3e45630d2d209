"""Drop API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from dropmarket.api.deps import DB, CurrentUserId, Gateway, raise_for_result
from dropmarket.models.drop import DropStatus
from dropmarket.schemas.base import parse_status_filter
from dropmarket.schemas.drop import (
    DropCreate,
    DropApproval,
    DropAction,
    DropResponse,
    DropDetail,
    DropListResponse,
    DropCloseResponse,
    LifecycleRunResponse,
)
from dropmarket.services.drop_service import DropService


router = APIRouter()


@router.get("", response_model=DropListResponse)
async def list_drops(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    pickup_point_id: Optional[uuid.UUID] = Query(None),
    supplier_list_id: Optional[uuid.UUID] = Query(None),
):
    """Get paginated list of drops."""
    try:
        drop_status = parse_status_filter(status_filter, DropStatus)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    service = DropService(db)
    drops, total = await service.list_drops(
        status=drop_status,
        pickup_point_id=pickup_point_id,
        supplier_list_id=supplier_list_id,
        page=page,
        size=size,
    )
    return DropListResponse(
        items=[DropResponse.model_validate(d) for d in drops],
        total=total,
        page=page,
        size=size,
        pages=service.pages(total, size),
    )


@router.post(
    "",
    response_model=DropResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_drop(data: DropCreate, db: DB, admin_id: CurrentUserId):
    """Create an APPROVED drop directly, bypassing the interest threshold."""
    service = DropService(db)
    result = await service.create_drop(
        data.supplier_list_id,
        data.pickup_point_id,
        admin_id=admin_id,
        start_time=data.start_time,
        name=data.name,
    )
    raise_for_result(result)
    return DropResponse.model_validate(result.value)


@router.post("/lifecycle/run", response_model=LifecycleRunResponse)
async def run_lifecycle(db: DB, gateway: Gateway):
    """Activate due drops, close ended ones and finish pending settlements now."""
    service = DropService(db, gateway=gateway)
    run = await service.run_lifecycle()
    return LifecycleRunResponse(
        activated=run.activated,
        closed=[DropCloseResponse.model_validate(s) for s in run.closed],
        settled=[DropCloseResponse.model_validate(s) for s in run.settled],
    )


@router.get("/{drop_id}", response_model=DropDetail)
async def get_drop(drop_id: uuid.UUID, db: DB):
    """Get drop with its status history."""
    service = DropService(db)
    drop = await service.get_drop_detail(drop_id)
    if not drop:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Drop not found"
        )
    return DropDetail.model_validate(drop)


@router.post("/{drop_id}/approve", response_model=DropResponse)
async def approve_drop(drop_id: uuid.UUID, data: DropApproval, db: DB, admin_id: CurrentUserId):
    """
    Approve a proposed drop.
    The drop becomes ACTIVE once its start time passes.
    """
    service = DropService(db)
    result = await service.approve_drop(drop_id, admin_id=admin_id, start_time=data.start_time)
    raise_for_result(result)
    return DropResponse.model_validate(result.value)


@router.post("/{drop_id}/reject", response_model=DropCloseResponse)
async def reject_drop(drop_id: uuid.UUID, data: DropAction, db: DB, admin_id: CurrentUserId, gateway: Gateway):
    service = DropService(db, gateway=gateway)
    result = await service.reject_drop(drop_id, admin_id=admin_id, notes=data.notes)
    raise_for_result(result)
    return DropCloseResponse.model_validate(result.value)


@router.post("/{drop_id}/withdraw", response_model=DropCloseResponse)
async def withdraw_drop(drop_id: uuid.UUID, data: DropAction, db: DB, admin_id: CurrentUserId, gateway: Gateway):
    """Cancel a drop; every booking is released."""
    service = DropService(db, gateway=gateway)
    result = await service.withdraw_drop(drop_id, admin_id=admin_id, notes=data.notes)
    raise_for_result(result)
    return DropCloseResponse.model_validate(result.value)


@router.post("/{drop_id}/pause", response_model=DropResponse)
async def pause_drop(drop_id: uuid.UUID, data: DropAction, db: DB, admin_id: CurrentUserId):
    service = DropService(db)
    result = await service.pause_drop(drop_id, admin_id=admin_id, notes=data.notes)
    raise_for_result(result)
    return DropResponse.model_validate(result.value)


@router.post("/{drop_id}/resume", response_model=DropResponse)
async def resume_drop(drop_id: uuid.UUID, data: DropAction, db: DB, admin_id: CurrentUserId):
    service = DropService(db)
    result = await service.resume_drop(drop_id, admin_id=admin_id, notes=data.notes)
    raise_for_result(result)
    return DropResponse.model_validate(result.value)


@router.post("/{drop_id}/recalculate", response_model=DropResponse)
async def recalculate_drop(drop_id: uuid.UUID, db: DB):
    """Recompute committed value and discount from live bookings."""
    service = DropService(db)
    result = await service.recalculate_drop(drop_id)
    raise_for_result(result)
    return DropResponse.model_validate(result.value)
