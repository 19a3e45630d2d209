"""Interest API endpoints."""
from typing import List
import uuid

from fastapi import APIRouter, status

from dropmarket.api.deps import DB, CurrentUserId, raise_for_result
from dropmarket.schemas.drop import InterestCreate, InterestResponse, InterestRegistration
from dropmarket.services.drop_service import DropService


router = APIRouter()


@router.get("", response_model=List[InterestResponse])
async def list_my_interests(db: DB, user_id: CurrentUserId):
    service = DropService(db)
    interests = await service.list_interests(user_id)
    return [InterestResponse.model_validate(i) for i in interests]


@router.post(
    "",
    response_model=InterestRegistration,
    status_code=status.HTTP_201_CREATED,
)
async def register_interest(data: InterestCreate, db: DB, user_id: CurrentUserId):
    """
    Register interest in a product at a pickup point.

    Registering twice is a no-op. When the summed interest for the list
    and pickup point reaches the list's minimum, a drop is proposed.
    """
    service = DropService(db)
    result = await service.register_interest(user_id, data.product_id, data.pickup_point_id)
    raise_for_result(result)

    registration = result.value
    return InterestRegistration(
        interest=InterestResponse.model_validate(registration.interest),
        interest_value=registration.interest_value,
        drop_id=registration.drop.id if registration.drop else None,
        drop_created=registration.drop_created,
    )


@router.delete("/{interest_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_interest(interest_id: uuid.UUID, db: DB, user_id: CurrentUserId):
    service = DropService(db)
    result = await service.remove_interest(user_id, interest_id)
    raise_for_result(result)
