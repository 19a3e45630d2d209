from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from dropmarket.database import get_db
from dropmarket.core.results import ErrorKind, OperationResult
from dropmarket.services.payment_service import PaymentGateway, get_payment_gateway


logger = logging.getLogger(__name__)


# Error kind -> HTTP status used when a service returns a failed OperationResult
KIND_STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONTENTION: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.INFRASTRUCTURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _parse_user_id(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        logger.warning(f"Invalid X-User-Id header: {value}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )


async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """
    Identity of the calling user.

    Authentication happens upstream; the gateway forwards the verified
    user id in the X-User-Id header.
    """
    user_id = _parse_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return user_id


async def get_optional_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[uuid.UUID]:
    return _parse_user_id(x_user_id)


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def raise_for_result(result: OperationResult) -> None:
    """Translate a failed OperationResult into an HTTPException."""
    if result.success:
        return
    error = result.error
    raise HTTPException(
        status_code=KIND_STATUS_CODES.get(error.kind, status.HTTP_400_BAD_REQUEST),
        detail={
            "code": error.code.value,
            "message": error.message,
            "action": error.action.value,
        },
    )


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
OptionalUserId = Annotated[Optional[uuid.UUID], Depends(get_optional_user_id)]
Gateway = Annotated[PaymentGateway, Depends(get_gateway)]
