"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM rows inherit from
BaseResponseSchema. Status query parameters go through parse_status_filter
validation so ``?status=active`` and ``?status=ACTIVE`` both work.
"""

from typing import Optional, Type
from enum import Enum

from pydantic import BaseModel, ConfigDict

from dropmarket.core.enum_utils import normalize_to_uppercase, enum_values


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class DropResponse(BaseResponseSchema):
            id: UUID
            status: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are ignored."""
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """Base class for update/patch schemas."""
    model_config = ConfigDict(
        extra='ignore',
    )


def parse_status_filter(value: Optional[str], enum_class: Type[Enum]) -> Optional[str]:
    """Normalize a status query parameter; raises ValueError when unknown."""
    if value is None:
        return None
    valid = set(enum_values(enum_class))
    normalized = normalize_to_uppercase(value, valid)
    if normalized not in valid:
        raise ValueError(f"Invalid status '{value}'. Expected one of: {', '.join(sorted(valid))}")
    return normalized


