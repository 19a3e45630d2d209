"""
Enum Utilities for VARCHAR-based Status Fields

• Database: VARCHAR(50) - NOT a native ENUM type
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• Case: All enum values stored in UPPERCASE

Use normalize_to_uppercase() so query parameters such as ``?status=active``
are accepted case-insensitively.
"""

from enum import Enum
from typing import Any, Type, Set


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Invalid values are returned as-is so the caller can reject them.
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.upper()
        if upper_v in valid_values:
            return upper_v
    return value


def get_enum_value(value: Any) -> Any:
    """
    String value of an enum member or a plain string.

    Status columns hold strings while callers often pass enum members.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)
