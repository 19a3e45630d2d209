"""
Operation results for the booking, drop and fulfillment services.

Expected failures (out of stock, incomplete selection, a drop that changed
state underneath the caller) are returned as values, never raised. Each error
carries the action the client should offer the user.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Error taxonomy."""
    VALIDATION = "VALIDATION"
    CONTENTION = "CONTENTION"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INFRASTRUCTURE = "INFRASTRUCTURE"


class UserAction(str, Enum):
    """What the client should ask the user to do next."""
    RESELECT = "RESELECT"
    REFRESH = "REFRESH"
    RETRY_LATER = "RETRY_LATER"
    NONE = "NONE"


class ErrorCode(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    SELECTION_INCOMPLETE = "SELECTION_INCOMPLETE"
    SELECTION_UNAVAILABLE = "SELECTION_UNAVAILABLE"
    DROP_NOT_ACTIVE = "DROP_NOT_ACTIVE"
    DROP_NOT_COMPLETED = "DROP_NOT_COMPLETED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    TIMEOUT = "TIMEOUT"
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"


# code -> (kind, action)
ERROR_CLASSIFICATION = {
    ErrorCode.OUT_OF_STOCK: (ErrorKind.CONTENTION, UserAction.REFRESH),
    ErrorCode.SELECTION_INCOMPLETE: (ErrorKind.VALIDATION, UserAction.RESELECT),
    ErrorCode.SELECTION_UNAVAILABLE: (ErrorKind.VALIDATION, UserAction.RESELECT),
    ErrorCode.DROP_NOT_ACTIVE: (ErrorKind.CONTENTION, UserAction.REFRESH),
    ErrorCode.DROP_NOT_COMPLETED: (ErrorKind.INVALID_TRANSITION, UserAction.NONE),
    ErrorCode.INVALID_CONFIGURATION: (ErrorKind.VALIDATION, UserAction.NONE),
    ErrorCode.INVALID_INPUT: (ErrorKind.VALIDATION, UserAction.NONE),
    ErrorCode.INVALID_TRANSITION: (ErrorKind.INVALID_TRANSITION, UserAction.REFRESH),
    ErrorCode.NOT_FOUND: (ErrorKind.NOT_FOUND, UserAction.REFRESH),
    ErrorCode.PAYMENT_FAILED: (ErrorKind.INFRASTRUCTURE, UserAction.RETRY_LATER),
    ErrorCode.TIMEOUT: (ErrorKind.INFRASTRUCTURE, UserAction.RETRY_LATER),
    ErrorCode.INFRASTRUCTURE_ERROR: (ErrorKind.INFRASTRUCTURE, UserAction.RETRY_LATER),
}


@dataclass
class OperationError:
    """Typed failure of a service operation."""
    code: ErrorCode
    message: str
    kind: ErrorKind
    action: UserAction
    cause: Optional[BaseException] = None

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "kind": self.kind.value,
            "action": self.action.value,
        }


@dataclass
class OperationResult:
    """Result of a service operation: either ``value`` or ``error`` is set."""
    success: bool
    value: Any = None
    error: Optional[OperationError] = None
    message: str = ""

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> "OperationResult":
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(
        cls,
        code: ErrorCode,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> "OperationResult":
        kind, action = ERROR_CLASSIFICATION[code]
        return cls(
            success=False,
            error=OperationError(code=code, message=message, kind=kind, action=action, cause=cause),
            message=message,
        )

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return self.error.code if self.error else None


class InvalidTransitionError(ValueError):
    """Raised by the state machines for a transition not in their tables."""

    def __init__(self, entity: str, current_status: str, new_status: str, allowed: list):
        self.entity = entity
        self.current_status = current_status
        self.new_status = new_status
        self.allowed = allowed
        if not allowed:
            message = f"{entity} in '{current_status}' status cannot be modified. This is a terminal state."
        else:
            message = (
                f"Cannot change {entity} from '{current_status}' to '{new_status}'. "
                f"Allowed transitions: {', '.join(allowed)}"
            )
        super().__init__(message)


class InvalidConfigurationError(ValueError):
    """Raised for a rejected supplier list / discount configuration."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)
