"""
Drop State Machine

This module is the single source of truth for drop status transitions.
Every status change goes through transition_drop(), which validates the
move, sets the audit timestamps and appends a DropStatusHistory row.

Statuses are the DropStatus members from dropmarket.models.drop. Functions
accept a member or its plain string value and always persist the value.
"""

from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from dropmarket.core.enum_utils import get_enum_value
from dropmarket.core.results import InvalidTransitionError
from dropmarket.db_types import utc_now
from dropmarket.models.drop import DropStatus, DropStatusHistory


# =============================================================================
# TRANSITION RULES
# =============================================================================

DROP_TRANSITIONS: Dict[str, List[str]] = {
    DropStatus.PENDING_APPROVAL.value: [
        DropStatus.APPROVED.value,        # Admin approval
        DropStatus.CANCELLED.value,       # Admin rejection
    ],
    DropStatus.APPROVED.value: [
        DropStatus.ACTIVE.value,          # start_time reached
        DropStatus.CANCELLED.value,       # Withdrawn before start
    ],
    DropStatus.ACTIVE.value: [
        DropStatus.INACTIVE.value,        # Paused
        DropStatus.COMPLETED.value,       # Ended at or above min value
        DropStatus.EXPIRED.value,         # Ended below min value
    ],
    DropStatus.INACTIVE.value: [
        DropStatus.ACTIVE.value,          # Resumed
        DropStatus.UNDERFUNDED.value,     # Ended while paused below min value
    ],
    DropStatus.COMPLETED.value: [],       # Terminal
    DropStatus.EXPIRED.value: [],         # Terminal
    DropStatus.CANCELLED.value: [],       # Terminal
    DropStatus.UNDERFUNDED.value: [],     # Terminal
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (DropStatus.PENDING_APPROVAL.value, DropStatus.APPROVED.value): "Approve",
    (DropStatus.PENDING_APPROVAL.value, DropStatus.CANCELLED.value): "Reject",
    (DropStatus.APPROVED.value, DropStatus.ACTIVE.value): "Activate",
    (DropStatus.APPROVED.value, DropStatus.CANCELLED.value): "Withdraw",
    (DropStatus.ACTIVE.value, DropStatus.INACTIVE.value): "Pause",
    (DropStatus.ACTIVE.value, DropStatus.COMPLETED.value): "Complete",
    (DropStatus.ACTIVE.value, DropStatus.EXPIRED.value): "Expire",
    (DropStatus.INACTIVE.value, DropStatus.ACTIVE.value): "Resume",
    (DropStatus.INACTIVE.value, DropStatus.UNDERFUNDED.value): "Close Underfunded",
}

TERMINAL_STATUSES = [s for s, allowed in DROP_TRANSITIONS.items() if not allowed]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return get_enum_value(new_status) in get_allowed_transitions(current_status)


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return DROP_TRANSITIONS.get(get_enum_value(current_status), [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    current_status, new_status = get_enum_value(current_status), get_enum_value(new_status)
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless the move is in DROP_TRANSITIONS."""
    if not can_transition(current_status, new_status):
        raise InvalidTransitionError(
            "Drop",
            get_enum_value(current_status),
            get_enum_value(new_status),
            get_allowed_transitions(current_status),
        )


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return get_enum_value(status) in TERMINAL_STATUSES


def accepts_bookings(status: str) -> bool:
    """Only active drops accept claims or change value/discount."""
    return get_enum_value(status) == DropStatus.ACTIVE.value


def is_due_for_activation(drop, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    return (
        drop.status == DropStatus.APPROVED.value
        and drop.start_time is not None
        and drop.start_time <= now
    )


def evaluate_drop_close(drop, min_value: Decimal, now: Optional[datetime] = None) -> Optional[str]:
    """
    Target status for a drop whose end_time has passed, or None.

    ACTIVE closes as COMPLETED at or above min_value, else EXPIRED.
    INACTIVE below min_value closes as UNDERFUNDED; at or above it stays
    paused until resumed.
    """
    now = now or utc_now()
    if drop.end_time is None or drop.end_time > now:
        return None

    reached = Decimal(str(drop.current_value or 0)) >= Decimal(str(min_value))
    if drop.status == DropStatus.ACTIVE.value:
        return DropStatus.COMPLETED.value if reached else DropStatus.EXPIRED.value
    if drop.status == DropStatus.INACTIVE.value and not reached:
        return DropStatus.UNDERFUNDED.value
    return None


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_drop(drop, new_status: str, user_id=None, notes: Optional[str] = None) -> DropStatusHistory:
    """
    Transition a drop to a new status.

    Validates the move, updates status, sets audit fields and returns the
    history row (not yet added to a session).

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    current_status = get_enum_value(drop.status)
    new_status = get_enum_value(new_status)
    validate_transition(current_status, new_status)

    drop.status = new_status
    now = utc_now()

    if new_status == DropStatus.APPROVED.value:
        drop.approved_by = user_id
        drop.approved_at = now

    elif new_status == DropStatus.ACTIVE.value:
        if drop.activated_at is None:
            drop.activated_at = now

    elif new_status == DropStatus.INACTIVE.value:
        drop.deactivated_at = now
        drop.deactivated_by = user_id

    elif new_status in (DropStatus.COMPLETED.value, DropStatus.EXPIRED.value, DropStatus.UNDERFUNDED.value):
        drop.completed_at = now

    if new_status == DropStatus.UNDERFUNDED.value:
        drop.underfunded_notified_at = now

    return DropStatusHistory(
        drop_id=drop.id,
        from_status=current_status,
        to_status=new_status,
        changed_by=user_id,
        notes=notes or get_transition_action(current_status, new_status),
    )
