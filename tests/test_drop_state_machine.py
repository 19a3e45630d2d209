"""Drop transitions, close evaluation and audit fields."""
import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from dropmarket.core.results import InvalidTransitionError
from dropmarket.db_types import utc_now
from dropmarket.models.drop import DropStatus
from dropmarket.services.drop_state_machine import (
    DROP_TRANSITIONS,
    TERMINAL_STATUSES,
    accepts_bookings,
    can_transition,
    evaluate_drop_close,
    is_due_for_activation,
    is_terminal,
    transition_drop,
)


def make_drop(status, current_value="0", ends_in=timedelta(hours=-1), starts_in=timedelta(hours=-1)):
    now = utc_now()
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        current_value=Decimal(current_value),
        start_time=now + starts_in,
        end_time=now + ends_in,
        approved_by=None,
        approved_at=None,
        activated_at=None,
        deactivated_at=None,
        deactivated_by=None,
        completed_at=None,
        underfunded_notified_at=None,
    )


def test_terminal_statuses():
    assert set(TERMINAL_STATUSES) == {
        DropStatus.COMPLETED.value, DropStatus.EXPIRED.value,
        DropStatus.CANCELLED.value, DropStatus.UNDERFUNDED.value,
    }
    for status in TERMINAL_STATUSES:
        assert is_terminal(status)
        assert DROP_TRANSITIONS[status] == []


@pytest.mark.parametrize(
    "current, new",
    [
        (DropStatus.PENDING_APPROVAL, DropStatus.ACTIVE),
        (DropStatus.APPROVED, DropStatus.COMPLETED),
        (DropStatus.INACTIVE, DropStatus.COMPLETED),
        (DropStatus.COMPLETED, DropStatus.ACTIVE),
        (DropStatus.EXPIRED, DropStatus.ACTIVE),
    ],
)
def test_rejected_transitions(current, new):
    assert not can_transition(current, new)
    with pytest.raises(InvalidTransitionError):
        transition_drop(make_drop(current), new)


def test_terminal_error_message():
    with pytest.raises(InvalidTransitionError, match="terminal state"):
        transition_drop(make_drop(DropStatus.CANCELLED), DropStatus.ACTIVE)


def test_only_active_drops_accept_bookings():
    assert accepts_bookings(DropStatus.ACTIVE)
    for status in DropStatus:
        if status != DropStatus.ACTIVE:
            assert not accepts_bookings(status)


class TestTransitionDrop:
    def test_enum_members_are_stored_as_plain_values(self):
        drop = make_drop(DropStatus.ACTIVE)

        history = transition_drop(drop, DropStatus.INACTIVE)

        assert type(drop.status) is str
        assert drop.status == "INACTIVE"
        assert (type(history.from_status), type(history.to_status)) == (str, str)
        assert history.notes == "Pause"

    def test_approve_records_approver(self):
        drop = make_drop(DropStatus.PENDING_APPROVAL)
        admin = uuid.uuid4()

        history = transition_drop(drop, DropStatus.APPROVED, user_id=admin)

        assert drop.status == DropStatus.APPROVED
        assert drop.approved_by == admin
        assert drop.approved_at is not None
        assert history.from_status == DropStatus.PENDING_APPROVAL
        assert history.to_status == DropStatus.APPROVED
        assert history.notes == "Approve"

    def test_resume_keeps_first_activation_time(self):
        drop = make_drop(DropStatus.ACTIVE)
        first_activation = utc_now() - timedelta(days=1)
        drop.activated_at = first_activation

        transition_drop(drop, DropStatus.INACTIVE)
        assert drop.deactivated_at is not None
        transition_drop(drop, DropStatus.ACTIVE, notes="back in stock")

        assert drop.activated_at == first_activation

    def test_underfunded_marks_notification_time(self):
        drop = make_drop(DropStatus.INACTIVE)

        transition_drop(drop, DropStatus.UNDERFUNDED)

        assert drop.completed_at is not None
        assert drop.underfunded_notified_at is not None


class TestEvaluateDropClose:
    def test_not_ended(self):
        drop = make_drop(DropStatus.ACTIVE, current_value="9999", ends_in=timedelta(hours=1))
        assert evaluate_drop_close(drop, Decimal("5000")) is None

    def test_active_at_minimum_completes(self):
        drop = make_drop(DropStatus.ACTIVE, current_value="5000")
        assert evaluate_drop_close(drop, Decimal("5000")) == DropStatus.COMPLETED

    def test_active_below_minimum_expires(self):
        drop = make_drop(DropStatus.ACTIVE, current_value="4999.99")
        assert evaluate_drop_close(drop, Decimal("5000")) == DropStatus.EXPIRED

    def test_paused_below_minimum_is_underfunded(self):
        drop = make_drop(DropStatus.INACTIVE, current_value="100")
        assert evaluate_drop_close(drop, Decimal("5000")) == DropStatus.UNDERFUNDED

    def test_paused_above_minimum_stays_paused(self):
        drop = make_drop(DropStatus.INACTIVE, current_value="8000")
        assert evaluate_drop_close(drop, Decimal("5000")) is None

    def test_approved_drop_is_not_closed(self):
        drop = make_drop(DropStatus.APPROVED)
        assert evaluate_drop_close(drop, Decimal("5000")) is None


def test_due_for_activation():
    assert is_due_for_activation(make_drop(DropStatus.APPROVED))
    assert not is_due_for_activation(make_drop(DropStatus.APPROVED, starts_in=timedelta(hours=2)))
    assert not is_due_for_activation(make_drop(DropStatus.PENDING_APPROVAL))
