"""Retry policy and the change feed."""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from dropmarket.core.events import ChangeFeed, RowChange
from dropmarket.core.retry import RetryExhaustedError, RetryPolicy, is_transient_write_conflict


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def locked():
    return OperationalError("UPDATE products", {}, Exception("database is locked"))


def test_classifier():
    assert is_transient_write_conflict(locked())
    assert is_transient_write_conflict(OperationalError("x", {}, FakePgError("42501")))
    assert not is_transient_write_conflict(IntegrityError("x", {}, FakePgError("23505")))
    assert not is_transient_write_conflict(ValueError("nope"))


async def test_retries_transient_then_succeeds():
    calls = []
    retried = []

    async def operation():
        calls.append(1)
        if len(calls) < 3:
            raise locked()
        return "done"

    async def on_retry(exc):
        retried.append(exc)

    result = await RetryPolicy(max_retries=2, backoff_seconds=0).run(operation, on_retry=on_retry)

    assert result == "done"
    assert len(calls) == 3
    assert len(retried) == 2


async def test_gives_up_after_max_retries():
    calls = []

    async def operation():
        calls.append(1)
        raise locked()

    with pytest.raises(RetryExhaustedError) as exc_info:
        await RetryPolicy(max_retries=1, backoff_seconds=0).run(operation)

    assert len(calls) == 2
    assert exc_info.value.attempts == 2


async def test_non_transient_error_is_not_retried():
    calls = []

    async def operation():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await RetryPolicy(max_retries=3, backoff_seconds=0).run(operation)
    assert len(calls) == 1


def test_linear_backoff():
    policy = RetryPolicy(backoff_seconds=0.5)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 1.5]


async def test_change_feed_isolates_failing_handlers():
    feed = ChangeFeed()
    seen = []

    async def broken(change):
        raise RuntimeError("boom")

    async def recorder(change):
        seen.append(change.row_id)

    feed.subscribe("products", broken)
    unsubscribe = feed.subscribe("products", recorder)

    delivered = await feed.publish(RowChange("products", "p1"))
    assert delivered == 1
    assert seen == ["p1"]

    unsubscribe()
    assert await feed.publish(RowChange("products", "p2")) == 0
    assert await feed.publish(RowChange("drops", "d1")) == 0
