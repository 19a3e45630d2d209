"""
In-process change feed.

Services publish row changes after their transaction commits; subscribers
(catalog cache invalidation, realtime bridges) react to them. Delivery is
at-least-once from the subscriber's point of view, so handlers must tolerate
duplicates. A failing handler is logged and never affects the publisher.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowChange:
    table: str
    row_id: Any
    event: str = "UPDATE"  # INSERT, UPDATE, DELETE
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


Handler = Callable[[RowChange], Awaitable[None]]


class ChangeFeed:
    """Table-scoped publish/subscribe."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, table: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that removes it."""
        self._handlers[table].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[table]:
                self._handlers[table].remove(handler)

        return unsubscribe

    async def publish(self, change: RowChange) -> int:
        """Deliver a change to every subscriber of its table. Returns deliveries."""
        delivered = 0
        for handler in list(self._handlers.get(change.table, [])):
            try:
                await handler(change)
                delivered += 1
            except Exception as e:
                logger.error(f"Change handler failed for {change.table}:{change.row_id}: {e}")
        return delivered

    async def publish_many(self, changes: List[RowChange]) -> int:
        delivered = 0
        for change in changes:
            delivered += await self.publish(change)
        return delivered

    def clear(self) -> None:
        self._handlers.clear()


_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Get the change feed singleton."""
    global _feed
    if _feed is None:
        _feed = ChangeFeed()
    return _feed
