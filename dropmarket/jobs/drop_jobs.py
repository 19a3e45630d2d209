"""
Drop Lifecycle Jobs

Run by the scheduler every DROP_LIFECYCLE_INTERVAL_MINUTES. A failed run is
logged and retried on the next tick; the lifecycle evaluation is idempotent.
"""

import logging
from datetime import datetime, timezone

from dropmarket.database import get_db_session
from dropmarket.services.drop_service import DropService

logger = logging.getLogger(__name__)


async def activate_scheduled_drops() -> int:
    """Activate APPROVED drops whose start_time has passed."""
    start_time = datetime.now(timezone.utc)
    try:
        async with get_db_session() as session:
            activated = await DropService(session).activate_due_drops()
    except Exception as e:
        logger.error(f"Drop activation job failed: {e}")
        return 0

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    if activated:
        logger.info(f"Activated {activated} drop(s) in {duration:.2f}s")
    return activated


async def close_ended_drops() -> int:
    """Close ACTIVE/INACTIVE drops whose end_time has passed, then resume unfinished settlements."""
    start_time = datetime.now(timezone.utc)
    try:
        async with get_db_session() as session:
            service = DropService(session)
            summaries = await service.close_ended_drops()
            settled = await service.settle_completed_drops()
    except Exception as e:
        logger.error(f"Drop closing job failed: {e}")
        return 0

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    for summary in summaries:
        logger.info(
            f"Closed drop {summary.drop_id} as {summary.status}: "
            f"captured={summary.captured} released={summary.released} failed={summary.failed}"
        )
    for summary in settled:
        logger.info(
            f"Resumed settlement of drop {summary.drop_id}: "
            f"captured={summary.captured} failed={summary.failed} order={summary.order_id}"
        )
    if summaries:
        logger.info(f"Closed {len(summaries)} drop(s) in {duration:.2f}s")
    return len(summaries)
