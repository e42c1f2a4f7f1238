"""
Background matching tasks.

Matching triggered by trip creation and by parcel and trip edits runs after the response
has been sent, on FastAPI's BackgroundTasks, with a session of its own. A
failed run never reaches the client: it is logged and parked in the dead
letter queue, from where an admin can re-dispatch it.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from parcelmatch.app.core.config import settings
from parcelmatch.app.core.matching_config import MatchingConfig, DEFAULT_MATCHING_CONFIG
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.models.dlq import DeadLetterQueue, DLQStatus
from parcelmatch.app.services.matching_orchestrator import MatchingOrchestrator

logger = logging.getLogger("parcelmatch.matching.tasks")

TASK_MATCH_PARCEL = "match_parcel"
TASK_MATCH_TRIP = "match_trip"


async def _match_parcel(orchestrator: MatchingOrchestrator, payload: Dict[str, Any]) -> Dict:
    return await orchestrator.on_parcel_created_or_updated(
        payload["parcel_id"], edited=payload.get("edited", False)
    )


async def _match_trip(orchestrator: MatchingOrchestrator, payload: Dict[str, Any]) -> Dict:
    if payload.get("edited", False):
        return await orchestrator.on_trip_updated(payload["trip_id"])
    return await orchestrator.on_trip_created(payload["trip_id"])


TASK_HANDLERS: Dict[str, Callable[[MatchingOrchestrator, Dict[str, Any]], Awaitable[Dict]]] = {
    TASK_MATCH_PARCEL: _match_parcel,
    TASK_MATCH_TRIP: _match_trip,
}


async def _record_failure(
    session_factory: async_sessionmaker,
    task_name: str,
    payload: Dict[str, Any],
    error: Exception,
    dlq_id: Optional[int],
) -> Optional[int]:
    """Write the failure to the DLQ; a retried item is updated in place."""
    message = f"{type(error).__name__}: {error}"
    try:
        async with session_factory() as db:
            item = None
            if dlq_id is not None:
                result = await db.execute(select(DeadLetterQueue).where(DeadLetterQueue.id == dlq_id))
                item = result.scalar_one_or_none()

            if item is None:
                item = DeadLetterQueue(task_name=task_name, payload=payload, error_message=message)
                db.add(item)
            else:
                item.error_message = message

            item.status = DLQStatus.FAILED
            await db.commit()
            return item.id
    except Exception:
        logger.exception("Could not record failed task %s in the dead letter queue", task_name)
        return None


async def _mark_processed(session_factory: async_sessionmaker, dlq_id: int) -> None:
    async with session_factory() as db:
        item = await db.get(DeadLetterQueue, dlq_id)
        if item is not None:
            item.status = DLQStatus.PROCESSED
            item.last_retry_at = utcnow()
            await db.commit()


async def run_matching_task(
    task_name: str,
    payload: Dict[str, Any],
    session_factory: async_sessionmaker,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    dlq_id: Optional[int] = None,
) -> bool:
    """
    Run one matching task to completion.

    Returns:
        True on success, False if the run failed and was dead-lettered
    """
    handler = TASK_HANDLERS.get(task_name)
    if handler is None:
        logger.error("Unknown matching task %s", task_name)
        return False

    try:
        async with session_factory() as db:
            orchestrator = MatchingOrchestrator(
                db,
                config,
                read_attempts=settings.store_read_retries,
                read_retry_delay=settings.store_read_retry_delay_seconds,
            )
            result = await handler(orchestrator, payload)
    except Exception as exc:
        logger.exception("Background task %s failed for payload %s", task_name, payload)
        await _record_failure(session_factory, task_name, payload, exc, dlq_id)
        return False

    logger.info("Background task %s done: %s", task_name, result)
    if dlq_id is not None:
        await _mark_processed(session_factory, dlq_id)
    return True


class MatchingTaskDispatcher:
    """Queues matching tasks on the request's BackgroundTasks."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        session_factory: async_sessionmaker,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    ):
        self.background_tasks = background_tasks
        self.session_factory = session_factory
        self.config = config

    def submit(self, task_name: str, payload: Dict[str, Any], dlq_id: Optional[int] = None) -> None:
        if task_name not in TASK_HANDLERS:
            raise ValueError(f"Unknown matching task: {task_name}")
        self.background_tasks.add_task(
            run_matching_task, task_name, payload, self.session_factory, self.config, dlq_id
        )
        logger.debug("Queued background task %s with payload %s", task_name, payload)

    def match_parcel(self, parcel_id: int, edited: bool = False) -> None:
        self.submit(TASK_MATCH_PARCEL, {"parcel_id": parcel_id, "edited": edited})

    def match_trip(self, trip_id: int, edited: bool = False) -> None:
        self.submit(TASK_MATCH_TRIP, {"trip_id": trip_id, "edited": edited})
