"""Product synchronization tasks.

Each task is a thin adapter: build the runtime, run one step of the
engine, dispatch whatever it returns. Task-level retries are disabled;
the engine decides on its own retries and schedules them.
"""

import asyncio

import structlog
from celery import shared_task

from catalog_sync.exceptions import SyncConflictError
from catalog_sync.services.steps import describe_step
from shared.constants import (
    CLEANUP_HISTORY_TASK,
    PROCESS_STOCK_PHASE_TASK,
    PROCESS_TICK_TASK,
    START_SCHEDULED_SYNC_TASK,
)
from sync_worker.runtime import worker_runtime

logger = structlog.get_logger()


async def _process_tick(page: int, session_id: str, since: str, profile_id: int | None, offset: int) -> dict:
    async with worker_runtime() as runtime:
        step = await runtime.processor.process_tick(page, session_id, since, profile_id, offset)
        runtime.dispatcher.dispatch(step)
        return describe_step(step)


async def _process_stock_phase(session_id: str, profile_id: int | None) -> dict:
    async with worker_runtime() as runtime:
        step = await runtime.processor.process_stock_phase(session_id, profile_id)
        runtime.dispatcher.dispatch(step)
        return describe_step(step)


async def _start_scheduled_sync(profile_id: int | None) -> dict:
    async with worker_runtime() as runtime:
        try:
            session_id = await runtime.launcher.start_incremental(profile_id=profile_id)
        except SyncConflictError as e:
            logger.info("Scheduled sync skipped", profile_id=profile_id, reason=str(e))
            return {"started": False, "session_id": e.session_id}
        return {"started": True, "session_id": session_id}


async def _cleanup_sync_history() -> dict:
    async with worker_runtime() as runtime:
        deleted = await runtime.ledger.cleanup(runtime.settings.sync_history_keep)
        return {"deleted": deleted}


@shared_task(name=PROCESS_TICK_TASK, bind=True, max_retries=0)
def process_tick(
    self,
    page: int,
    session_id: str,
    since: str = "",
    profile_id: int | None = None,
    offset: int = 0,
) -> dict:
    """Process one sub-batch of a sync session and schedule its successor."""
    try:
        return asyncio.run(_process_tick(page, session_id, since, profile_id, offset))
    except Exception as e:
        logger.error(
            "Sync tick crashed",
            session_id=session_id,
            profile_id=profile_id,
            page=page,
            offset=offset,
            error=str(e),
            exc_info=True,
        )
        return {"next": None, "error": str(e)}


@shared_task(name=PROCESS_STOCK_PHASE_TASK, bind=True, max_retries=0)
def process_stock_phase(self, session_id: str, profile_id: int | None = None) -> dict:
    """Reconcile stock and finalize the session."""
    try:
        return asyncio.run(_process_stock_phase(session_id, profile_id))
    except Exception as e:
        logger.error(
            "Stock phase crashed", session_id=session_id, profile_id=profile_id, error=str(e), exc_info=True
        )
        return {"next": None, "error": str(e)}


@shared_task(name=START_SCHEDULED_SYNC_TASK, bind=True, max_retries=0)
def start_scheduled_sync(self, profile_id: int | None = None) -> dict:
    """Launch an incremental sync from the beat schedule."""
    logger.info("Starting scheduled incremental sync", profile_id=profile_id)
    try:
        return asyncio.run(_start_scheduled_sync(profile_id))
    except Exception as e:
        logger.error("Scheduled sync failed to start", profile_id=profile_id, error=str(e), exc_info=True)
        return {"started": False, "error": str(e)}


@shared_task(name=CLEANUP_HISTORY_TASK, bind=True, max_retries=3, default_retry_delay=300)
def cleanup_sync_history(self) -> dict:
    """Trim the sync history ledger to the configured number of rows."""
    return asyncio.run(_cleanup_sync_history())
