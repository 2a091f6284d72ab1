"""Object graph wiring for the sync engine."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.config import Settings
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.repositories import ProductRepository, ProfileRepository
from catalog_sync.infrastructure.kv import KeyValueStore
from catalog_sync.services.batch_processor import SyncBatchProcessor
from catalog_sync.services.importer import ProductImporter
from catalog_sync.services.launcher import SyncLauncher
from catalog_sync.services.lease import SessionLease
from catalog_sync.services.lookup_cache import ProductLookupCache
from catalog_sync.services.steps import InlineTaskQueue, NextStep, StepDispatcher, TaskQueue, describe_step
from catalog_sync.services.stock import StockSynchronizer
from catalog_sync.services.sync_history import SyncHistoryLedger
from catalog_sync.services.sync_state import SessionStateStore, SessionStatus
from shared.constants import PROCESS_STOCK_PHASE_TASK, PROCESS_TICK_TASK

logger = structlog.get_logger()


@dataclass
class SyncRuntime:
    settings: Settings
    state: SessionStateStore
    lease: SessionLease
    ledger: SyncHistoryLedger
    profiles: ProfileRepository
    products: ProductRepository
    dispatcher: StepDispatcher
    processor: SyncBatchProcessor
    launcher: SyncLauncher


def build_runtime(
    settings: Settings,
    store: KeyValueStore,
    session_factory: async_sessionmaker[AsyncSession],
    api: CatalogApiClient,
    queue: TaskQueue,
    on_failure: Callable[[SessionStatus], None] | None = None,
) -> SyncRuntime:
    state = SessionStateStore(store, flag_ttl=settings.sync_lease_timeout)
    lease = SessionLease(store, settings.sync_lease_timeout)
    ledger = SyncHistoryLedger(session_factory)
    profiles = ProfileRepository(session_factory, settings)
    products = ProductRepository(session_factory)
    dispatcher = StepDispatcher(queue)

    processor = SyncBatchProcessor(
        settings=settings,
        state=state,
        lease=lease,
        ledger=ledger,
        profiles=profiles,
        api=api,
        importer=ProductImporter(api, products, settings),
        stock=StockSynchronizer(api, products, settings),
        cache_factory=lambda: ProductLookupCache(products),
        on_failure=on_failure,
    )
    launcher = SyncLauncher(settings, state, lease, ledger, dispatcher)

    return SyncRuntime(
        settings=settings,
        state=state,
        lease=lease,
        ledger=ledger,
        profiles=profiles,
        products=products,
        dispatcher=dispatcher,
        processor=processor,
        launcher=launcher,
    )


async def run_inline(runtime: SyncRuntime, queue: InlineTaskQueue, honor_delays: bool = False) -> NextStep | None:
    """Drain an inline queue in this process until the session chain ends.

    Returns the last step produced, normally a ``Finalize``.
    """
    step: NextStep | None = None
    while (task := queue.pop()) is not None:
        if honor_delays and task.delay > 0:
            await asyncio.sleep(task.delay)

        if task.task_name == PROCESS_TICK_TASK:
            step = await runtime.processor.process_tick(**task.kwargs)
        elif task.task_name == PROCESS_STOCK_PHASE_TASK:
            step = await runtime.processor.process_stock_phase(**task.kwargs)
        else:
            logger.warning("Ignoring unknown inline task", task=task.task_name)
            continue

        logger.debug("Inline step finished", task=task.task_name, **describe_step(step))
        runtime.dispatcher.dispatch(step)
    return step
