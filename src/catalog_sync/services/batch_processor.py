"""Batch tick processor: the sync session state machine.

Each call to ``process_tick`` is one independently scheduled unit of work.
It loads the session record, does a bounded slice of work, persists
progress and returns the single next step. Nothing is kept in memory
between ticks.

States::

    running -> running | paused | stopped | failed | syncing_stock
    syncing_stock -> completed
    paused -> running  (only through SyncLauncher.resume)
"""

import math
import time
from collections.abc import Callable
from typing import Any

import structlog

from catalog_sync.config import Settings
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.repositories import ProfileConfig, ProfileRepository
from catalog_sync.services.importer import ProductImporter
from catalog_sync.services.lease import SessionLease
from catalog_sync.services.lookup_cache import ProductLookupCache
from catalog_sync.services.steps import Finalize, NextStep, NoOp, ScheduleStockPhase, ScheduleTick
from catalog_sync.services.stock import StockSynchronizer
from catalog_sync.services.sync_history import SyncHistoryLedger, format_duration
from catalog_sync.services.sync_state import SessionState, SessionStateStore, SessionStatus, SyncType

logger = structlog.get_logger()


def log_failure(status: SessionStatus) -> None:
    """Default failure notification."""
    logger.error(
        "Sync session failed",
        session_id=status.id,
        profile_id=status.profile_id,
        processed=status.processed,
        error=status.error,
    )


class SyncBatchProcessor:
    def __init__(
        self,
        settings: Settings,
        state: SessionStateStore,
        lease: SessionLease,
        ledger: SyncHistoryLedger,
        profiles: ProfileRepository,
        api: CatalogApiClient,
        importer: ProductImporter,
        stock: StockSynchronizer,
        cache_factory: Callable[[], ProductLookupCache],
        on_failure: Callable[[SessionStatus], None] | None = None,
    ):
        self.settings = settings
        self.state = state
        self.lease = lease
        self.ledger = ledger
        self.profiles = profiles
        self.api = api
        self.importer = importer
        self.stock = stock
        self.cache_factory = cache_factory
        self.on_failure = on_failure or log_failure

    # =========================================================================
    # Product phase
    # =========================================================================

    async def process_tick(
        self,
        page: int,
        session_id: str,
        since: str = "",
        profile_id: int | None = None,
        offset: int = 0,
    ) -> NextStep:
        """Run one tick. Never raises; failures become the returned step."""
        log = logger.bind(session_id=session_id, profile_id=profile_id, page=page, offset=offset)

        try:
            status = await self.state.load(profile_id)
        except Exception as e:
            log.error("Could not load session status", error=str(e))
            return NoOp("status unavailable")

        if status is None or status.id != session_id:
            log.info("Dropping stale tick", current=status.id if status else None)
            return NoOp("stale")
        if status.status != SessionState.RUNNING:
            log.info("Dropping tick for inactive session", status=status.status.value)
            return NoOp(f"session {status.status.value}")
        if (page, offset) < (status.page, status.offset):
            log.info("Dropping duplicate tick", cursor_page=status.page, cursor_offset=status.offset)
            return NoOp("duplicate")

        try:
            return await self._run_tick(status, page, offset, since or status.since, log)
        except Exception as e:
            log.warning("Tick failed", error=str(e), exc_info=True)
            try:
                return await self._handle_failure(status, page, offset, since or status.since, str(e), log)
            except Exception as inner:
                log.error("Could not record tick failure", error=str(inner))
                return NoOp("failure handling failed")

    async def _run_tick(
        self, status: SessionStatus, page: int, offset: int, since: str, log: Any
    ) -> NextStep:
        profile = await self.profiles.get_config(status.profile_id)
        if profile is None:
            log.error("Profile not found for sync")
            return await self._fail(status, "Profile not found", log)

        if status.limit_reached:
            log.info("Record limit reached", limit=status.limit)
            return await self._begin_stock_phase(status, log)

        if await self.state.stop_requested(status.id):
            log.info("Sync stopped by request")
            return await self._stop(status, log)
        if await self.state.pause_requested(status.id):
            log.info("Sync paused by request")
            return await self._pause(status, log)

        if not status.history_created:
            await self.ledger.create(status.id, status.type.value, status.profile_id)
            status.history_created = True
            await self.state.save(status)
            log.info(self._start_message(status, profile))

        if page == 0 and offset == 0:
            try:
                await self.importer.sync_categories()
            except Exception as e:
                log.warning("Category sync failed, continuing with existing mapping", error=str(e))

        cache = self.cache_factory()
        await cache.warm()

        records = await self.api.fetch_page(page, self.settings.sync_page_size, self._filters(profile, since))
        if not records:
            log.info("Empty page, product phase finished", profile=profile.name)
            return await self._begin_stock_phase(status, log)

        if offset >= len(records):
            log.debug("Offset past end of page", page_length=len(records))
            return await self._next_page(status, page, since, log)

        batch = records[offset : offset + status.batch_size]
        if status.limit > 0 and status.processed + len(batch) > status.limit:
            batch = batch[: status.limit - status.processed]
            log.info("Truncating sub-batch to record limit", size=len(batch))

        result = await self.importer.transform_batch(batch, profile, cache)

        next_offset = offset + len(batch)
        status.processed += len(batch)
        status.created += result.created
        status.updated += result.updated
        status.failed += result.failed
        status.page = page
        status.offset = next_offset
        status.consecutive_failures = 0
        status.touch()
        await self.state.save(status)
        await self.lease.extend(status.profile_id, status.id)
        await self.ledger.update(
            status.id,
            {
                "products_processed": status.processed,
                "products_created": status.created,
                "products_updated": status.updated,
                "products_failed": status.failed,
            },
        )
        log.info(
            "Sub-batch processed",
            size=len(batch),
            created=result.created,
            updated=result.updated,
            failed=result.failed,
            processed=status.processed,
            **cache.get_stats(),
        )

        if status.limit_reached:
            log.info("Record limit reached", limit=status.limit)
            return await self._begin_stock_phase(status, log)

        if next_offset < len(records):
            return ScheduleTick(
                session_id=status.id,
                page=page,
                offset=next_offset,
                delay=self.settings.sync_same_page_delay,
                since=since,
                profile_id=status.profile_id,
            )

        # Short pages are not terminal; only an empty page ends the phase
        return await self._next_page(status, page, since, log)

    async def _next_page(self, status: SessionStatus, page: int, since: str, log: Any) -> NextStep:
        if page + 1 >= self.settings.sync_max_pages:
            log.error("Max pages reached, forcing finalization", max_pages=self.settings.sync_max_pages)
            return await self._begin_stock_phase(status, log)
        return ScheduleTick(
            session_id=status.id,
            page=page + 1,
            offset=0,
            delay=self.settings.sync_next_page_delay,
            since=since,
            profile_id=status.profile_id,
        )

    def _filters(self, profile: ProfileConfig, since: str) -> dict[str, Any]:
        filters = profile.api_filters()
        if since:
            filters["NewerThan"] = since
        if "active" not in filters:
            filters["Active"] = 1
        return filters

    @staticmethod
    def _start_message(status: SessionStatus, profile: ProfileConfig) -> str:
        kind = "Incremental" if status.type == SyncType.INCREMENTAL else "Full"
        message = f'{kind} sync started for profile "{profile.name}"'
        if status.since:
            message += f" (changes since {status.since})"
        if status.limit:
            message += f", limited to {status.limit} products"
        return message

    async def _handle_failure(
        self, status: SessionStatus, page: int, offset: int, since: str, error: str, log: Any
    ) -> NextStep:
        # Discard anything the failed tick changed in memory but never saved
        session_id = status.id
        status = await self.state.load(status.profile_id)
        if status is None or status.id != session_id or status.status != SessionState.RUNNING:
            log.info("Session changed during failed tick, not retrying")
            return NoOp("stale")

        at_minimum = status.batch_size <= self.settings.sync_min_batch_size
        status.consecutive_failures += 1
        status.errors += 1
        status.batch_size = max(self.settings.sync_min_batch_size, math.ceil(status.batch_size / 2))
        status.error = error

        if status.consecutive_failures >= self.settings.sync_max_failures or at_minimum:
            log.error(
                "Giving up after repeated failures",
                failures=status.consecutive_failures,
                batch_size=status.batch_size,
            )
            return await self._fail(status, f"Failed after {status.consecutive_failures} attempts: {error}", log)

        status.touch()
        await self.state.save(status)
        log.warning(
            "Retrying with smaller batch",
            failures=status.consecutive_failures,
            batch_size=status.batch_size,
            delay=self.settings.sync_retry_delay,
        )
        return ScheduleTick(
            session_id=status.id,
            page=page,
            offset=offset,
            delay=self.settings.sync_retry_delay,
            since=since,
            profile_id=status.profile_id,
        )

    # =========================================================================
    # Stock phase
    # =========================================================================

    async def _begin_stock_phase(self, status: SessionStatus, log: Any) -> NextStep:
        status.status = SessionState.SYNCING_STOCK
        status.touch()
        await self.state.save(status)
        log.info("Starting stock reconciliation")
        return ScheduleStockPhase(
            session_id=status.id,
            profile_id=status.profile_id,
            delay=self.settings.sync_stock_phase_delay,
        )

    async def process_stock_phase(self, session_id: str, profile_id: int | None = None) -> NextStep:
        """Reconcile stock levels, then finalize the session whatever happens."""
        log = logger.bind(session_id=session_id, profile_id=profile_id)

        try:
            status = await self.state.load(profile_id)
        except Exception as e:
            log.error("Could not load session status", error=str(e))
            return NoOp("status unavailable")

        if status is None or status.id != session_id:
            log.info("Dropping stale stock phase", current=status.id if status else None)
            return NoOp("stale")
        if status.status != SessionState.SYNCING_STOCK:
            log.info("Dropping stock phase for session not syncing stock", status=status.status.value)
            return NoOp(f"session {status.status.value}")

        try:
            profile = await self.profiles.get_config(status.profile_id)
            cache = self.cache_factory()
            await cache.warm()
            result = await self.stock.reconcile(cache, profile)
            log.info("Stock reconciliation finished", **result)
        except Exception as e:
            log.warning("Stock reconciliation failed", error=str(e))

        try:
            return await self._complete(status, log)
        except Exception as e:
            log.error("Could not finalize session", error=str(e))
            return NoOp("finalize failed")

    # =========================================================================
    # Terminal transitions
    # =========================================================================

    async def _complete(self, status: SessionStatus, log: Any) -> NextStep:
        status.status = SessionState.COMPLETED
        status.completed_at = time.time()
        status.touch()
        await self.state.save(status)
        await self.state.set_last_sync(status.profile_id)
        await self.state.clear_flags(status.id)
        await self.ledger.complete(status.id, error_count=status.errors)
        await self.lease.release(status.profile_id)
        log.info(
            "Sync completed",
            processed=status.processed,
            created=status.created,
            updated=status.updated,
            failed=status.failed,
            duration=format_duration(int(status.completed_at - status.started_at)),
        )
        return Finalize(status.id, SessionState.COMPLETED)

    async def _stop(self, status: SessionStatus, log: Any) -> NextStep:
        status.status = SessionState.STOPPED
        status.completed_at = time.time()
        status.touch()
        await self.state.save(status)
        await self.state.clear_flags(status.id)
        await self.ledger.stop(status.id)
        await self.lease.release(status.profile_id)
        log.info("Sync stopped", processed=status.processed)
        return Finalize(status.id, SessionState.STOPPED)

    async def _pause(self, status: SessionStatus, log: Any) -> NextStep:
        status.status = SessionState.PAUSED
        status.paused_at = time.time()
        status.touch()
        await self.state.save(status)
        await self.state.clear_pause(status.id)
        await self.ledger.pause(status.id)
        # Held, not released, so the scope stays reserved for resume
        await self.lease.extend(status.profile_id, status.id, self.settings.sync_paused_lease_timeout)
        log.info("Sync paused", last_page=status.page, processed=status.processed)
        return Finalize(status.id, SessionState.PAUSED)

    async def _fail(self, status: SessionStatus, reason: str, log: Any) -> NextStep:
        status.status = SessionState.FAILED
        status.completed_at = time.time()
        status.error = reason
        status.touch()
        await self.state.save(status)
        await self.state.clear_flags(status.id)
        await self.ledger.fail(status.id, reason, error_count=status.errors)
        await self.lease.release(status.profile_id)
        log.error("Sync failed", reason=reason)
        self.on_failure(status)
        return Finalize(status.id, SessionState.FAILED)
