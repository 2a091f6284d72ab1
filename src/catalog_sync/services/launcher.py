"""Session launcher: start, resume, pause, stop and inspect sync sessions."""

import time
import uuid

import structlog

from catalog_sync.config import Settings
from catalog_sync.exceptions import (
    SyncAlreadyRunningError,
    SyncFinishingError,
    SyncNotPausedError,
    SyncPausedError,
)
from catalog_sync.services.lease import SessionLease
from catalog_sync.services.steps import ScheduleTick, StepDispatcher
from catalog_sync.services.sync_history import SyncHistoryLedger
from catalog_sync.services.sync_state import SessionState, SessionStateStore, SessionStatus, SyncType
from shared.constants import SESSION_ID_PREFIX

logger = structlog.get_logger()


def new_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{uuid.uuid4().hex[:13]}"


class SyncLauncher:
    """Entry points used by the API, the CLI and the scheduled task.

    The live status record and the history ledger are reconciled when
    deciding whether a scope is busy: an unrefreshed ``running`` status
    older than the lease timeout is treated as abandoned, and a ledger row
    still marked running only counts while its session holds the lease.
    """

    def __init__(
        self,
        settings: Settings,
        state: SessionStateStore,
        lease: SessionLease,
        ledger: SyncHistoryLedger,
        dispatcher: StepDispatcher,
    ):
        self.settings = settings
        self.state = state
        self.lease = lease
        self.ledger = ledger
        self.dispatcher = dispatcher

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    async def get_status(self, profile_id: int | None = None) -> SessionStatus | None:
        return await self.state.load(profile_id)

    async def get_running_session_id(self, profile_id: int | None = None) -> str | None:
        status = await self.state.load(profile_id)
        if status is not None:
            if not status.status.is_active:
                return None
            if status.is_stale(self.settings.sync_lease_timeout):
                logger.warning("Ignoring abandoned session", session_id=status.id, profile_id=profile_id)
                return None
            return status.id

        session_id = await self.ledger.get_running_session_id(profile_id)
        if session_id and await self.lease.holder(profile_id) == session_id:
            return session_id
        return None

    async def is_running(self, profile_id: int | None = None) -> bool:
        return await self.get_running_session_id(profile_id) is not None

    async def is_paused(self, profile_id: int | None = None) -> bool:
        status = await self.state.load(profile_id)
        if status is not None:
            return status.status == SessionState.PAUSED
        return await self.ledger.get_paused_session(profile_id) is not None

    # -------------------------------------------------------------------------
    # Launch
    # -------------------------------------------------------------------------

    async def _claim(self, profile_id: int | None, session_id: str) -> None:
        running_id = await self.get_running_session_id(profile_id)
        if running_id:
            raise SyncAlreadyRunningError(running_id)

        status = await self.state.load(profile_id)
        if status is not None and status.status == SessionState.PAUSED:
            raise SyncPausedError(status.id)

        if await self.lease.acquire(profile_id, session_id):
            return

        holder = await self.lease.holder(profile_id)
        if holder is None:
            # Expired between the two calls
            if await self.lease.acquire(profile_id, session_id):
                return
            raise SyncAlreadyRunningError(await self.lease.holder(profile_id))
        if status is None or holder != status.id:
            # Held by another launch, possibly before it wrote its status
            raise SyncAlreadyRunningError(holder)
        if status.status.is_active and not status.is_stale(self.settings.sync_lease_timeout):
            raise SyncAlreadyRunningError(holder)

        logger.warning("Breaking lease of inactive session", holder=holder, profile_id=profile_id)
        await self.lease.release_if_held(profile_id, holder)
        if not await self.lease.acquire(profile_id, session_id):
            raise SyncAlreadyRunningError(await self.lease.holder(profile_id))

    async def start(
        self,
        limit: int = 0,
        profile_id: int | None = None,
        sync_type: SyncType = SyncType.FULL,
        since: str = "",
    ) -> str:
        """Claim the scope and schedule the first tick. Returns the session id."""
        session_id = new_session_id()
        await self._claim(profile_id, session_id)

        now = time.time()
        status = SessionStatus(
            id=session_id,
            status=SessionState.RUNNING,
            type=sync_type,
            profile_id=profile_id,
            since=since,
            limit=max(0, limit),
            batch_size=self.settings.sync_batch_size,
            started_at=now,
            last_update=now,
        )
        await self.state.save(status)

        self.dispatcher.dispatch(
            ScheduleTick(
                session_id=session_id,
                page=0,
                offset=0,
                delay=self.settings.sync_start_delay,
                since=since,
                profile_id=profile_id,
            )
        )
        logger.info(
            "Sync session launched",
            session_id=session_id,
            profile_id=profile_id,
            type=sync_type.value,
            limit=status.limit,
            since=since or None,
        )
        return session_id

    async def start_incremental(self, since: str | None = None, profile_id: int | None = None) -> str:
        """Start a session that only fetches records changed since the watermark."""
        since = since or await self.state.get_last_sync(profile_id)
        if not since:
            logger.info("No previous sync recorded, running a full sync", profile_id=profile_id)
            return await self.start(profile_id=profile_id)
        return await self.start(profile_id=profile_id, sync_type=SyncType.INCREMENTAL, since=since)

    async def resume(self, profile_id: int | None = None) -> str:
        """Resume a paused session at the page after the one it paused on."""
        status = await self.state.load(profile_id)
        if status is None or status.status != SessionState.PAUSED:
            raise SyncNotPausedError("No paused sync session to resume")

        await self.state.clear_pause(status.id)
        status.status = SessionState.RUNNING
        status.paused_at = None
        status.offset = 0
        status.touch()
        await self.state.save(status)
        await self.lease.extend(profile_id, status.id)
        await self.ledger.resume(status.id)

        next_page = status.page + 1
        logger.info("Sync session resumed", session_id=status.id, profile_id=profile_id, page=next_page)
        self.dispatcher.dispatch(
            ScheduleTick(
                session_id=status.id,
                page=next_page,
                offset=0,
                delay=0.0,
                since=status.since,
                profile_id=profile_id,
            )
        )
        return status.id

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    async def _controllable_session_id(self, profile_id: int | None) -> str | None:
        session_id = await self.get_running_session_id(profile_id)
        if session_id:
            status = await self.state.load(profile_id)
            # No further tick would observe a flag once the stock pass began
            if status is not None and status.id == session_id and status.status == SessionState.SYNCING_STOCK:
                raise SyncFinishingError(session_id)
        return session_id

    async def pause(self, profile_id: int | None = None) -> str | None:
        """Ask the running session to pause at its next tick."""
        session_id = await self._controllable_session_id(profile_id)
        if session_id:
            await self.state.request_pause(session_id)
            logger.info("Pause requested", session_id=session_id, profile_id=profile_id)
        return session_id

    async def stop(self, profile_id: int | None = None) -> str | None:
        """Stop the running or paused session of a scope."""
        session_id = await self._controllable_session_id(profile_id)
        if session_id:
            await self.state.request_stop(session_id)
            logger.info("Stop requested", session_id=session_id, profile_id=profile_id)
            return session_id

        status = await self.state.load(profile_id)
        if status is not None and status.status == SessionState.PAUSED:
            # No tick is scheduled for a paused session to observe a flag
            status.status = SessionState.STOPPED
            status.completed_at = time.time()
            status.touch()
            await self.state.save(status)
            await self.state.clear_flags(status.id)
            await self.ledger.stop(status.id)
            await self.lease.release(profile_id)
            logger.info("Paused session stopped", session_id=status.id, profile_id=profile_id)
            return status.id
        return None

    async def release_lease(self, profile_id: int | None = None) -> None:
        await self.lease.release(profile_id)

    async def force_clear(self, profile_id: int | None = None) -> str | None:
        """Delete lease, status and flags for a scope. Returns the cleared session id."""
        status = await self.state.load(profile_id)
        session_id = status.id if status else await self.lease.holder(profile_id)

        await self.lease.release(profile_id)
        await self.state.delete(profile_id)
        if session_id:
            await self.state.clear_flags(session_id)
            record = await self.ledger.get(session_id)
            if record and record["status"] in (SessionState.RUNNING.value, SessionState.PAUSED.value):
                await self.ledger.stop(session_id)

        logger.warning("Sync state force-cleared", session_id=session_id, profile_id=profile_id)
        return session_id
