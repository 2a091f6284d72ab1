"""Live session status record, cooperative flags and sync watermarks.

The status record is the only state that survives between ticks: every
tick loads it, mutates it and saves it back. It lives in the key-value
store under one key per profile.
"""

import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel

from catalog_sync.infrastructure.kv import KeyValueStore
from shared.constants import (
    DEFAULT_SCOPE,
    LAST_SYNC_KEY_PREFIX,
    PAUSE_FLAG_PREFIX,
    STATUS_KEY_PREFIX,
    STOP_FLAG_PREFIX,
)


class SessionState(str, Enum):
    """Session state machine states."""

    RUNNING = "running"
    PAUSED = "paused"
    SYNCING_STOCK = "syncing_stock"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.STOPPED)

    @property
    def is_active(self) -> bool:
        return self in (SessionState.RUNNING, SessionState.SYNCING_STOCK)


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SessionStatus(BaseModel):
    """Snapshot of one sync session, persisted between ticks."""

    id: str
    status: SessionState = SessionState.RUNNING
    type: SyncType = SyncType.FULL
    profile_id: int | None = None
    since: str = ""
    limit: int = 0

    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: int = 0

    page: int = 0
    offset: int = 0
    batch_size: int
    consecutive_failures: int = 0

    started_at: float
    last_update: float
    completed_at: float | None = None
    paused_at: float | None = None

    history_created: bool = False
    error: str | None = None

    @property
    def limit_reached(self) -> bool:
        return self.limit > 0 and self.processed >= self.limit

    def touch(self) -> None:
        self.last_update = time.time()

    def is_stale(self, timeout: float, now: float | None = None) -> bool:
        """True when the heartbeat is older than the lease timeout."""
        now = time.time() if now is None else now
        return now - self.last_update > timeout


def scope_key(prefix: str, profile_id: int | None) -> str:
    return f"{prefix}:{DEFAULT_SCOPE if profile_id is None else profile_id}"


def utc_watermark() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class SessionStateStore:
    """Reads and writes session records, flags and watermarks."""

    def __init__(self, store: KeyValueStore, flag_ttl: int | None = None):
        self.store = store
        self.flag_ttl = flag_ttl

    async def load(self, profile_id: int | None) -> SessionStatus | None:
        raw = await self.store.get(scope_key(STATUS_KEY_PREFIX, profile_id))
        if not raw:
            return None
        return SessionStatus.model_validate(raw)

    async def save(self, status: SessionStatus) -> None:
        await self.store.set(
            scope_key(STATUS_KEY_PREFIX, status.profile_id),
            status.model_dump(mode="json"),
        )

    async def delete(self, profile_id: int | None) -> None:
        await self.store.delete(scope_key(STATUS_KEY_PREFIX, profile_id))

    # -------------------------------------------------------------------------
    # Cooperative flags, keyed per session so a new session never inherits them
    # -------------------------------------------------------------------------

    async def request_stop(self, session_id: str) -> None:
        await self.store.set(f"{STOP_FLAG_PREFIX}:{session_id}", True, self.flag_ttl)

    async def stop_requested(self, session_id: str) -> bool:
        return bool(await self.store.get(f"{STOP_FLAG_PREFIX}:{session_id}", False))

    async def clear_stop(self, session_id: str) -> None:
        await self.store.delete(f"{STOP_FLAG_PREFIX}:{session_id}")

    async def request_pause(self, session_id: str) -> None:
        await self.store.set(f"{PAUSE_FLAG_PREFIX}:{session_id}", True, self.flag_ttl)

    async def pause_requested(self, session_id: str) -> bool:
        return bool(await self.store.get(f"{PAUSE_FLAG_PREFIX}:{session_id}", False))

    async def clear_pause(self, session_id: str) -> None:
        await self.store.delete(f"{PAUSE_FLAG_PREFIX}:{session_id}")

    async def clear_flags(self, session_id: str) -> None:
        await self.store.delete(f"{STOP_FLAG_PREFIX}:{session_id}", f"{PAUSE_FLAG_PREFIX}:{session_id}")

    # -------------------------------------------------------------------------
    # Watermarks
    # -------------------------------------------------------------------------

    async def get_last_sync(self, profile_id: int | None) -> str | None:
        return await self.store.get(scope_key(LAST_SYNC_KEY_PREFIX, profile_id))

    async def set_last_sync(self, profile_id: int | None, value: str | None = None) -> str:
        value = value or utc_watermark()
        await self.store.set(scope_key(LAST_SYNC_KEY_PREFIX, profile_id), value)
        return value
