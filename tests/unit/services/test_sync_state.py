"""Unit tests for session state, flags, watermarks and the lease."""

import time
from types import SimpleNamespace

import pytest

from catalog_sync.infrastructure import kv
from catalog_sync.infrastructure.kv import MemoryKeyValueStore
from catalog_sync.services.lease import SessionLease
from catalog_sync.services.sync_state import (
    SessionState,
    SessionStateStore,
    SessionStatus,
    SyncType,
    scope_key,
)


def make_status(session_id: str = "sync_abc", profile_id: int | None = None, **kwargs) -> SessionStatus:
    now = time.time()
    return SessionStatus(
        id=session_id,
        profile_id=profile_id,
        batch_size=10,
        started_at=now,
        last_update=now,
        **kwargs,
    )


class TestMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_add_is_exclusive(self) -> None:
        store = MemoryKeyValueStore()
        assert await store.add("k", "first") is True
        assert await store.add("k", "second") is False
        assert await store.get("k") == "first"

    @pytest.mark.asyncio
    async def test_expired_key_reads_as_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        store = MemoryKeyValueStore()
        await store.set("k", "v", ttl_seconds=10)

        later = time.monotonic() + 11
        monkeypatch.setattr(kv, "time", SimpleNamespace(monotonic=lambda: later))

        assert await store.get("k", "gone") == "gone"
        assert await store.add("k", "new") is True

    @pytest.mark.asyncio
    async def test_delete_ignores_missing_keys(self) -> None:
        store = MemoryKeyValueStore()
        await store.set("a", 1)
        await store.delete("a", "never-set")
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_delete_if_checks_value(self) -> None:
        store = MemoryKeyValueStore()
        await store.set("k", "sync_a")

        assert await store.delete_if("k", "sync_b") is False
        assert await store.get("k") == "sync_a"
        assert await store.delete_if("k", "sync_a") is True
        assert await store.delete_if("k", "sync_a") is False


class TestSessionStatus:
    def test_limit_reached(self) -> None:
        assert make_status(limit=0, processed=1000).limit_reached is False
        assert make_status(limit=5, processed=4).limit_reached is False
        assert make_status(limit=5, processed=5).limit_reached is True

    def test_is_stale(self) -> None:
        status = make_status()
        assert status.is_stale(3600, now=status.last_update + 10) is False
        assert status.is_stale(3600, now=status.last_update + 3601) is True

    def test_state_predicates(self) -> None:
        assert SessionState.SYNCING_STOCK.is_active
        assert not SessionState.PAUSED.is_active
        assert SessionState.STOPPED.is_terminal
        assert not SessionState.RUNNING.is_terminal


class TestSessionStateStore:
    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(self, kv_store: MemoryKeyValueStore) -> None:
        state = SessionStateStore(kv_store)
        status = make_status(profile_id=3, type=SyncType.INCREMENTAL, since="2026-01-01T00:00:00")
        await state.save(status)

        loaded = await state.load(3)
        assert loaded == status
        assert await state.load(None) is None

    @pytest.mark.asyncio
    async def test_scopes_are_independent(self, kv_store: MemoryKeyValueStore) -> None:
        state = SessionStateStore(kv_store)
        await state.save(make_status("sync_default"))
        await state.save(make_status("sync_profile", profile_id=7))

        assert (await state.load(None)).id == "sync_default"
        assert (await state.load(7)).id == "sync_profile"

        await state.delete(None)
        assert await state.load(None) is None
        assert await state.load(7) is not None

    @pytest.mark.asyncio
    async def test_flags_are_per_session(self, kv_store: MemoryKeyValueStore) -> None:
        state = SessionStateStore(kv_store)
        await state.request_stop("sync_old")
        await state.request_pause("sync_old")

        assert await state.stop_requested("sync_old") is True
        assert await state.stop_requested("sync_new") is False
        assert await state.pause_requested("sync_new") is False

        await state.clear_stop("sync_old")
        await state.clear_pause("sync_old")
        assert await state.stop_requested("sync_old") is False
        assert await state.pause_requested("sync_old") is False

    @pytest.mark.asyncio
    async def test_flags_expire(self, kv_store: MemoryKeyValueStore, monkeypatch: pytest.MonkeyPatch) -> None:
        state = SessionStateStore(kv_store, flag_ttl=60)
        await state.request_stop("sync_old")
        await state.request_pause("sync_old")

        later = time.monotonic() + 61
        monkeypatch.setattr(kv, "time", SimpleNamespace(monotonic=lambda: later))

        assert await state.stop_requested("sync_old") is False
        assert await state.pause_requested("sync_old") is False

    @pytest.mark.asyncio
    async def test_clear_flags(self, kv_store: MemoryKeyValueStore) -> None:
        state = SessionStateStore(kv_store)
        await state.request_stop("sync_old")
        await state.request_pause("sync_old")

        await state.clear_flags("sync_old")

        assert kv_store.keys() == []

    @pytest.mark.asyncio
    async def test_watermark(self, kv_store: MemoryKeyValueStore) -> None:
        state = SessionStateStore(kv_store)
        assert await state.get_last_sync(None) is None

        written = await state.set_last_sync(None)
        assert len(written) == len("2026-10-19T09:00:00")
        assert await state.get_last_sync(None) == written

        await state.set_last_sync(2, "2025-05-01T10:00:00")
        assert await state.get_last_sync(2) == "2025-05-01T10:00:00"

    def test_scope_key(self) -> None:
        assert scope_key("prefix", None) == "prefix:default"
        assert scope_key("prefix", 4) == "prefix:4"


class TestSessionLease:
    @pytest.mark.asyncio
    async def test_acquire_is_exclusive_per_scope(self, kv_store: MemoryKeyValueStore) -> None:
        lease = SessionLease(kv_store, timeout=60)
        assert await lease.acquire(None, "sync_a") is True
        assert await lease.acquire(None, "sync_b") is False
        assert await lease.acquire(1, "sync_b") is True
        assert await lease.holder(None) == "sync_a"

    @pytest.mark.asyncio
    async def test_release_frees_scope(self, kv_store: MemoryKeyValueStore) -> None:
        lease = SessionLease(kv_store, timeout=60)
        await lease.acquire(None, "sync_a")
        await lease.release(None)

        assert await lease.holder(None) is None
        assert await lease.acquire(None, "sync_b") is True

    @pytest.mark.asyncio
    async def test_extend_keeps_owner(self, kv_store: MemoryKeyValueStore) -> None:
        lease = SessionLease(kv_store, timeout=60)
        await lease.acquire(None, "sync_a")
        await lease.extend(None, "sync_a", ttl_seconds=86400)

        assert await lease.holder(None) == "sync_a"
        assert await lease.acquire(None, "sync_b") is False

    @pytest.mark.asyncio
    async def test_release_if_held_ignores_other_owner(self, kv_store: MemoryKeyValueStore) -> None:
        lease = SessionLease(kv_store, timeout=60)
        await lease.acquire(None, "sync_b")

        assert await lease.release_if_held(None, "sync_a") is False
        assert await lease.holder(None) == "sync_b"
        assert await lease.release_if_held(None, "sync_b") is True
        assert await lease.holder(None) is None
