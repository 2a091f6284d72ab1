"""Key-value store abstraction for live session state, leases and flags."""

import time
from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Durable get/set store keyed by string.

    ``add`` and ``delete_if`` must be atomic: they are the only primitives
    the lease relies on for mutual exclusion.
    """

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    async def add(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool: ...

    async def delete(self, *keys: str) -> None: ...

    async def delete_if(self, key: str, value: Any) -> bool: ...


class MemoryKeyValueStore:
    """In-process store with expiry. Used by the inline runner and tests."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _live(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return False
        return True

    async def get(self, key: str, default: Any = None) -> Any:
        if not self._live(key):
            return default
        return self._data[key][0]

    def _put(self, key: str, value: Any, ttl_seconds: int | None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self._put(key, value, ttl_seconds)

    async def add(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        if self._live(key):
            return False
        self._put(key, value, ttl_seconds)
        return True

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def delete_if(self, key: str, value: Any) -> bool:
        if not self._live(key) or self._data[key][0] != value:
            return False
        del self._data[key]
        return True

    def keys(self) -> list[str]:
        return [key for key in list(self._data) if self._live(key)]
