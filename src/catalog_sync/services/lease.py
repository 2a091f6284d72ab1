"""Per-profile mutual-exclusion lease for sync sessions."""

import structlog

from catalog_sync.infrastructure.kv import KeyValueStore
from catalog_sync.services.sync_state import scope_key
from shared.constants import LEASE_KEY_PREFIX

logger = structlog.get_logger()


class SessionLease:
    """A named, owned, expiring claim on a profile.

    The value stored under the lease key is the owning session id. Expiry
    is enforced by the store, so an abandoned session cannot block its
    profile beyond ``timeout`` seconds.
    """

    def __init__(self, store: KeyValueStore, timeout: int):
        self.store = store
        self.timeout = timeout

    async def acquire(self, profile_id: int | None, session_id: str) -> bool:
        acquired = await self.store.add(scope_key(LEASE_KEY_PREFIX, profile_id), session_id, self.timeout)
        if acquired:
            logger.debug("Lease acquired", profile_id=profile_id, session_id=session_id)
        return acquired

    async def holder(self, profile_id: int | None) -> str | None:
        return await self.store.get(scope_key(LEASE_KEY_PREFIX, profile_id))

    async def extend(self, profile_id: int | None, session_id: str, ttl_seconds: int | None = None) -> None:
        await self.store.set(
            scope_key(LEASE_KEY_PREFIX, profile_id), session_id, ttl_seconds or self.timeout
        )

    async def release(self, profile_id: int | None) -> None:
        await self.store.delete(scope_key(LEASE_KEY_PREFIX, profile_id))
        logger.debug("Lease released", profile_id=profile_id)

    async def release_if_held(self, profile_id: int | None, session_id: str) -> bool:
        """Release only while ``session_id`` still owns the lease."""
        released = await self.store.delete_if(scope_key(LEASE_KEY_PREFIX, profile_id), session_id)
        if released:
            logger.debug("Lease released", profile_id=profile_id, session_id=session_id)
        return released
