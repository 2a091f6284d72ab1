"""Per-task sync runtime for the worker."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from catalog_sync.config import get_settings
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.connection import get_async_engine, make_session_factory
from catalog_sync.infrastructure.redis import RedisKeyValueStore, create_redis_client
from catalog_sync.services.runtime import SyncRuntime, build_runtime
from sync_worker.main import app
from sync_worker.queue import CeleryTaskQueue


@asynccontextmanager
async def worker_runtime() -> AsyncGenerator[SyncRuntime, None]:
    """Build the engine graph for one task and tear it down afterwards.

    Every task runs in its own event loop, so connections are never
    reused across tasks.
    """
    settings = get_settings()
    engine = get_async_engine(pooled=False)
    redis_client = create_redis_client()
    api = CatalogApiClient.from_settings(settings)
    try:
        yield build_runtime(
            settings=settings,
            store=RedisKeyValueStore(redis_client),
            session_factory=make_session_factory(engine),
            api=api,
            queue=CeleryTaskQueue(app),
        )
    finally:
        await api.aclose()
        await redis_client.aclose()
        await engine.dispose()
