"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_sync.api.v1.sync import get_kv_store, get_ledger, get_profiles, get_task_queue
from catalog_sync.config import Settings, get_settings
from catalog_sync.exceptions import CatalogApiError
from catalog_sync.infrastructure.database.connection import make_session_factory
from catalog_sync.infrastructure.database.models import SCHEMA, Base
from catalog_sync.infrastructure.database.repositories import ProfileConfig
from catalog_sync.infrastructure.kv import MemoryKeyValueStore
from catalog_sync.main import create_app
from catalog_sync.services.runtime import SyncRuntime, build_runtime
from catalog_sync.services.steps import InlineTaskQueue


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
        catalog_api_base_url="http://catalog.test",
        catalog_api_key="test-key",
        sync_page_size=50,
        sync_batch_size=10,
        sync_min_batch_size=2,
        sync_max_failures=5,
        sync_max_pages=20,
        sync_stock_page_size=100,
    )


def create_sqlite_engine():
    """In-memory SQLite engine with the sync schema translated away."""
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        execution_options={"schema_translate_map": {SCHEMA: None}},
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a freshly provisioned in-memory database."""
    engine = create_sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def unprovisioned_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a database with no tables at all."""
    engine = create_sqlite_engine()
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def task_queue() -> InlineTaskQueue:
    return InlineTaskQueue()


def build_record(index: int, **overrides: Any) -> dict[str, Any]:
    """A simple catalog record as the API returns it."""
    record = {
        "Id": index,
        "Reference": f"SKU-{index:04d}",
        "Name": {"en": f"Product {index}", "es": f"Producto {index}"},
        "RRP": 10.0 + index,
        "Active": True,
        "Images": [{"Url": f"https://img.test/{index}.jpg"}],
        "Categories": [{"Reference": "CAT-1"}],
        "Attributes": [{"Alias": "marca", "Value": "Acme"}],
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_record():
    return build_record


class FakeCatalogApi:
    """Serves fixed pages and can fail a number of product fetches."""

    def __init__(
        self,
        pages: dict[int, list[dict[str, Any]]] | None = None,
        stock: list[dict[str, Any]] | None = None,
        categories: list[dict[str, Any]] | None = None,
    ):
        self.pages = pages or {}
        self.stock = stock or []
        self.categories = categories or []
        self.fail_next = 0
        self.fail_stock = False
        self.fail_categories = False
        self.page_calls: list[tuple[int, int, dict[str, Any]]] = []
        self.category_calls = 0

    async def fetch_page(self, page: int, page_size: int, filters: dict[str, Any] | None = None):
        self.page_calls.append((page, page_size, dict(filters or {})))
        if self.fail_next > 0:
            self.fail_next -= 1
            raise CatalogApiError("Catalog API returned 503", status_code=503)
        return list(self.pages.get(page, []))

    async def fetch_category_tree(self):
        self.category_calls += 1
        if self.fail_categories:
            raise CatalogApiError("Category endpoint unavailable")
        return list(self.categories)

    async def fetch_stock_page(self, page: int, page_size: int):
        if self.fail_stock:
            raise CatalogApiError("Stock endpoint unavailable")
        return list(self.stock[page * page_size : (page + 1) * page_size])


@pytest.fixture
def fake_api() -> FakeCatalogApi:
    return FakeCatalogApi()


@pytest.fixture
def failures() -> list:
    """Statuses passed to the failure notification hook."""
    return []


@pytest.fixture
def runtime(
    test_settings: Settings,
    kv_store: MemoryKeyValueStore,
    session_factory: async_sessionmaker[AsyncSession],
    fake_api: FakeCatalogApi,
    task_queue: InlineTaskQueue,
    failures: list,
) -> SyncRuntime:
    """Fully wired engine over memory state, SQLite and the fake API."""
    return build_runtime(
        settings=test_settings,
        store=kv_store,
        session_factory=session_factory,
        api=fake_api,
        queue=task_queue,
        on_failure=failures.append,
    )


# =============================================================================
# API fixtures
# =============================================================================


class FakeLedger:
    """Ledger stand-in for API tests; rows are plain dicts keyed by sync id."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []

    async def create(self, sync_id: str, sync_type: str = "full", profile_id: int | None = None) -> bool:
        self.rows[sync_id] = {"sync_id": sync_id, "profile_id": profile_id, "status": "running"}
        return True

    async def get(self, sync_id: str) -> dict[str, Any] | None:
        return self.rows.get(sync_id)

    async def _set_status(self, sync_id: str, status: str) -> bool:
        self.calls.append((status, sync_id))
        if sync_id not in self.rows:
            return False
        self.rows[sync_id]["status"] = status
        return True

    async def stop(self, sync_id: str) -> bool:
        return await self._set_status(sync_id, "stopped")

    async def pause(self, sync_id: str) -> bool:
        return await self._set_status(sync_id, "paused")

    async def resume(self, sync_id: str) -> bool:
        return await self._set_status(sync_id, "running")

    async def get_running_session_id(self, profile_id: int | None = None) -> str | None:
        return None

    async def get_paused_session(self, profile_id: int | None = None) -> dict[str, Any] | None:
        return None

    async def get_recent(self, limit: int = 10, profile_id: int | None = None) -> list[dict[str, Any]]:
        rows = [r for r in self.rows.values() if profile_id is None or r["profile_id"] == profile_id]
        return rows[:limit]

    async def get_stats(self, profile_id: int | None = None) -> dict[str, Any]:
        rows = await self.get_recent(limit=len(self.rows), profile_id=profile_id)
        return {
            "total_syncs": len(rows),
            "successful_syncs": sum(1 for r in rows if r["status"] == "completed"),
            "failed_syncs": sum(1 for r in rows if r["status"] == "failed"),
            "total_products_processed": sum(r.get("products_processed", 0) for r in rows),
            "avg_duration_seconds": 0.0,
        }


class FakeProfiles:
    """Resolves the default scope and the given profile ids."""

    def __init__(self, known_ids: tuple[int, ...] = (1,)):
        self.known_ids = known_ids

    async def get_config(self, profile_id: int | None) -> ProfileConfig | None:
        if profile_id is None:
            return ProfileConfig(id=None, name="Default")
        if profile_id in self.known_ids:
            return ProfileConfig(id=profile_id, name=f"Profile {profile_id}")
        return None


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def app(
    test_settings: Settings,
    kv_store: MemoryKeyValueStore,
    task_queue: InlineTaskQueue,
    fake_ledger: FakeLedger,
) -> Any:
    """Create test application."""
    # Override settings and every backing store
    def get_test_settings() -> Settings:
        return test_settings

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_task_queue] = lambda: task_queue
    app.dependency_overrides[get_ledger] = lambda: fake_ledger
    app.dependency_overrides[get_profiles] = lambda: FakeProfiles()
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)
