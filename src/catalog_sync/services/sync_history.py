"""Sync history ledger.

One row per sync session, created on the first tick and finalized on a
terminal transition. The ledger is an audit/reporting store: if its table
is not provisioned every operation logs a warning and reports failure
instead of raising, so a sync never aborts because of it.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.infrastructure.database.models import HistoryStatus, SyncHistory

logger = structlog.get_logger()

T = TypeVar("T")

# Only these columns may be written through update()
LEDGER_FIELDS = frozenset(
    {
        "status",
        "products_processed",
        "products_created",
        "products_updated",
        "products_failed",
        "error_count",
        "completed_at",
        "duration_seconds",
    }
)

EMPTY_STATS: dict[str, Any] = {
    "total_syncs": 0,
    "successful_syncs": 0,
    "failed_syncs": 0,
    "total_products_processed": 0,
    "avg_duration_seconds": 0,
}


def _now() -> datetime:
    # Naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_dict(row: SyncHistory) -> dict[str, Any]:
    return {
        "sync_id": row.sync_id,
        "profile_id": row.profile_id,
        "sync_type": row.sync_type,
        "status": row.status,
        "products_processed": row.products_processed,
        "products_created": row.products_created,
        "products_updated": row.products_updated,
        "products_failed": row.products_failed,
        "error_count": row.error_count,
        "started_at": row.started_at,
        "completed_at": row.completed_at,
        "duration_seconds": row.duration_seconds,
    }


def format_duration(seconds: int) -> str:
    """Human readable duration, e.g. ``1h 2m 5s``."""
    if seconds < 60:
        return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


class SyncHistoryLedger:
    """Durable, queryable record of sync sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _run(
        self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]], default: T
    ) -> T:
        try:
            async with self.session_factory() as session:
                return await fn(session)
        except DBAPIError as e:
            logger.warning("Sync history unavailable", operation=operation, error=str(e))
            return default

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(
        self, sync_id: str, sync_type: str = "full", profile_id: int | None = None
    ) -> bool:
        """Insert a running row for a new session."""

        async def _create(session: AsyncSession) -> bool:
            session.add(
                SyncHistory(
                    sync_id=sync_id,
                    profile_id=profile_id,
                    sync_type=sync_type,
                    status=HistoryStatus.RUNNING.value,
                    started_at=_now(),
                )
            )
            await session.commit()
            return True

        return await self._run("create", _create, False)

    async def update(self, sync_id: str, data: dict[str, Any]) -> bool:
        """Write the allow-listed fields of ``data``; anything else is dropped."""
        values = {}
        for field, value in data.items():
            if field not in LEDGER_FIELDS or value is None:
                continue
            values[field] = value.value if isinstance(value, Enum) else value

        if not values:
            return False

        async def _update(session: AsyncSession) -> bool:
            result = await session.execute(
                update(SyncHistory).where(SyncHistory.sync_id == sync_id).values(**values)
            )
            await session.commit()
            return result.rowcount > 0

        return await self._run("update", _update, False)

    async def _finish(self, sync_id: str, status: HistoryStatus, **extra: Any) -> bool:
        record = await self.get(sync_id)
        if record is None:
            return False

        now = _now()
        duration = max(0, int((now - record["started_at"]).total_seconds()))
        return await self.update(
            sync_id,
            {"status": status, "completed_at": now, "duration_seconds": duration, **extra},
        )

    async def complete(self, sync_id: str, error_count: int | None = None) -> bool:
        return await self._finish(sync_id, HistoryStatus.COMPLETED, error_count=error_count)

    async def fail(self, sync_id: str, reason: str = "", error_count: int | None = None) -> bool:
        if reason:
            logger.error("Sync failed", sync_id=sync_id, reason=reason)
        return await self._finish(sync_id, HistoryStatus.FAILED, error_count=error_count)

    async def stop(self, sync_id: str) -> bool:
        return await self._finish(sync_id, HistoryStatus.STOPPED)

    async def pause(self, sync_id: str) -> bool:
        return await self.update(sync_id, {"status": HistoryStatus.PAUSED})

    async def resume(self, sync_id: str) -> bool:
        return await self.update(sync_id, {"status": HistoryStatus.RUNNING})

    async def cleanup(self, keep: int = 50) -> int:
        """Delete all but the ``keep`` most recently started rows."""

        async def _cleanup(session: AsyncSession) -> int:
            stale_ids = (
                await session.scalars(
                    select(SyncHistory.id)
                    .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                    .offset(keep)
                )
            ).all()
            if not stale_ids:
                return 0
            await session.execute(delete(SyncHistory).where(SyncHistory.id.in_(stale_ids)))
            await session.commit()
            logger.info("Sync history cleaned up", deleted=len(stale_ids), kept=keep)
            return len(stale_ids)

        return await self._run("cleanup", _cleanup, 0)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, sync_id: str) -> dict[str, Any] | None:
        async def _get(session: AsyncSession) -> dict[str, Any] | None:
            row = await session.scalar(select(SyncHistory).where(SyncHistory.sync_id == sync_id))
            return _to_dict(row) if row else None

        return await self._run("get", _get, None)

    async def _latest_with_status(
        self, status: HistoryStatus, profile_id: int | None
    ) -> SyncHistory | None:
        # None selects the default scope here, not "any profile"
        profile_clause = (
            SyncHistory.profile_id.is_(None)
            if profile_id is None
            else SyncHistory.profile_id == profile_id
        )

        async def _latest(session: AsyncSession) -> SyncHistory | None:
            return await session.scalar(
                select(SyncHistory)
                .where(SyncHistory.status == status.value, profile_clause)
                .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                .limit(1)
            )

        return await self._run("latest", _latest, None)

    async def has_running_session(self, profile_id: int | None = None) -> bool:
        return await self.get_running_session_id(profile_id) is not None

    async def get_running_session_id(self, profile_id: int | None = None) -> str | None:
        row = await self._latest_with_status(HistoryStatus.RUNNING, profile_id)
        return row.sync_id if row else None

    async def get_paused_session(self, profile_id: int | None = None) -> dict[str, Any] | None:
        row = await self._latest_with_status(HistoryStatus.PAUSED, profile_id)
        return _to_dict(row) if row else None

    async def get_recent(self, limit: int = 10, profile_id: int | None = None) -> list[dict[str, Any]]:
        """Most recent sessions first; ``profile_id=None`` reports all profiles."""
        query = select(SyncHistory).order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
        if profile_id is not None:
            query = query.where(SyncHistory.profile_id == profile_id)

        async def _recent(session: AsyncSession) -> list[dict[str, Any]]:
            rows = (await session.scalars(query.limit(limit))).all()
            return [_to_dict(row) for row in rows]

        return await self._run("get_recent", _recent, [])

    async def get_stats(self, profile_id: int | None = None) -> dict[str, Any]:
        """Aggregate counters; ``profile_id=None`` reports all profiles."""
        query = select(
            func.count(SyncHistory.id),
            func.sum(case((SyncHistory.status == HistoryStatus.COMPLETED.value, 1), else_=0)),
            func.sum(case((SyncHistory.status == HistoryStatus.FAILED.value, 1), else_=0)),
            func.sum(SyncHistory.products_processed),
            func.avg(SyncHistory.duration_seconds),
        )
        if profile_id is not None:
            query = query.where(SyncHistory.profile_id == profile_id)

        async def _stats(session: AsyncSession) -> dict[str, Any]:
            total, successful, failed, processed, avg_duration = (await session.execute(query)).one()
            return {
                "total_syncs": total or 0,
                "successful_syncs": int(successful or 0),
                "failed_syncs": int(failed or 0),
                "total_products_processed": int(processed or 0),
                "avg_duration_seconds": round(float(avg_duration or 0), 1),
            }

        return await self._run("get_stats", _stats, dict(EMPTY_STATS))
