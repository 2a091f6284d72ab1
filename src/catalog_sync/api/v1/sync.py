"""Sync session control API endpoints."""

from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from catalog_sync.config import Settings, get_settings
from catalog_sync.exceptions import ProfileNotFoundError, SyncConflictError, SyncNotPausedError
from catalog_sync.infrastructure.database.connection import get_session_factory
from catalog_sync.infrastructure.database.repositories import ProfileRepository
from catalog_sync.infrastructure.kv import KeyValueStore
from catalog_sync.infrastructure.redis import RedisKeyValueStore, get_redis_client
from catalog_sync.services.launcher import SyncLauncher
from catalog_sync.services.lease import SessionLease
from catalog_sync.services.steps import StepDispatcher, TaskQueue
from catalog_sync.services.sync_history import SyncHistoryLedger, format_duration
from catalog_sync.services.sync_state import SessionStateStore
from shared.constants import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT
from sync_worker.main import app as celery_app
from sync_worker.queue import CeleryTaskQueue

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================


def get_kv_store() -> KeyValueStore:
    return RedisKeyValueStore(get_redis_client())


def get_task_queue() -> TaskQueue:
    return CeleryTaskQueue(celery_app)


def get_ledger() -> SyncHistoryLedger:
    return SyncHistoryLedger(get_session_factory())


def get_profiles(settings: Annotated[Settings, Depends(get_settings)]) -> ProfileRepository:
    return ProfileRepository(get_session_factory(), settings)


def get_launcher(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[KeyValueStore, Depends(get_kv_store)],
    ledger: Annotated[SyncHistoryLedger, Depends(get_ledger)],
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
) -> SyncLauncher:
    return SyncLauncher(
        settings,
        SessionStateStore(store, flag_ttl=settings.sync_lease_timeout),
        SessionLease(store, settings.sync_lease_timeout),
        ledger,
        StepDispatcher(queue),
    )


LauncherDep = Annotated[SyncLauncher, Depends(get_launcher)]
LedgerDep = Annotated[SyncHistoryLedger, Depends(get_ledger)]
ProfilesDep = Annotated[ProfileRepository, Depends(get_profiles)]
ProfileQuery = Annotated[int | None, Query(description="Sync profile ID; omit for the default profile")]


# =============================================================================
# Models
# =============================================================================


class StartSyncRequest(BaseModel):
    """Request body for a full sync."""

    limit: int = Field(0, ge=0, description="Maximum products to process (0 = no limit)")
    profile_id: int | None = Field(None, description="Sync profile ID")


class IncrementalSyncRequest(BaseModel):
    """Request body for an incremental sync."""

    since: str | None = Field(
        None, description="ISO-8601 timestamp; defaults to the last successful sync"
    )
    profile_id: int | None = Field(None, description="Sync profile ID")


class SyncStartedResponse(BaseModel):
    session_id: str
    status: str = "started"
    message: str


class SyncControlResponse(BaseModel):
    session_id: str | None
    message: str


class SyncStatusResponse(BaseModel):
    running: bool
    paused: bool
    session: dict[str, Any] | None = None


class SyncHistoryEntry(BaseModel):
    sync_id: str
    profile_id: int | None
    sync_type: str
    status: str
    products_processed: int
    products_created: int
    products_updated: int
    products_failed: int
    error_count: int
    started_at: datetime
    completed_at: datetime | None
    duration_seconds: int | None
    duration: str | None = None


class SyncStatsResponse(BaseModel):
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    total_products_processed: int
    avg_duration_seconds: float


def _conflict(e: SyncConflictError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": str(e), "session_id": e.session_id},
    )


async def _require_profile(profiles: ProfileRepository, profile_id: int | None) -> None:
    if profile_id is not None and await profiles.get_config(profile_id) is None:
        raise ProfileNotFoundError(f"Sync profile {profile_id} not found")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/start", response_model=SyncStartedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    request: StartSyncRequest,
    launcher: LauncherDep,
    profiles: ProfilesDep,
) -> SyncStartedResponse:
    """
    Start a full catalog sync.

    The sync runs in the background as a chain of worker tasks; this
    returns as soon as the first one is scheduled.
    """
    try:
        await _require_profile(profiles, request.profile_id)
        session_id = await launcher.start(limit=request.limit, profile_id=request.profile_id)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SyncConflictError as e:
        raise _conflict(e) from e

    return SyncStartedResponse(session_id=session_id, message="Sync started")


@router.post("/incremental", response_model=SyncStartedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_incremental_sync(
    request: IncrementalSyncRequest,
    launcher: LauncherDep,
    profiles: ProfilesDep,
) -> SyncStartedResponse:
    """Start a sync of products changed since ``since`` or the last sync."""
    try:
        await _require_profile(profiles, request.profile_id)
        session_id = await launcher.start_incremental(since=request.since, profile_id=request.profile_id)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SyncConflictError as e:
        raise _conflict(e) from e

    return SyncStartedResponse(session_id=session_id, message="Incremental sync started")


@router.post("/pause", response_model=SyncControlResponse)
async def pause_sync(launcher: LauncherDep, profile_id: ProfileQuery = None) -> SyncControlResponse:
    """Ask the running sync to pause after its current tick."""
    try:
        session_id = await launcher.pause(profile_id)
    except SyncConflictError as e:
        raise _conflict(e) from e
    if session_id is None:
        raise HTTPException(status_code=409, detail="No running sync to pause")
    return SyncControlResponse(session_id=session_id, message="Pause requested")


@router.post("/resume", response_model=SyncControlResponse)
async def resume_sync(launcher: LauncherDep, profile_id: ProfileQuery = None) -> SyncControlResponse:
    try:
        session_id = await launcher.resume(profile_id)
    except SyncNotPausedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return SyncControlResponse(session_id=session_id, message="Sync resumed")


@router.post("/stop", response_model=SyncControlResponse)
async def stop_sync(launcher: LauncherDep, profile_id: ProfileQuery = None) -> SyncControlResponse:
    """Stop the running or paused sync."""
    try:
        session_id = await launcher.stop(profile_id)
    except SyncConflictError as e:
        raise _conflict(e) from e
    if session_id is None:
        raise HTTPException(status_code=409, detail="No running or paused sync to stop")
    return SyncControlResponse(session_id=session_id, message="Stop requested")


@router.post("/clear", response_model=SyncControlResponse)
async def clear_sync(launcher: LauncherDep, profile_id: ProfileQuery = None) -> SyncControlResponse:
    """
    Force-clear the lease and status of a stuck sync.

    Does not wait for the session's next tick; use stop for normal
    cancellation.
    """
    session_id = await launcher.force_clear(profile_id)
    logger.warning("Sync state cleared via API", session_id=session_id, profile_id=profile_id)
    return SyncControlResponse(session_id=session_id, message="Sync state cleared")


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(launcher: LauncherDep, profile_id: ProfileQuery = None) -> SyncStatusResponse:
    session = await launcher.get_status(profile_id)
    return SyncStatusResponse(
        running=await launcher.is_running(profile_id),
        paused=await launcher.is_paused(profile_id),
        session=session.model_dump(mode="json") if session else None,
    )


@router.get("/history", response_model=list[SyncHistoryEntry])
async def get_sync_history(
    ledger: LedgerDep,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    profile_id: ProfileQuery = None,
) -> list[SyncHistoryEntry]:
    """Most recent sync sessions first."""
    rows = await ledger.get_recent(limit=limit, profile_id=profile_id)
    return [
        SyncHistoryEntry(
            **row,
            duration=format_duration(row["duration_seconds"]) if row["duration_seconds"] is not None else None,
        )
        for row in rows
    ]


@router.get("/stats", response_model=SyncStatsResponse)
async def get_sync_stats(ledger: LedgerDep, profile_id: ProfileQuery = None) -> SyncStatsResponse:
    return SyncStatsResponse(**await ledger.get_stats(profile_id))
