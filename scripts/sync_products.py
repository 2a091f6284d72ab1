#!/usr/bin/env python3
"""CLI to start, resume, stop and inspect catalog sync sessions.

By default sessions are handed to the Celery worker. With ``--inline``
the whole tick chain runs in this process instead, which is handy for
a first import or for debugging a single profile.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from catalog_sync.config import get_settings
from catalog_sync.exceptions import SyncError
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.connection import get_async_engine, make_session_factory
from catalog_sync.infrastructure.redis import RedisKeyValueStore, create_redis_client
from catalog_sync.logging_config import configure_logging
from catalog_sync.services.runtime import build_runtime, run_inline
from catalog_sync.services.steps import InlineTaskQueue, TaskQueue, describe_step

logger = structlog.get_logger()


def _task_queue(inline: bool) -> TaskQueue:
    if inline:
        return InlineTaskQueue()
    from sync_worker.main import app
    from sync_worker.queue import CeleryTaskQueue

    return CeleryTaskQueue(app)


async def main(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine = get_async_engine(pooled=False)
    redis_client = create_redis_client()
    api = CatalogApiClient.from_settings(settings)
    queue = _task_queue(args.inline)

    runtime = build_runtime(
        settings=settings,
        store=RedisKeyValueStore(redis_client),
        session_factory=make_session_factory(engine),
        api=api,
        queue=queue,
    )
    launcher = runtime.launcher

    try:
        if args.command == "start":
            session_id = await launcher.start(limit=args.limit, profile_id=args.profile)
            logger.info("Sync started", session_id=session_id)
        elif args.command == "incremental":
            session_id = await launcher.start_incremental(since=args.since, profile_id=args.profile)
            logger.info("Incremental sync started", session_id=session_id)
        elif args.command == "resume":
            session_id = await launcher.resume(args.profile)
            logger.info("Sync resumed", session_id=session_id)
        elif args.command == "pause":
            logger.info("Pause requested", session_id=await launcher.pause(args.profile))
        elif args.command == "stop":
            logger.info("Stop requested", session_id=await launcher.stop(args.profile))
        elif args.command == "clear":
            logger.info("Sync state cleared", session_id=await launcher.force_clear(args.profile))
        elif args.command == "status":
            status = await launcher.get_status(args.profile)
            logger.info(
                "Sync status",
                running=await launcher.is_running(args.profile),
                paused=await launcher.is_paused(args.profile),
                **(status.model_dump(mode="json") if status else {}),
            )
        elif args.command == "history":
            for row in await runtime.ledger.get_recent(limit=args.limit or 10, profile_id=args.profile):
                logger.info("Sync history", **{k: str(v) for k, v in row.items()})

        if args.inline and isinstance(queue, InlineTaskQueue) and len(queue):
            step = await run_inline(runtime, queue, honor_delays=args.wait)
            if step is not None:
                logger.info("Inline sync finished", **describe_step(step))
        return 0
    except SyncError as e:
        logger.error("Sync command failed", command=args.command, error=str(e))
        return 1
    finally:
        await api.aclose()
        await redis_client.aclose()
        await engine.dispose()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Control catalog sync sessions")
    parser.add_argument(
        "command",
        choices=["start", "incremental", "resume", "pause", "stop", "clear", "status", "history"],
    )
    parser.add_argument("--profile", type=int, default=None, help="Sync profile ID (default profile if omitted)")
    parser.add_argument("--limit", type=int, default=0, help="Max products for start, rows for history")
    parser.add_argument("--since", default=None, help="ISO-8601 timestamp for incremental syncs")
    parser.add_argument("--inline", action="store_true", help="Run the session in this process")
    parser.add_argument("--wait", action="store_true", help="Honor tick delays when running inline")
    return parser.parse_args()


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(main(parse_args())))
