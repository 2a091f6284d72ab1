"""Celery application for the catalog sync worker."""

from celery import Celery
from celery.schedules import crontab

from catalog_sync.config import get_settings
from catalog_sync.logging_config import configure_logging
from shared.constants import CLEANUP_HISTORY_TASK, START_SCHEDULED_SYNC_TASK

settings = get_settings()
configure_logging()

# Create Celery app
app = Celery(
    "sync_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "sync_worker.tasks.sync_products",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes
    task_soft_time_limit=540,  # 9 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="sync",
    task_routes={
        "sync_worker.tasks.*": {"queue": "sync"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Incremental sync of the default profile every hour
    "incremental-sync": {
        "task": START_SCHEDULED_SYNC_TASK,
        "schedule": crontab(minute=0),
    },
    # Trim sync history daily at 3 AM
    "cleanup-sync-history": {
        "task": CLEANUP_HISTORY_TASK,
        "schedule": crontab(minute=0, hour=3),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "sync"])


if __name__ == "__main__":
    run()
