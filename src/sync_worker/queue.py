"""Celery-backed task queue for scheduling the next tick."""

from typing import Any

import structlog
from celery import Celery

logger = structlog.get_logger()


class CeleryTaskQueue:
    """Submits tasks by name with a countdown, so callers never import task modules."""

    def __init__(self, app: Celery):
        self.app = app

    def schedule(self, task_name: str, kwargs: dict[str, Any], delay: float = 0.0) -> None:
        result = self.app.send_task(task_name, kwargs=kwargs, countdown=max(0.0, delay))
        logger.debug("Task scheduled", task=task_name, task_id=result.id, delay=delay)
