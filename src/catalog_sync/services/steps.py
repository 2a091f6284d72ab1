"""Next-step values returned by the batch processor and their dispatch.

The processor never talks to the task queue itself. It returns one of the
step values below and a thin dispatcher turns schedule steps into queue
submissions, which keeps the state machine testable without a broker.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

import structlog

from catalog_sync.services.sync_state import SessionState
from shared.constants import PROCESS_STOCK_PHASE_TASK, PROCESS_TICK_TASK

logger = structlog.get_logger()


@dataclass(frozen=True)
class ScheduleTick:
    session_id: str
    page: int
    offset: int = 0
    delay: float = 0.0
    since: str = ""
    profile_id: int | None = None

    def task_kwargs(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "session_id": self.session_id,
            "since": self.since,
            "profile_id": self.profile_id,
            "offset": self.offset,
        }


@dataclass(frozen=True)
class ScheduleStockPhase:
    session_id: str
    profile_id: int | None = None
    delay: float = 0.0

    def task_kwargs(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "profile_id": self.profile_id}


@dataclass(frozen=True)
class Finalize:
    """The chain ends here; ``outcome`` is the state the session was left in."""

    session_id: str
    outcome: SessionState


@dataclass(frozen=True)
class NoOp:
    reason: str = ""


NextStep = Union[ScheduleTick, ScheduleStockPhase, Finalize, NoOp]


def describe_step(step: NextStep) -> dict[str, Any]:
    """Summary returned as the Celery task result."""
    if isinstance(step, ScheduleTick):
        return {"next": "tick", "page": step.page, "offset": step.offset, "delay": step.delay}
    if isinstance(step, ScheduleStockPhase):
        return {"next": "stock_phase", "delay": step.delay}
    if isinstance(step, Finalize):
        return {"next": None, "outcome": step.outcome.value}
    return {"next": None, "noop": step.reason}


class TaskQueue(Protocol):
    """Durable delayed execution: run ``task_name(**kwargs)`` at or after ``delay`` seconds."""

    def schedule(self, task_name: str, kwargs: dict[str, Any], delay: float = 0.0) -> None: ...


@dataclass
class QueuedTask:
    task_name: str
    kwargs: dict[str, Any]
    delay: float


@dataclass
class InlineTaskQueue:
    """FIFO queue drained in-process; delays are recorded, not slept."""

    tasks: deque[QueuedTask] = field(default_factory=deque)

    def schedule(self, task_name: str, kwargs: dict[str, Any], delay: float = 0.0) -> None:
        self.tasks.append(QueuedTask(task_name, dict(kwargs), delay))

    def pop(self) -> QueuedTask | None:
        return self.tasks.popleft() if self.tasks else None

    def __len__(self) -> int:
        return len(self.tasks)


class StepDispatcher:
    """Translates schedule steps into task queue submissions."""

    def __init__(self, queue: TaskQueue):
        self.queue = queue

    def dispatch(self, step: NextStep) -> None:
        if isinstance(step, ScheduleTick):
            self.queue.schedule(PROCESS_TICK_TASK, step.task_kwargs(), step.delay)
        elif isinstance(step, ScheduleStockPhase):
            self.queue.schedule(PROCESS_STOCK_PHASE_TASK, step.task_kwargs(), step.delay)
        else:
            logger.debug("No follow-up scheduled", step=describe_step(step))
