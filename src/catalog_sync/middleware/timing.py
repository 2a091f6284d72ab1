"""Request timing and request-scoped logging context."""

import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

MAX_SAMPLES = 500
SLOW_REQUEST_SECONDS = 1.0


@dataclass
class RouteTimings:
    """Rolling latency window for one ``METHOD path`` pair."""

    samples: deque[float] = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES))
    errors: int = 0

    def percentile(self, fraction: float) -> float:
        if not self.samples:
            return 0.0
        ordered = sorted(self.samples)
        return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]

    def summary(self) -> dict:
        count = len(self.samples)
        mean = sum(self.samples) / count if count else 0.0
        return {
            "count": count,
            "errors": self.errors,
            "avg_ms": round(mean * 1000, 2),
            "p50_ms": round(self.percentile(0.5) * 1000, 2),
            "p95_ms": round(self.percentile(0.95) * 1000, 2),
        }


_timings: dict[str, RouteTimings] = defaultdict(RouteTimings)


def get_route_timings() -> dict[str, dict]:
    return {route: timings.summary() for route, timings in sorted(_timings.items())}


def reset_route_timings() -> None:
    _timings.clear()


class TimingMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the log context and records per-route latency.

    Adds ``X-Request-ID`` and ``X-Response-Time-Ms`` headers to every
    response.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        duration = time.perf_counter() - start

        route = f"{request.method} {request.url.path}"
        timings = _timings[route]
        timings.samples.append(duration)
        if response.status_code >= 500:
            timings.errors += 1

        duration_ms = round(duration * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        log = logger.warning if duration >= SLOW_REQUEST_SECONDS else logger.debug
        log("Request completed", route=route, status=response.status_code, duration_ms=duration_ms)

        return response
