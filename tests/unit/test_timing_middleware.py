"""Unit tests for timing middleware and route latency windows."""

from collections import deque

import pytest
from fastapi.testclient import TestClient

from catalog_sync.middleware.timing import (
    MAX_SAMPLES,
    RouteTimings,
    get_route_timings,
    reset_route_timings,
)


class TestRouteTimings:
    """Tests for latency statistics calculation."""

    def test_empty_window(self) -> None:
        summary = RouteTimings().summary()
        assert summary == {"count": 0, "errors": 0, "avg_ms": 0.0, "p50_ms": 0.0, "p95_ms": 0.0}

    def test_multiple_samples(self) -> None:
        timings = RouteTimings(samples=deque([0.1, 0.2, 0.3, 0.4, 0.5], maxlen=MAX_SAMPLES))
        summary = timings.summary()
        assert summary["count"] == 5
        assert summary["avg_ms"] == pytest.approx(300.0)
        assert summary["p50_ms"] == 300.0
        assert summary["p95_ms"] == 500.0

    def test_p95_with_outlier(self) -> None:
        """P95 should capture the tail latency."""
        timings = RouteTimings(samples=deque([0.01] * 95 + [1.0] * 5, maxlen=MAX_SAMPLES))
        assert timings.summary()["p95_ms"] == 1000.0

    def test_window_is_bounded(self) -> None:
        timings = RouteTimings()
        timings.samples.extend([0.01] * (MAX_SAMPLES + 20))
        assert timings.summary()["count"] == MAX_SAMPLES


class TestTimingMiddleware:
    def test_headers_and_recorded_route(self, client: TestClient) -> None:
        reset_route_timings()

        response = client.get("/api/v1/health/live", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert float(response.headers["X-Response-Time-Ms"]) >= 0
        assert get_route_timings()["GET /api/v1/health/live"]["count"] == 1

    def test_request_id_generated(self, client: TestClient) -> None:
        response = client.get("/api/v1/health/live")
        assert len(response.headers["X-Request-ID"]) == 12

    def test_timings_endpoint(self, client: TestClient) -> None:
        reset_route_timings()
        client.get("/api/v1/health/live")

        response = client.get("/api/v1/health/timings")

        assert response.status_code == 200
        assert "GET /api/v1/health/live" in response.json()
