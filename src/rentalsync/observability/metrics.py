"""Prometheus metrics for HTTP requests and search-index sync."""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method"],
)

# ----- Search sync -----

SYNC_OPERATIONS = Counter(
    "search_sync_operations_total",
    "Search index sync operations by final state",
    ["operation", "state"],
)
SYNC_DOCUMENTS = Counter(
    "search_sync_documents_total",
    "Documents processed by bulk sync",
    ["outcome"],
)
BULK_UPSERT_ATTEMPTS = Counter(
    "search_bulk_upsert_attempts_total",
    "bulk_upsert calls issued, retries included",
    ["backend"],
)
BULK_SYNC_DURATION = Histogram(
    "search_bulk_sync_duration_seconds",
    "Wall time of a bulk resync",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800),
)
FIELD_DECRYPT_FAILURES = Counter(
    "field_decrypt_failures_total",
    "Values in iv:cipher form that could not be decrypted",
)


def _get_route_path(request: Request) -> str:
    route: Any | None = request.scope.get("route")
    path = getattr(route, "path", None) if route is not None else None
    if isinstance(path, str) and path:
        return path
    return "unknown"


def setup_metrics(app: FastAPI) -> None:
    """Attach Prometheus metrics and /metrics endpoint to the app."""

    @app.middleware("http")
    async def metrics_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        method = request.method
        REQUEST_IN_PROGRESS.labels(method=method).inc()
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.perf_counter() - start
            path = _get_route_path(request)
            status_code = str(response.status_code) if response else "500"
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
            REQUEST_COUNT.labels(method=method, path=path, status_code=status_code).inc()
            REQUEST_IN_PROGRESS.labels(method=method).dec()

    @app.get("/metrics")
    async def metrics() -> Response:
        data = generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)
