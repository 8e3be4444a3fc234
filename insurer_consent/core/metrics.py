from __future__ import annotations

import time
from typing import Iterable

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Metric objects (singletons)
# Business counters
consents_created_total = Counter(
    "consents_created_total",
    "Total number of consents successfully created"
)
consents_authorised_total = Counter(
    "consents_authorised_total",
    "Total number of consents moved to AUTHORISED"
)
consents_rejected_total = Counter(
    "consents_rejected_total",
    "Total number of consents moved to REJECTED",
    labelnames=("reason_code",),
)
idempotency_replays_total = Counter(
    "idempotency_replays_total",
    "Total number of responses served from the idempotency store"
)

UNMATCHED_ROUTE = "unmatched"

requests_total = Counter(
    "http_requests_total",
    "HTTP requests by method, route template and status code",
    labelnames=("method", "route", "status_code"),
)

# Request latency histogram (seconds), labeled by route template and status code
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("route", "status_code"),
)

# Public helpers to increment business metrics
def inc_consents_created() -> None:
    consents_created_total.inc()

def inc_consents_authorised() -> None:
    consents_authorised_total.inc()

def inc_consents_rejected(reason_code: str, amount: int = 1) -> None:
    consents_rejected_total.labels(reason_code=reason_code).inc(amount)

def inc_idempotency_replays() -> None:
    idempotency_replays_total.inc()

# Middleware for request timing and counting
class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_routes: Iterable[str] | None = None):
        super().__init__(app)
        self.exclude_routes = set(exclude_routes or [])

    async def dispatch(self, request: Request, call_next):
        # /metrics and /health are excluded by raw path
        if request.url.path in self.exclude_routes:
            return await call_next(request)

        start = time.perf_counter()
        status_code = "500"  # recorded as such if the app raises
        try:
            response: Response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            self._observe(request, status_code, time.perf_counter() - start)

    def _observe(self, request: Request, status_code: str, duration: float) -> None:
        route = self._resolve_route_template(request)
        request_latency_seconds.labels(route=route, status_code=status_code).observe(duration)
        requests_total.labels(method=request.method, route=route, status_code=status_code).inc()

    @staticmethod
    def _resolve_route_template(request: Request) -> str:
        # Route templates keep label cardinality low; consent ids never become labels
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            return route.path
        return UNMATCHED_ROUTE

# /metrics router
router = APIRouter()

@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint():
    data = generate_latest()  # Prometheus exposition text
    return PlainTextResponse(content=data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)
