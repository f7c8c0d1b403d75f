"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "Bridge Router application info")
APP_INFO.info({"version": "0.1.0", "name": "bridge_router"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

QUOTE_REQUESTS = Counter(
    "quote_requests_total",
    "Aggregated quote requests by outcome",
    ["outcome"],  # fresh | cached | rejected | invalid
)

PROVIDER_ERRORS = Counter(
    "provider_errors_total",
    "Provider calls that contributed an error instead of a quote",
    ["provider", "kind"],
)

PROVIDER_FANOUT_DURATION = Histogram(
    "provider_fanout_duration_seconds",
    "Wall time of one provider fan-out",
    buckets=[0.1, 0.25, 0.5, 1, 2, 4, 6, 8, 10],
)

CACHE_LOOKUPS = Counter(
    "quote_cache_lookups_total",
    "Quote cache lookups",
    ["result"],  # hit | miss
)

RATE_LIMIT_REJECTIONS = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the inbound rate limiter",
    ["window", "caller"],  # caller: anonymous | key
)


# --- Middleware ---

# Normalize dynamic path segments to reduce cardinality
_PATH_PREFIXES = ("/api/v1/auth/api-keys/", "/api/v1/security/scores/")


def _normalize_path(path: str) -> str:
    """Replace key ids and bridge names in paths with {id}."""
    for prefix in _PATH_PREFIXES:
        if path.startswith(prefix) and len(path) > len(prefix):
            return f"{prefix}{{id}}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
