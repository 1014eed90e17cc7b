"""Prometheus metrics for provider calls, analyses and the ops app."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "Brand visibility tracker application info")
APP_INFO.info({"version": "1.0.0", "name": "brand_visibility_tracker"})

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

PROVIDER_REQUESTS = Counter(
    "llm_provider_requests_total",
    "Total outbound LLM provider calls",
    ["provider", "outcome"],
)

PROVIDER_LATENCY = Histogram(
    "llm_provider_latency_seconds",
    "LLM provider call latency in seconds",
    ["provider"],
    buckets=[0.5, 1, 2.5, 5, 10, 20, 30, 60, 90, 120],
)

ANALYSIS_RUNS = Counter(
    "brand_prompt_analyses_total",
    "Brand prompt analysis task outcomes",
    ["outcome"],
)

MODELS_DISABLED = Counter(
    "llm_models_disabled_total",
    "Models disabled by the health check",
    ["provider"],
)


# --- Middleware ---


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = request.url.path

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
