"""ASGI middleware that records Prometheus metrics for every HTTP request."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

_SKIP_PATHS = frozenset({"/api/health", "/metrics"})

# Collection segments whose following path part is an opaque identifier
_ID_COLLECTIONS = frozenset({"engagements", "milestones"})


def _normalise_path(path: str) -> str:
    """Collapse identifier path segments to keep label cardinality bounded.

    /api/v1/engagements/eng-42/milestones/V1StGXR8/move
        →  /api/v1/engagements/{id}/milestones/{id}/move
    """
    parts = path.rstrip("/").split("/")
    out: list[str] = []
    previous = ""
    for part in parts:
        if previous in _ID_COLLECTIONS and part:
            out.append("{id}")
        else:
            out.append(part)
        previous = part
    return "/".join(out) or "/"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records request count, duration, and in-progress gauge."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        method = request.method

        if path in _SKIP_PATHS:
            return await call_next(request)

        endpoint = _normalise_path(path)

        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = str(response.status_code)
        except Exception:
            status = "500"
            raise
        finally:
            elapsed = time.perf_counter() - start
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(elapsed)
            http_requests_in_progress.labels(method=method).dec()

        return response
