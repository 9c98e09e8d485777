"""
ASGI middleware recording Prometheus HTTP metrics.
"""
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from creditledger.utils.metrics import errors_total, http_request_duration_seconds, http_requests_total

UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
    re.IGNORECASE
)
NUMERIC_SEGMENT_PATTERN = re.compile(r'/\d+(?=/|$)')


def normalize_path(path: str) -> str:
    """Replace user and entry IDs with {id} to keep label cardinality bounded."""
    path = UUID_PATTERN.sub('{id}', path)
    return NUMERIC_SEGMENT_PATTERN.sub('/{id}', path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests, observes latency and tallies 4xx/5xx responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        path = normalize_path(request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise

        http_requests_total.labels(method=request.method, path=path, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=request.method, path=path).observe(
            time.perf_counter() - start_time
        )
        if response.status_code >= 400:
            errors_total.labels(error_type=f"{response.status_code // 100}xx").inc()

        return response
