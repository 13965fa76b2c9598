"""
Access logging middleware.

One JSON line per request with status and timing. Webhook deliveries also
log the GitHub event type. Request bodies and headers other than the event
type and delivery id are never logged.
"""
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ciserver.core.metrics import metrics
from ciserver.core.request_context import DELIVERY_HEADER, EVENT_HEADER, set_request_id

logger = logging.getLogger("ciserver.request")

# Polled by probes and scrapers; counted but not logged
QUIET_PATHS = frozenset({"/health", "/metrics"})


def _count_status(status_code: int) -> None:
    metrics.inc("requests_total")
    bucket = {2: "requests_2xx", 4: "requests_4xx", 5: "requests_5xx"}.get(status_code // 100)
    if bucket:
        metrics.inc(bucket)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, echoes it as X-Request-Id and logs the request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = set_request_id(request.headers.get(DELIVERY_HEADER))

        started = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = int((time.perf_counter() - started) * 1000)

        response.headers["X-Request-Id"] = request_id
        _count_status(response.status_code)

        path = request.url.path
        if path in QUIET_PATHS:
            return response

        message = "request"
        event_type = request.headers.get(EVENT_HEADER)
        if event_type:
            message = f"request github_event={event_type}"

        logger.info(
            message,
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        return response
