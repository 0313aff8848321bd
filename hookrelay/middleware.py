import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

DELIVERY_HEADER = "X-GitHub-Delivery"
EVENT_HEADER = "X-GitHub-Event"
SILENT_PATHS = frozenset({"/"})


def request_context(request: Request) -> dict:
    """Delivery headers worth attaching to every log line of a request."""
    context = {}
    if delivery_id := request.headers.get(DELIVERY_HEADER):
        context["delivery_id"] = delivery_id
    if event := request.headers.get(EVENT_HEADER):
        context["github_event"] = event
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**request_context(request))

        start = time.monotonic()
        log = logger.bind(
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            log.error(
                "Request raised",
                duration=round((time.monotonic() - start) * 1000, 2),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        if request.url.path in SILENT_PATHS and response.status_code < 400:
            return response

        level = "info"
        if response.status_code >= 500:
            level = "error"
        elif response.status_code >= 400:
            level = "warning"

        getattr(log, level)(
            "Request handled",
            status_code=response.status_code,
            duration=round((time.monotonic() - start) * 1000, 2),
        )
        return response
