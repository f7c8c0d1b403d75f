"""Request tracing — one trace id per HTTP request.

The id comes from the caller's X-Trace-ID header when it is well formed and
is generated otherwise. It is echoed on the response and attached to every
log record emitted while the request is handled (see TraceIdFilter).
"""

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"
NO_TRACE = "-"

_TRACE_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def resolve_trace_id(header_value: str | None) -> str:
    """Reuse a caller-supplied id if it is safe to log and echo, else mint one."""
    if header_value and _TRACE_ID_RE.match(header_value):
        return header_value
    return str(uuid.uuid4())


class TraceIdFilter(logging.Filter):
    """Copy the current trace id onto log records as `request_id` ('-' outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = trace_id_var.get() or NO_TRACE
        return True


class TraceIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        trace_id = resolve_trace_id(request.headers.get(TRACE_HEADER))
        token = trace_id_var.set(trace_id)
        try:
            start = time.perf_counter()
            response = await call_next(request)
            logger.debug(
                "%s %s -> %d in %.1f ms",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - start) * 1000,
            )
        finally:
            trace_id_var.reset(token)
        response.headers[TRACE_HEADER] = trace_id
        return response
