"""Request correlation: one ID per HTTP request or cable connection.

Learn: A caller-supplied X-Request-ID is only trusted when it looks like an
ID (short, no spaces or control characters); anything else is replaced, so a
client can't smuggle junk into our log lines. The ID is bound to structlog's
contextvars together with method and path, so every log line for the request
(including stream publishes it triggers) carries it.

BaseHTTPMiddleware never sees websocket scopes, so the cable handler calls
resolve_request_id() itself when a socket connects.
"""

import re
import time
import uuid
from typing import Mapping

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """Return the caller's request ID if well-formed, else a fresh one."""
    incoming = headers.get(REQUEST_ID_HEADER)
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID, log its outcome, echo the ID back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "eventbell.request.error",
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            raise

        logger.info(
            "eventbell.request",
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
