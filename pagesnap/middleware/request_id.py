"""Request ID middleware for tracing a capture request through its attempts.

Reads X-Request-ID from the incoming request or generates a short hex id. The
id lives in a ContextVar so every log line emitted while the request runs
(including from retry attempts and browser teardown) carries it.
"""

import contextvars
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            request_id_var.reset(token)


def get_request_id() -> str:
    """Current request id, or an empty string outside a request."""
    return request_id_var.get()


def bind_request_id(rid: str | None = None) -> contextvars.Token:
    """Set a request id outside HTTP handling (CLI runs). Returns the reset token."""
    return request_id_var.set(rid or new_request_id())
