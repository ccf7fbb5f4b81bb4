"""Request-scoped context: request id propagation."""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Get current request id (if in a request context)."""

    return request_id_var.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Ensure request_id exists on request.state and echo it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get("X-Request-ID")
        request_id = incoming or str(uuid.uuid4())

        # Store on request.state for handlers and error handlers
        request.state.request_id = request_id
        token_request_id = request_id_var.set(request_id)

        try:
            response = await call_next(request)
        finally:
            # Prevent context leakage across requests
            request_id_var.reset(token_request_id)
        response.headers["X-Request-ID"] = request_id
        return response
