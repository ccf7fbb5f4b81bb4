"""Error handling and consistent error response format."""

import uuid
from typing import Any, Literal

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.app_exceptions import AppError
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class FieldError(BaseModel):
    """One validation message for one offending field."""

    path: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope.

    Format: {status: "error", code, message, errors?, request_id}
    """

    status: Literal["error"] = "error"
    code: str
    message: str
    errors: list[dict[str, Any]] | None = None
    request_id: str | None = None


def get_request_id(request: Request) -> str:
    """Get request ID from request state or generate new one."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid.uuid4())


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            code=code,
            message=message,
            errors=errors,
            request_id=get_request_id(request),
        ).model_dump(exclude_none=True),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors (422), keeping the first message per field."""
    by_path: dict[str, str] = {}
    for error in exc.errors():
        # Drop the leading "body"/"query" marker
        loc = [str(part) for part in error.get("loc", [])][1:] or ["body"]
        path = ".".join(loc)
        if path not in by_path:
            by_path[path] = error.get("msg", "Invalid value")

    errors = [FieldError(path=path, message=message).model_dump() for path, message in by_path.items()]
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Validation failed",
        errors,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    if isinstance(exc, AppError):
        return _error_response(request, exc.status_code, exc.code, exc.message, exc.errors)

    # Handle standard HTTPException
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", "HTTP_ERROR")
        message = exc.detail.get("message", "An error occurred")
    else:
        code = "HTTP_ERROR"
        message = str(exc.detail)
    return _error_response(request, exc.status_code, code, message)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions (500)."""
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={
            "request_id": get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        },
    )

    # Outside development, don't expose internal error details
    if settings.ENV in ("dev", "test"):
        message = str(exc) or type(exc).__name__
    else:
        message = "Something went wrong!"

    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)
