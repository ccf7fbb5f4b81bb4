"""Application-specific exceptions for consistent error handling.

Every domain error carries its HTTP status and a stable error code so the
single boundary in ``app.core.errors`` can render a uniform envelope.
"""

from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Application error with standardized error code."""

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    code_default: str = "BAD_REQUEST"
    message_default: str = "Request could not be processed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        code: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ):
        """Initialize application error."""
        status_code = status_code or self.status_code_default
        code = code or self.code_default
        message = message or self.message_default
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "errors": errors,
            },
        )
        self.code = code
        self.message = message
        self.errors = errors


class ValidationError(AppError):
    """Malformed input, optionally with per-field messages."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = "VALIDATION_ERROR"
    message_default = "Validation failed"


class InvalidCredentials(AppError):
    """Unknown email or wrong password. The message never says which."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = "INVALID_CREDENTIALS"
    message_default = "Invalid email or password"


class EmailNotVerified(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code_default = "EMAIL_NOT_VERIFIED"
    message_default = "Please verify your email first"


class Unauthorized(AppError):
    """Missing, invalid or expired credentials for a protected operation."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = "UNAUTHORIZED"
    message_default = "Unauthorized"


class TokenExpired(Unauthorized):
    code_default = "TOKEN_EXPIRED"
    message_default = "Your token has expired. Please log in again."


class TokenInvalid(Unauthorized):
    code_default = "TOKEN_INVALID"
    message_default = "Invalid token. Please log in again."


class SessionNotFound(Unauthorized):
    code_default = "SESSION_NOT_FOUND"
    message_default = "Invalid refresh token - Session not found"


class UserMismatch(Unauthorized):
    code_default = "USER_MISMATCH"
    message_default = "Unauthorized - User ID mismatch"


class SessionMismatch(Unauthorized):
    code_default = "SESSION_MISMATCH"
    message_default = "Session mismatch"


class SessionExpired(Unauthorized):
    code_default = "SESSION_EXPIRED"
    message_default = "Session expired, please login again"


class CodeNotFound(AppError):
    code_default = "CODE_NOT_FOUND"
    message_default = "Invalid or expired code"


class CodeMismatch(AppError):
    code_default = "CODE_MISMATCH"
    message_default = "Invalid code"


class CodeExpired(AppError):
    code_default = "CODE_EXPIRED"
    message_default = "Code has expired"


class ConflictError(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    code_default = "CONFLICT"
    message_default = "Resource already exists"


class NotFoundError(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code_default = "NOT_FOUND"
    message_default = "Resource not found"


class OAuthFailed(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = "OAUTH_FAILED"
    message_default = "Google authentication failed"


class EmailDeliveryFailed(AppError):
    status_code_default = status.HTTP_502_BAD_GATEWAY
    code_default = "EMAIL_DELIVERY_FAILED"
    message_default = "Failed to send email"
