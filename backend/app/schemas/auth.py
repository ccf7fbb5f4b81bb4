"""Authentication schemas.

Wire format is camelCase; Python attributes stay snake_case.
"""

import re
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.core.config import settings

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]+$")
PASSWORD_RULES = (
    "Password must contain at least one uppercase letter, one lowercase letter, "
    "one number, and one special character"
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _check_strength(v: str) -> str:
    if not PASSWORD_PATTERN.match(v):
        raise ValueError(PASSWORD_RULES)
    return v


def _check_code(v: str) -> str:
    length = settings.TWO_FACTOR_CODE_LENGTH
    if len(v) != length or not v.isdigit():
        raise ValueError(f"Code must be {length} digits")
    return v


# Request schemas
class RegisterRequest(CamelModel):
    """Register request schema."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        if len(v) > 255:
            raise ValueError("Email must be less than 255 characters")
        return v.lower().strip()

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_strength(v)


class LoginRequest(CamelModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=8)
    refresh_token: str | None = None  # lets a browser continue its session

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class VerifyLoginTwoFactorRequest(CamelModel):
    user_id: UUID
    code: str = Field(..., min_length=1)

    @field_validator("code")
    @classmethod
    def code_format(cls, v: str) -> str:
        return _check_code(v)


class ChangePasswordRequest(CamelModel):
    """Change password request schema."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)
    confirm_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class VerifyChangePasswordRequest(CamelModel):
    new_password: str = Field(..., min_length=8, max_length=100)
    code: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_strength(v)

    @field_validator("code")
    @classmethod
    def code_format(cls, v: str) -> str:
        return _check_code(v)


class VerifyTwoFactorRequest(CamelModel):
    code: str = Field(..., min_length=1)

    @field_validator("code")
    @classmethod
    def code_format(cls, v: str) -> str:
        return _check_code(v)


class GoogleAuthRequest(CamelModel):
    code: str = Field(..., min_length=1)


class VerifyEmailRequest(CamelModel):
    user_id: UUID
    token: str = Field(..., min_length=1)


class EmailRequest(CamelModel):
    """Body carrying only an email (resend verification, request reset)."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class ResetPasswordRequest(CamelModel):
    """Password reset confirmation schema."""

    user_id: UUID
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_strength(v)


# Response schemas
class UserResponse(CamelModel):
    """User response schema."""

    id: UUID
    email: str
    is_verified: bool
    is_two_factor_enabled: bool
    has_password: bool
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    created_at: datetime


class RegisteredUserResponse(CamelModel):
    id: UUID
    email: str
    created_at: datetime


class SessionResponse(CamelModel):
    """Session response schema."""

    id: UUID
    ip_address: str
    user_agent: str
    device_type: str | None = None
    device_name: str | None = None
    browser: str | None = None
    os: str | None = None
    last_used: datetime
    expires_at: datetime
    created_at: datetime


class TokensResponse(CamelModel):
    access_token: str
    refresh_token: str


class AuthPayload(CamelModel):
    """Signed-in payload. ``tokens`` only for header-transport clients."""

    user: UserResponse
    session: SessionResponse
    tokens: TokensResponse | None = None


class IdentityResponse(CamelModel):
    user_id: UUID
    email: str
    session_id: UUID


class ApiResponse(BaseModel):
    """Success envelope: {status: "success", message, data}."""

    status: Literal["success"] = "success"
    message: str
    data: Any = None
