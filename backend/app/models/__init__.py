"""Database models."""

# Import all models here so metadata.create_all sees every table
from app.models.auth import (
    AuthSession,
    EmailVerification,
    PasswordReset,
    RefreshToken,
    TwoFactorAction,
    TwoFactorToken,
    TwoFactorType,
)
from app.models.user import User

__all__ = [
    "User",
    "AuthSession",
    "RefreshToken",
    "TwoFactorToken",
    "TwoFactorType",
    "TwoFactorAction",
    "EmailVerification",
    "PasswordReset",
]
