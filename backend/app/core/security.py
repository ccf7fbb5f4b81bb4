"""Security utilities: password hashing, signed JWT pairs, one-time codes."""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal
from uuid import uuid4

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from app.core.app_exceptions import TokenExpired, TokenInvalid
from app.core.config import settings
from app.core.logging import get_logger
from app.db.types import utcnow

logger = get_logger(__name__)

TokenType = Literal["access", "refresh"]

# Password hasher instance
_password_hasher = PasswordHasher()
_dummy_hash: str | None = None


def hash_password(plain_password: str) -> str:
    """Hash a plain password using Argon2."""
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain password against a hash."""
    try:
        _password_hasher.verify(password_hash, plain_password)
        return True
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError) as e:
        logger.warning(f"Password verification error: {e}")
        return False


def verify_password_constant_time(plain_password: str, password_hash: str | None) -> bool:
    """Verify a password, spending the same work when no hash exists.

    Used by credential checks so an unknown email and a wrong password take
    comparable time.
    """
    global _dummy_hash
    if password_hash:
        return verify_password(plain_password, password_hash)
    if _dummy_hash is None:
        _dummy_hash = hash_password(secrets.token_urlsafe(16))
    verify_password(plain_password, _dummy_hash)
    return False


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    type: TokenType


def _secret_for(token_type: TokenType) -> str:
    secret = settings.JWT_ACCESS_SECRET if token_type == "access" else settings.JWT_REFRESH_SECRET
    if not secret:
        raise ValueError(f"JWT secret for {token_type} tokens must be set")
    return secret


def _lifetime_for(token_type: TokenType) -> timedelta:
    if token_type == "access":
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


def create_token(user_id: str, email: str, token_type: TokenType, now: datetime | None = None) -> str:
    """Create a signed JWT of the given type."""
    now = now or utcnow()
    payload = {
        "userId": str(user_id),
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": now + _lifetime_for(token_type),
        "jti": str(uuid4()),
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.JWT_ALG)


def issue_token_pair(user_id: str, email: str, now: datetime | None = None) -> TokenPair:
    """Mint an independently signed access/refresh pair. No side effects."""
    return TokenPair(
        access_token=create_token(user_id, email, "access", now=now),
        refresh_token=create_token(user_id, email, "refresh", now=now),
    )


def verify_token(token: str, expected_type: TokenType) -> TokenClaims:
    """Verify signature, expiry and type of a JWT.

    Raises:
        TokenExpired: the embedded expiry has passed
        TokenInvalid: bad signature, malformed token or wrong token type
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_type),
            algorithms=[settings.JWT_ALG],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Token rejected", extra={"reason_code": "token_expired", "token_type": expected_type})
        raise TokenExpired() from None
    except jwt.InvalidTokenError as e:
        logger.warning(
            "Token rejected",
            extra={"reason_code": "token_invalid", "token_type": expected_type, "error": str(e)},
        )
        raise TokenInvalid() from None

    if payload.get("type") != expected_type or not payload.get("userId"):
        logger.warning("Token rejected", extra={"reason_code": "token_invalid", "token_type": expected_type})
        raise TokenInvalid()

    return TokenClaims(user_id=payload["userId"], email=payload.get("email", ""), type=expected_type)


def generate_verification_token(now: datetime | None = None) -> tuple[str, datetime]:
    """Generate an opaque single-use token for email verification / password reset links."""
    now = now or utcnow()
    expires_at = now + timedelta(minutes=settings.VERIFICATION_TOKEN_EXPIRE_MINUTES)
    return secrets.token_hex(32), expires_at


def generate_two_factor_code(length: int | None = None, now: datetime | None = None) -> tuple[str, datetime]:
    """Generate a uniformly random, zero-padded numeric code."""
    length = length or settings.TWO_FACTOR_CODE_LENGTH
    now = now or utcnow()
    code = str(secrets.randbelow(10**length)).zfill(length)
    expires_at = now + timedelta(minutes=settings.TWO_FACTOR_CODE_EXPIRE_MINUTES)
    return code, expires_at
