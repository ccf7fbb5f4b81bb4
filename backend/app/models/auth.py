"""Authentication models: sessions, refresh tokens and single-use verification artifacts."""

import uuid
from enum import Enum

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class TwoFactorType(str, Enum):
    """Purpose a two-factor code gates."""

    LOGIN = "LOGIN"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    TWO_FACTOR = "TWO_FACTOR"  # enable/disable 2FA itself


class TwoFactorAction(str, Enum):
    ENABLE = "ENABLE"
    DISABLE = "DISABLE"


class AuthSession(Base):
    """One session per (user, device fingerprint); owns exactly one refresh token."""

    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String, nullable=False)
    user_agent = Column(String, nullable=False)
    device_type = Column(String, nullable=True)
    device_name = Column(String, nullable=True)
    browser = Column(String, nullable=True)
    os = Column(String, nullable=True)
    last_used = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="sessions", lazy="selectin")
    refresh_token = relationship(
        "RefreshToken",
        back_populates="session",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "ip_address", "user_agent", name="uq_sessions_user_fingerprint"),
    )


class RefreshToken(Base):
    """Refresh token owned by exactly one session. Rotated in place."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    token = Column(String, unique=True, nullable=False, index=True)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    # Relationships
    session = relationship("AuthSession", back_populates="refresh_token")


class TwoFactorToken(Base):
    """Pending numeric code; at most one per (user, type)."""

    __tablename__ = "two_factor_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # TwoFactorType values
    code = Column(String, nullable=False)
    action = Column(String, nullable=True)  # TwoFactorAction values, toggle flow only
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_two_factor_user_type"),)


class EmailVerification(Base):
    """Email verification link token, one per user."""

    __tablename__ = "email_verifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    token = Column(String, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)


class PasswordReset(Base):
    """Password reset link token, one per user."""

    __tablename__ = "password_resets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    token = Column(String, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
