"""User model."""

import uuid

from sqlalchemy import Boolean, Column, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    """User model."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)  # Nullable for Google-only users
    is_verified = Column(Boolean, default=False, nullable=False)
    is_two_factor_enabled = Column(Boolean, default=False, nullable=False)

    # Linked Google identity; tokens are Fernet-encrypted at rest
    google_id = Column(String, unique=True, nullable=True)
    google_access_token = Column(String, nullable=True)
    google_refresh_token = Column(String, nullable=True)
    google_token_expiry = Column(UTCDateTime, nullable=True)

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    avatar_url = Column(String, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    sessions = relationship("AuthSession", back_populates="user", lazy="raise")

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
