"""Test seed helpers for creating test data."""

import uuid
from datetime import datetime, timedelta
from typing import Any

from httpx import AsyncClient, Response
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password, utcnow
from app.models.auth import AuthSession, RefreshToken, TwoFactorToken
from app.models.user import User

DEFAULT_PASSWORD = "TestPass123!"


async def create_test_user(
    db: AsyncSession,
    email: str | None = None,
    password: str | None = DEFAULT_PASSWORD,
    is_verified: bool = True,
    is_two_factor_enabled: bool = False,
    **kwargs: Any,
) -> User:
    """
    Create a test user with deterministic defaults.

    Args:
        db: Database session
        email: User email (random when omitted)
        password: Plain password (will be hashed); None for a Google-only account
        is_verified: Whether email is verified
        is_two_factor_enabled: Whether login requires an emailed code
        **kwargs: Additional user attributes

    Returns:
        Created User instance
    """
    if email is None:
        email = f"user_{uuid.uuid4().hex[:8]}@example.com"

    user = User(
        id=kwargs.pop("id", uuid.uuid4()),
        email=email.lower().strip(),
        password_hash=hash_password(password) if password else None,
        is_verified=is_verified,
        is_two_factor_enabled=is_two_factor_enabled,
        **kwargs,
    )
    db.add(user)
    await db.commit()
    return user


async def login(
    client: AsyncClient,
    email: str,
    password: str = DEFAULT_PASSWORD,
    headers: dict[str, str] | None = None,
    **body: Any,
) -> Response:
    return await client.post(
        "/v1/auth/login", json={"email": email, "password": password, **body}, headers=headers
    )


async def count_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(AuthSession).where(AuthSession.user_id == user_id)
    )
    return result.scalar_one()


async def get_sessions(db: AsyncSession, user_id: uuid.UUID) -> list[AuthSession]:
    result = await db.execute(
        select(AuthSession)
        .where(AuthSession.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_refresh_token_row(db: AsyncSession, session_id: uuid.UUID) -> RefreshToken | None:
    result = await db.execute(
        select(RefreshToken)
        .where(RefreshToken.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_two_factor_token(db: AsyncSession, user_id: uuid.UUID, type: str) -> TwoFactorToken | None:
    result = await db.execute(
        select(TwoFactorToken)
        .where(TwoFactorToken.user_id == user_id, TwoFactorToken.type == type)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def expire_sessions(db: AsyncSession, user_id: uuid.UUID, ago: timedelta = timedelta(minutes=1)) -> None:
    """Move every session of a user past its own expiry."""
    await db.execute(
        update(AuthSession).where(AuthSession.user_id == user_id).values(expires_at=utcnow() - ago)
    )
    await db.commit()


async def expire_two_factor_tokens(db: AsyncSession, user_id: uuid.UUID) -> None:
    await db.execute(
        update(TwoFactorToken)
        .where(TwoFactorToken.user_id == user_id)
        .values(expires_at=utcnow() - timedelta(seconds=1))
    )
    await db.commit()


async def reload_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


def past(**delta: Any) -> datetime:
    return utcnow() - timedelta(**delta)
