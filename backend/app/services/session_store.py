"""Session store: per-device sessions and their owned refresh tokens.

Sessions are keyed by (user_id, ip_address, user_agent). Creation is an
atomic upsert on that triple, and the owned refresh token is upserted on
its session_id, so concurrent logins from one device converge on a single
row instead of racing. Not-found is reported as ``None``; callers decide
whether that is fatal.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.device import DeviceFacts
from app.core.logging import get_logger
from app.core.security import utcnow
from app.db.upsert import insert_for
from app.models.auth import AuthSession, RefreshToken

logger = get_logger(__name__)


def session_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.SESSION_EXPIRE_DAYS)


def refresh_token_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


async def _load_session(db: AsyncSession, *criteria) -> AuthSession | None:
    stmt = select(AuthSession).where(*criteria).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_by_refresh_token_value(db: AsyncSession, token: str) -> AuthSession | None:
    """Exact lookup of the session owning ``token``; the owning user is eager-loaded."""
    stmt = (
        select(AuthSession)
        .join(RefreshToken, RefreshToken.session_id == AuthSession.id)
        .where(RefreshToken.token == token)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_sessions_for_user(db: AsyncSession, user_id: UUID) -> list[AuthSession]:
    """All sessions of a user, most recently used first."""
    stmt = (
        select(AuthSession)
        .where(AuthSession.user_id == user_id)
        .order_by(AuthSession.last_used.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_session_for_user(
    db: AsyncSession,
    user_id: UUID,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthSession | None:
    """Pick the session a request belongs to.

    Prefers the session whose fingerprint matches the request, else the most
    recently used one.
    """
    sessions = await list_sessions_for_user(db, user_id)
    for session in sessions:
        if session.ip_address == ip_address and session.user_agent == user_agent:
            return session
    return sessions[0] if sessions else None


async def create_session(
    db: AsyncSession,
    *,
    user_id: UUID,
    ip_address: str,
    device: DeviceFacts,
    refresh_token: str,
    now: datetime | None = None,
) -> AuthSession:
    """Upsert the session for (user, ip, user agent) and its refresh token."""
    now = now or utcnow()
    values = {
        "user_id": user_id,
        "ip_address": ip_address,
        "user_agent": device.user_agent,
        "device_type": device.device_type,
        "device_name": device.device_name,
        "browser": device.browser,
        "os": device.os,
        "last_used": now,
        "expires_at": session_expiry(now),
    }
    stmt = insert_for(db, AuthSession).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "ip_address", "user_agent"],
        set_={
            "device_type": stmt.excluded.device_type,
            "device_name": stmt.excluded.device_name,
            "browser": stmt.excluded.browser,
            "os": stmt.excluded.os,
            "last_used": stmt.excluded.last_used,
            "expires_at": stmt.excluded.expires_at,
        },
    )
    await db.execute(stmt)

    session = await _load_session(
        db,
        AuthSession.user_id == user_id,
        AuthSession.ip_address == ip_address,
        AuthSession.user_agent == device.user_agent,
    )
    await _upsert_refresh_token(db, session.id, refresh_token, now)
    return await _load_session(db, AuthSession.id == session.id)


async def _upsert_refresh_token(
    db: AsyncSession, session_id: UUID, token: str, now: datetime
) -> None:
    stmt = insert_for(db, RefreshToken).values(
        session_id=session_id,
        token=token,
        expires_at=refresh_token_expiry(now),
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["session_id"],
        set_={
            "token": stmt.excluded.token,
            "expires_at": stmt.excluded.expires_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def _swap_refresh_token(
    db: AsyncSession, session_id: UUID, current_token: str, new_token: str, now: datetime
) -> bool:
    """Replace the stored token only while it still equals ``current_token``."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.session_id == session_id, RefreshToken.token == current_token)
        .values(token=new_token, expires_at=refresh_token_expiry(now), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def rotate_refresh_token(
    db: AsyncSession,
    session: AuthSession,
    current_token: str,
    new_token: str,
    now: datetime | None = None,
) -> AuthSession | None:
    """Swap the session's refresh token in place and bump ``last_used``.

    The write is conditional on the stored value still being ``current_token``,
    so of two refreshes presenting the same token only the first wins; the
    loser gets ``None``. The previous token value stops resolving to any
    session. The session's own ``expires_at`` is left alone.
    """
    now = now or utcnow()
    if not await _swap_refresh_token(db, session.id, current_token, new_token, now):
        return None
    session.last_used = now
    await db.flush()
    return await _load_session(db, AuthSession.id == session.id)


async def find_or_create_session(
    db: AsyncSession,
    *,
    user_id: UUID,
    ip_address: str,
    device: DeviceFacts,
    refresh_token: str,
    existing_refresh_token: str | None = None,
    now: datetime | None = None,
) -> AuthSession:
    """Reuse the caller's session or create one; never duplicate.

    Lookup order: the session owning ``existing_refresh_token`` (a browser
    continuing its session), then the (user, ip, user agent) fingerprint.
    A reused session gets a fresh refresh token, ``last_used`` and
    ``expires_at``.
    """
    now = now or utcnow()
    if existing_refresh_token:
        session = await find_by_refresh_token_value(db, existing_refresh_token)
        if (
            session is not None
            and session.user_id == user_id
            and await _swap_refresh_token(db, session.id, existing_refresh_token, refresh_token, now)
        ):
            session.last_used = now
            session.expires_at = session_expiry(now)
            await db.flush()
            logger.info("Session reused by refresh token", extra={"session_id": str(session.id)})
            return await _load_session(db, AuthSession.id == session.id)

    return await create_session(
        db,
        user_id=user_id,
        ip_address=ip_address,
        device=device,
        refresh_token=refresh_token,
        now=now,
    )


async def delete_session(db: AsyncSession, session_id: UUID) -> bool:
    """Hard-delete one session and its refresh token."""
    await db.execute(delete(RefreshToken).where(RefreshToken.session_id == session_id))
    result = await db.execute(delete(AuthSession).where(AuthSession.id == session_id))
    return result.rowcount > 0


async def delete_all_sessions_for_user(db: AsyncSession, user_id: UUID) -> int:
    """Hard-delete every session of a user. Returns the number removed."""
    session_ids = select(AuthSession.id).where(AuthSession.user_id == user_id)
    await db.execute(
        delete(RefreshToken)
        .where(RefreshToken.session_id.in_(session_ids))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
    return result.rowcount
