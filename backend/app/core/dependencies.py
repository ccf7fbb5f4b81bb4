"""FastAPI dependencies for authentication: token extraction and the per-request auth gate."""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.app_exceptions import AppError, SessionExpired, Unauthorized
from app.core.device import parse_user_agent
from app.core.security import utcnow, verify_token
from app.core.security_logging import get_client_ip, get_user_agent, log_security_event
from app.db.session import get_db
from app.models.user import User
from app.services import session_store
from app.services.auth_service import ClientContext

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"
ACCESS_TOKEN_HEADER = "x-access-token"
REFRESH_TOKEN_HEADER = "x-refresh-token"


@dataclass(frozen=True)
class AuthIdentity:
    """Identity attached to an authenticated request."""

    user_id: UUID
    email: str
    session_id: UUID


def _bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def extract_access_token(request: Request) -> str | None:
    """Access token from cookie, then Bearer header, then x-access-token, then query."""
    return (
        request.cookies.get(ACCESS_TOKEN_COOKIE)
        or _bearer_token(request)
        or request.headers.get(ACCESS_TOKEN_HEADER)
        or request.query_params.get(ACCESS_TOKEN_COOKIE)
    )


def extract_refresh_token(request: Request) -> str | None:
    """Refresh token from cookie, then x-refresh-token, then Bearer header, then query.

    The dedicated header wins over Bearer because mobile clients send their
    access token as Bearer alongside it.
    """
    return (
        request.cookies.get(REFRESH_TOKEN_COOKIE)
        or request.headers.get(REFRESH_TOKEN_HEADER)
        or _bearer_token(request)
        or request.query_params.get(REFRESH_TOKEN_COOKIE)
    )


def get_client_context(request: Request) -> ClientContext:
    """Device fingerprint and presented refresh token of the caller."""
    return ClientContext(
        ip_address=get_client_ip(request),
        device=parse_user_agent(get_user_agent(request)),
        refresh_token=extract_refresh_token(request),
    )


async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthIdentity:
    """Dependency gating protected routes.

    Never refreshes: an expired access token is a 401 and the client must
    call the refresh endpoint itself.
    """
    token = extract_access_token(request)
    if not token:
        log_security_event(request, "auth_gate", "deny", reason_code="NO_TOKEN")
        raise Unauthorized("Unauthorized - No token provided")

    try:
        claims = verify_token(token, "access")
        user_id = UUID(claims.user_id)
    except AppError as e:
        log_security_event(request, "auth_gate", "deny", reason_code=e.code)
        raise
    except ValueError:
        log_security_event(request, "auth_gate", "deny", reason_code="TOKEN_INVALID")
        raise Unauthorized("Invalid token. Please log in again.", code="TOKEN_INVALID") from None

    session = await session_store.find_session_for_user(
        db, user_id, get_client_ip(request), get_user_agent(request)
    )
    if session is None:
        log_security_event(request, "auth_gate", "deny", reason_code="SESSION_NOT_FOUND", user_id=user_id)
        raise Unauthorized("Session not found", code="SESSION_NOT_FOUND")
    if utcnow() >= session.expires_at:
        log_security_event(request, "auth_gate", "deny", reason_code="SESSION_EXPIRED", user_id=user_id)
        raise SessionExpired()

    identity = AuthIdentity(user_id=user_id, email=claims.email, session_id=session.id)
    request.state.identity = identity
    return identity


async def get_current_user(
    identity: AuthIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency to get the current authenticated user."""
    user = await db.get(User, identity.user_id)
    if user is None:
        raise Unauthorized("User not found")
    return user


# Type aliases for route signatures
CurrentIdentity = Annotated[AuthIdentity, Depends(get_current_identity)]
CurrentUser = Annotated[User, Depends(get_current_user)]
