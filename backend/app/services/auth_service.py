"""Auth orchestrator: login, two-factor login, refresh, logout and Google sign-in.

Each use case owns its transaction and commits before returning. Results
carry a transport verdict (headers vs cookies); translating it into an HTTP
response is left to the API layer.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.app_exceptions import (
    ConflictError,
    EmailNotVerified,
    InvalidCredentials,
    NotFoundError,
    OAuthFailed,
    SessionExpired,
    SessionMismatch,
    SessionNotFound,
    Unauthorized,
    UserMismatch,
)
from app.core.config import settings
from app.core.device import DeviceFacts, Transport, transport_for
from app.core.logging import get_logger
from app.core.oauth import (
    GoogleOAuthAdapter,
    decrypt_oauth_token,
    encrypt_oauth_token,
    token_expiry_from,
)
from app.core.security import (
    TokenPair,
    issue_token_pair,
    utcnow,
    verify_password_constant_time,
    verify_token,
)
from app.models.auth import AuthSession, TwoFactorType
from app.models.user import User
from app.services import session_store, two_factor

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClientContext:
    """What the caller's request says about the device it comes from."""

    ip_address: str
    device: DeviceFacts
    refresh_token: str | None = None  # presented refresh token, if any


@dataclass
class AuthResult:
    user: User
    session: AuthSession
    tokens: TokenPair
    transport: Transport


@dataclass
class LoginOutcome:
    kind: Literal["LOGIN", "TWO_FACTOR"]
    auth: AuthResult | None = None
    user_id: UUID | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def validate_credentials(db: AsyncSession, email: str, password: str) -> User:
    """Check email/password.

    Unknown email and wrong password fail identically. The verification
    check runs only after the password matched, so it reveals nothing to a
    caller without the password.

    Raises:
        InvalidCredentials: unknown email, wrong password or password-less account
        EmailNotVerified: credentials are right but the email is unconfirmed
    """
    user = await get_user_by_email(db, email)
    password_hash = user.password_hash if user else None
    if not verify_password_constant_time(password, password_hash):
        raise InvalidCredentials()
    if not user.is_verified:
        raise EmailNotVerified()
    return user


async def _establish_session(
    db: AsyncSession,
    user: User,
    client: ClientContext,
    now: datetime | None = None,
) -> AuthResult:
    tokens = issue_token_pair(user.id, user.email, now=now)
    session = await session_store.find_or_create_session(
        db,
        user_id=user.id,
        ip_address=client.ip_address,
        device=client.device,
        refresh_token=tokens.refresh_token,
        existing_refresh_token=client.refresh_token,
        now=now,
    )
    return AuthResult(user=user, session=session, tokens=tokens, transport=transport_for(client.device))


async def login(
    db: AsyncSession,
    email: str,
    password: str,
    client: ClientContext,
    now: datetime | None = None,
) -> LoginOutcome:
    """Password login; defers to an emailed code when two-factor is on."""
    user = await validate_credentials(db, email, password)

    if user.is_two_factor_enabled:
        await two_factor.initiate(db, user, TwoFactorType.LOGIN, now=now)
        await db.commit()
        logger.info("Login deferred to two-factor", extra={"user_id": str(user.id)})
        return LoginOutcome(kind="TWO_FACTOR", user_id=user.id)

    auth = await _establish_session(db, user, client, now=now)
    await db.commit()
    logger.info("Login succeeded", extra={"user_id": str(user.id), "session_id": str(auth.session.id)})
    return LoginOutcome(kind="LOGIN", auth=auth)


async def verify_login_two_factor(
    db: AsyncSession,
    user_id: UUID,
    code: str,
    client: ClientContext,
    now: datetime | None = None,
) -> AuthResult:
    """Consume the pending LOGIN code and finish the login."""
    await two_factor.verify(db, user_id, TwoFactorType.LOGIN, code, now=now)
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    auth = await _establish_session(db, user, client, now=now)
    await db.commit()
    logger.info(
        "Two-factor login succeeded",
        extra={"user_id": str(user.id), "session_id": str(auth.session.id)},
    )
    return auth


async def refresh_session(
    db: AsyncSession,
    refresh_token: str | None,
    client: ClientContext,
    oauth_client: GoogleOAuthAdapter,
    now: datetime | None = None,
) -> AuthResult:
    """Exchange a refresh token for a new pair, rotating it in place.

    The refresh token's own expiry and the session's ``expires_at`` are two
    separate clocks. A stale session is recovered through Google when the
    user has a linked refresh token, otherwise it is deleted.

    Raises:
        Unauthorized: no refresh token presented
        TokenExpired / TokenInvalid: the JWT check failed
        SessionNotFound: no session owns the token
        UserMismatch: token and session disagree on the user
        SessionMismatch: strict mode and the device fingerprint changed
        SessionExpired: the session is stale and could not be recovered
    """
    now = now or utcnow()
    if not refresh_token:
        raise Unauthorized("Invalid refresh token - Token not provided")

    claims = verify_token(refresh_token, "refresh")

    session = await session_store.find_by_refresh_token_value(db, refresh_token)
    if session is None:
        raise SessionNotFound()
    if str(session.user_id) != claims.user_id:
        raise UserMismatch()

    fingerprint_matches = (
        session.ip_address == client.ip_address and session.user_agent == client.device.user_agent
    )
    if not fingerprint_matches:
        if settings.SESSION_FINGERPRINT_STRICT:
            raise SessionMismatch()
        logger.info("Session fingerprint changed (not enforced)", extra={"session_id": str(session.id)})

    if now >= session.expires_at:
        recovered = await _recover_with_google(db, session, client, oauth_client, now)
        if recovered is not None:
            await db.commit()
            return recovered
        await session_store.delete_session(db, session.id)
        await db.commit()
        raise SessionExpired()

    user = session.user
    tokens = issue_token_pair(user.id, user.email, now=now)
    rotated = await session_store.rotate_refresh_token(
        db, session, refresh_token, tokens.refresh_token, now=now
    )
    if rotated is None:
        # another refresh already consumed this token
        await db.rollback()
        raise SessionNotFound()
    await db.commit()
    return AuthResult(user=user, session=rotated, tokens=tokens, transport=transport_for(client.device))


async def _recover_with_google(
    db: AsyncSession,
    stale: AuthSession,
    client: ClientContext,
    oauth_client: GoogleOAuthAdapter,
    now: datetime,
) -> AuthResult | None:
    """Re-authenticate a stale session against Google. ``None`` when not possible."""
    user = stale.user
    google_refresh_token = decrypt_oauth_token(user.google_refresh_token)
    if not google_refresh_token:
        return None

    try:
        google_tokens = await oauth_client.refresh_access_token(google_refresh_token)
        if not google_tokens.get("id_token"):
            raise OAuthFailed("Google did not return an id_token")
        identity = await oauth_client.validate_id_token(google_tokens["id_token"])
        if normalize_email(identity.get("email", "")) != user.email:
            raise OAuthFailed("Google identity does not match the account")
    except OAuthFailed as e:
        logger.warning(
            "Google session recovery failed",
            extra={"user_id": str(user.id), "session_id": str(stale.id), "error": e.message},
        )
        return None

    _store_google_tokens(user, google_tokens, now)
    await db.flush()
    await session_store.delete_session(db, stale.id)
    auth = await _establish_session(db, user, ClientContext(client.ip_address, client.device), now=now)
    logger.info(
        "Stale session recovered through Google",
        extra={"user_id": str(user.id), "session_id": str(auth.session.id)},
    )
    return auth


def _store_google_tokens(user: User, google_tokens: dict, now: datetime) -> None:
    if google_tokens.get("access_token"):
        user.google_access_token = encrypt_oauth_token(google_tokens["access_token"])
    # Google only sends a refresh token on first consent; keep the stored one otherwise
    if google_tokens.get("refresh_token"):
        user.google_refresh_token = encrypt_oauth_token(google_tokens["refresh_token"])
    user.google_token_expiry = token_expiry_from(google_tokens, now)


async def logout(db: AsyncSession, session_id: UUID) -> None:
    """End exactly one session."""
    await session_store.delete_session(db, session_id)
    await db.commit()


async def logout_all(db: AsyncSession, user_id: UUID) -> int:
    """End every session of a user."""
    count = await session_store.delete_all_sessions_for_user(db, user_id)
    await db.commit()
    logger.info("All sessions ended", extra={"user_id": str(user_id), "count": count})
    return count


async def google_auth(
    db: AsyncSession,
    code: str,
    client: ClientContext,
    oauth_client: GoogleOAuthAdapter,
    now: datetime | None = None,
) -> AuthResult:
    """Sign in (or sign up) with a Google authorization code.

    The account is created or linked, marked verified, and signed in without
    a two-factor step.
    """
    now = now or utcnow()
    google_tokens = await oauth_client.exchange_code_for_tokens(code)
    if not google_tokens.get("id_token"):
        raise OAuthFailed()
    identity = await oauth_client.validate_id_token(google_tokens["id_token"])
    email = normalize_email(identity["email"])

    result = await db.execute(select(User).where(User.google_id == identity["sub"]))
    user = result.scalar_one_or_none() or await get_user_by_email(db, email)
    if user is None:
        user = User(email=email)
        db.add(user)

    user.google_id = identity["sub"]
    user.is_verified = True
    user.first_name = identity.get("given_name") or user.first_name
    user.last_name = identity.get("family_name") or user.last_name
    user.avatar_url = identity.get("picture") or user.avatar_url
    _store_google_tokens(user, google_tokens, now)
    try:
        await db.flush()
    except IntegrityError:
        # the email or Google id was claimed by a concurrent sign-up
        await db.rollback()
        raise ConflictError("User already exists") from None

    auth = await _establish_session(db, user, client, now=now)
    await db.commit()
    logger.info(
        "Google sign-in succeeded",
        extra={"user_id": str(user.id), "session_id": str(auth.session.id)},
    )
    return auth
