"""Account lifecycle: registration, email verification, password reset/change, 2FA toggle."""

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.app_exceptions import (
    ConflictError,
    InvalidCredentials,
    NotFoundError,
    ValidationError,
)
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import (
    generate_verification_token,
    hash_password,
    utcnow,
    verify_password,
)
from app.db.upsert import insert_for
from app.models.auth import EmailVerification, PasswordReset, TwoFactorAction, TwoFactorType
from app.models.user import User
from app.services import session_store, two_factor
from app.services.auth_service import get_user_by_email, normalize_email
from app.services.email.service import send_templated_email

logger = get_logger(__name__)


@dataclass
class ChangePasswordOutcome:
    kind: Literal["TWO_FACTOR", "PASSWORD_CHANGE"]


def _link(path: str, user_id: UUID, token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}/{user_id}/{token}"


def _same_token(stored: str, supplied: str) -> bool:
    return secrets.compare_digest(stored.encode(), (supplied or "").encode())


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _issue_link_token(db: AsyncSession, model, user: User, now: datetime | None) -> str:
    """Upsert the single link token a user may hold for ``model``."""
    token, expires_at = generate_verification_token(now=now)
    stmt = insert_for(db, model).values(user_id=user.id, token=token, expires_at=expires_at)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"token": stmt.excluded.token, "expires_at": stmt.excluded.expires_at},
    )
    await db.execute(stmt)
    return token


async def _send_verification(db: AsyncSession, user: User, now: datetime | None) -> None:
    token = await _issue_link_token(db, EmailVerification, user, now)
    await send_templated_email(
        user.email,
        "verify_email",
        {
            "verify_url": _link(settings.VERIFY_EMAIL_PATH, user.id, token),
            "expires_minutes": settings.VERIFICATION_TOKEN_EXPIRE_MINUTES,
        },
    )


async def register(db: AsyncSession, email: str, password: str, now: datetime | None = None) -> User:
    """Create an unverified account and email its verification link.

    Nothing is persisted when the email cannot be delivered.
    """
    email = normalize_email(email)
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("User already exists")

    user = User(email=email, password_hash=hash_password(password), is_verified=False)
    try:
        db.add(user)
        await db.flush()
    except IntegrityError:
        # lost a race with another registration for the same email
        await db.rollback()
        raise ConflictError("User already exists") from None

    await _send_verification(db, user, now)
    await db.commit()
    logger.info("User registered", extra={"user_id": str(user.id)})
    return user


async def verify_email(db: AsyncSession, user_id: UUID, token: str, now: datetime | None = None) -> User:
    """Consume an email verification link."""
    user = await db.get(User, user_id)
    if user is None:
        raise ValidationError("Invalid verification link", code="INVALID_VERIFICATION_TOKEN")
    if user.is_verified:
        raise ValidationError("Email already verified", code="ALREADY_VERIFIED")

    result = await db.execute(select(EmailVerification).where(EmailVerification.user_id == user_id))
    record = result.scalar_one_or_none()
    if record is None or not _same_token(record.token, token):
        raise ValidationError("Invalid verification link", code="INVALID_VERIFICATION_TOKEN")
    if (now or utcnow()) >= record.expires_at:
        raise ValidationError("Verification link has expired", code="VERIFICATION_TOKEN_EXPIRED")

    user.is_verified = True
    await db.execute(delete(EmailVerification).where(EmailVerification.id == record.id))
    await send_templated_email(user.email, "verification_complete", {})
    await db.commit()
    logger.info("Email verified", extra={"user_id": str(user.id)})
    return user


async def resend_verification(db: AsyncSession, email: str, now: datetime | None = None) -> None:
    """Replace the pending verification link and send it again."""
    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFoundError("User not found")
    if user.is_verified:
        raise ValidationError("Email already verified", code="ALREADY_VERIFIED")

    await _send_verification(db, user, now)
    await db.commit()


async def request_password_reset(db: AsyncSession, email: str, now: datetime | None = None) -> None:
    """Email a reset link when the account exists. Silent otherwise."""
    user = await get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return

    token = await _issue_link_token(db, PasswordReset, user, now)
    await send_templated_email(
        user.email,
        "password_reset",
        {
            "reset_url": _link(settings.RESET_PASSWORD_PATH, user.id, token),
            "expires_minutes": settings.VERIFICATION_TOKEN_EXPIRE_MINUTES,
        },
    )
    await db.commit()


async def reset_password(
    db: AsyncSession,
    user_id: UUID,
    token: str,
    password: str,
    now: datetime | None = None,
) -> None:
    """Consume a reset link, set the new password and end every session."""
    user = await db.get(User, user_id)
    result = await db.execute(select(PasswordReset).where(PasswordReset.user_id == user_id))
    record = result.scalar_one_or_none()
    if user is None or record is None or not _same_token(record.token, token):
        raise ValidationError("Invalid or expired reset link", code="INVALID_RESET_TOKEN")
    if not user.password_hash:
        raise ValidationError("This account signs in with Google", code="SOCIAL_ACCOUNT")
    if (now or utcnow()) >= record.expires_at:
        raise ValidationError("Reset link has expired", code="RESET_TOKEN_EXPIRED")
    if verify_password(password, user.password_hash):
        raise ValidationError("New password cannot be the same as the old password", code="PASSWORD_REUSE")

    user.password_hash = hash_password(password)
    await db.execute(delete(PasswordReset).where(PasswordReset.id == record.id))
    await session_store.delete_all_sessions_for_user(db, user.id)
    await send_templated_email(user.email, "password_change_complete", {})
    await db.commit()
    logger.info("Password reset", extra={"user_id": str(user.id)})


def _check_new_password(user: User, new_password: str) -> None:
    if user.password_hash and verify_password(new_password, user.password_hash):
        raise ValidationError(
            "New password cannot be the same as the current password", code="PASSWORD_REUSE"
        )


async def change_password(
    db: AsyncSession,
    user_id: UUID,
    current_password: str,
    new_password: str,
    now: datetime | None = None,
) -> ChangePasswordOutcome:
    """Change the password, or start a PASSWORD_CHANGE code when 2FA is on."""
    user = await _get_user(db, user_id)
    if not user.password_hash:
        raise ValidationError("This account signs in with Google", code="SOCIAL_ACCOUNT")
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")
    if new_password == current_password:
        raise ValidationError(
            "New password cannot be the same as the current password", code="PASSWORD_REUSE"
        )

    if user.is_two_factor_enabled:
        await two_factor.initiate(db, user, TwoFactorType.PASSWORD_CHANGE, now=now)
        await db.commit()
        return ChangePasswordOutcome(kind="TWO_FACTOR")

    user.password_hash = hash_password(new_password)
    await send_templated_email(user.email, "password_change_complete", {})
    await db.commit()
    logger.info("Password changed", extra={"user_id": str(user.id)})
    return ChangePasswordOutcome(kind="PASSWORD_CHANGE")


async def verify_change_password(
    db: AsyncSession,
    user_id: UUID,
    code: str,
    new_password: str,
    now: datetime | None = None,
) -> None:
    """Apply a password change deferred behind a PASSWORD_CHANGE code."""
    user = await _get_user(db, user_id)
    _check_new_password(user, new_password)
    await two_factor.verify(db, user.id, TwoFactorType.PASSWORD_CHANGE, code, now=now)

    user.password_hash = hash_password(new_password)
    await send_templated_email(user.email, "password_change_complete", {})
    await db.commit()
    logger.info("Password changed after two-factor", extra={"user_id": str(user.id)})


async def toggle_two_factor(db: AsyncSession, user_id: UUID, now: datetime | None = None) -> TwoFactorAction:
    """Start a TWO_FACTOR code whose action flips the user's current setting."""
    user = await _get_user(db, user_id)
    action = TwoFactorAction.DISABLE if user.is_two_factor_enabled else TwoFactorAction.ENABLE
    await two_factor.initiate(db, user, TwoFactorType.TWO_FACTOR, action=action, now=now)
    await db.commit()
    return action


async def verify_two_factor(db: AsyncSession, user_id: UUID, code: str, now: datetime | None = None) -> User:
    """Apply the action stored with the TWO_FACTOR code."""
    user = await _get_user(db, user_id)
    action = await two_factor.verify(db, user.id, TwoFactorType.TWO_FACTOR, code, now=now)

    user.is_two_factor_enabled = action == TwoFactorAction.ENABLE
    template = "two_factor_enabled" if user.is_two_factor_enabled else "two_factor_disabled"
    await send_templated_email(user.email, template, {})
    await db.commit()
    logger.info(
        "Two-factor setting changed",
        extra={"user_id": str(user.id), "enabled": user.is_two_factor_enabled},
    )
    return user
