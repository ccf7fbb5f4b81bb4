"""Two-factor gate: short-lived numeric codes for login, password change and 2FA toggling.

Per (user, type) a code moves NONE -> PENDING -> CONSUMED | EXPIRED. At most
one code is pending per purpose; initiating again overwrites it.
"""

import secrets
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.app_exceptions import CodeExpired, CodeMismatch, CodeNotFound
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import generate_two_factor_code, utcnow
from app.db.upsert import insert_for
from app.models.auth import TwoFactorAction, TwoFactorToken, TwoFactorType
from app.models.user import User
from app.services.email.service import send_templated_email

logger = get_logger(__name__)

# Email template announcing the code, by (type, action)
CODE_TEMPLATES = {
    (TwoFactorType.LOGIN, None): "two_factor_login",
    (TwoFactorType.PASSWORD_CHANGE, None): "password_change_two_factor",
    (TwoFactorType.TWO_FACTOR, TwoFactorAction.ENABLE): "enable_two_factor",
    (TwoFactorType.TWO_FACTOR, TwoFactorAction.DISABLE): "disable_two_factor",
}


async def initiate(
    db: AsyncSession,
    user: User,
    type: TwoFactorType,
    action: TwoFactorAction | None = None,
    now: datetime | None = None,
) -> datetime:
    """Store a fresh code for (user, type), replacing any pending one, and email it.

    Returns the code's expiry. The code itself never leaves this function
    except through the email.
    """
    template = CODE_TEMPLATES.get((type, action))
    if template is None:
        raise ValueError(f"No two-factor flow for type={type} action={action}")

    code, expires_at = generate_two_factor_code(now=now)
    stmt = insert_for(db, TwoFactorToken).values(
        user_id=user.id,
        type=type.value,
        code=code,
        action=action.value if action else None,
        expires_at=expires_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "type"],
        set_={
            "code": stmt.excluded.code,
            "action": stmt.excluded.action,
            "expires_at": stmt.excluded.expires_at,
        },
    )
    await db.execute(stmt)

    await send_templated_email(
        user.email,
        template,
        {"code": code, "expires_minutes": settings.TWO_FACTOR_CODE_EXPIRE_MINUTES},
    )
    logger.info(
        "Two-factor code issued",
        extra={"user_id": str(user.id), "type": type.value, "action": action.value if action else None},
    )
    return expires_at


async def verify(
    db: AsyncSession,
    user_id: UUID,
    type: TwoFactorType,
    code: str,
    now: datetime | None = None,
) -> TwoFactorAction | None:
    """Consume the pending code for (user, type).

    Returns the action stored at initiation (toggle flow only).

    Raises:
        CodeNotFound: nothing pending for (user, type)
        CodeMismatch: the supplied code differs
        CodeExpired: the pending code's window has passed
    """
    result = await db.execute(
        select(TwoFactorToken).where(
            TwoFactorToken.user_id == user_id,
            TwoFactorToken.type == type.value,
        )
    )
    token = result.scalar_one_or_none()

    if token is None:
        raise CodeNotFound()
    if not secrets.compare_digest(token.code.encode(), (code or "").encode()):
        raise CodeMismatch()
    if (now or utcnow()) >= token.expires_at:
        raise CodeExpired()

    action = TwoFactorAction(token.action) if token.action else None
    await db.execute(delete(TwoFactorToken).where(TwoFactorToken.id == token.id))
    return action
