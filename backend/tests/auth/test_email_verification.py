"""Tests for registration and email verification."""

from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.auth import EmailVerification
from app.models.user import User
from tests.helpers.seed import DEFAULT_PASSWORD, create_test_user, login, past, reload_user


async def _register(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD):
    return await client.post("/v1/auth/register", json={"email": email, "password": password})


@pytest.mark.asyncio
async def test_register_verify_then_login(async_client: AsyncClient, db: AsyncSession, outbox) -> None:
    """Test the full path from registration through verification to login."""
    response = await _register(async_client, "NewUser@Example.com")

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "newuser@example.com"
    assert "passwordHash" not in data
    assert outbox.templates_for("newuser@example.com") == ["verify_email"]

    blocked = await login(async_client, "newuser@example.com")
    assert blocked.json()["code"] == "EMAIL_NOT_VERIFIED"

    user_id, token = outbox.last_link_parts("newuser@example.com")
    assert user_id == data["id"]
    verified = await async_client.post("/v1/auth/verify-email", json={"userId": user_id, "token": token})

    assert verified.status_code == 200
    assert outbox.last("newuser@example.com")["template"] == "verification_complete"

    logged_in = await login(async_client, "newuser@example.com")
    assert logged_in.status_code == 200
    assert logged_in.json()["data"]["user"]["isVerified"] is True


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test registering an existing email conflicts."""
    await create_test_user(db, email="taken@example.com")

    response = await _register(async_client, "Taken@example.com")

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_register_duplicate_email_after_check(
    async_client: AsyncClient, db: AsyncSession, outbox, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test an email taken between the existence check and the insert still conflicts."""
    await create_test_user(db, email="raced@example.com")

    async def nobody(session_db: AsyncSession, email: str):
        return None

    monkeypatch.setattr("app.services.account_service.get_user_by_email", nobody)

    response = await _register(async_client, "raced@example.com")

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"
    assert outbox.templates_for("raced@example.com") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "password",
    ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
)
async def test_register_weak_password(async_client: AsyncClient, password: str) -> None:
    """Test the password policy is enforced at the boundary."""
    response = await _register(async_client, "weak@example.com", password)

    assert response.status_code == 422
    assert response.json()["errors"][0]["path"] == "password"


@pytest.mark.asyncio
async def test_register_email_delivery_failure_persists_nothing(
    async_client: AsyncClient, db: AsyncSession, outbox
) -> None:
    """Test a failed verification email rolls the registration back."""
    outbox.fail_with = ConnectionRefusedError("smtp down")

    response = await _register(async_client, "lost@example.com")

    assert response.status_code == 502
    assert response.json()["code"] == "EMAIL_DELIVERY_FAILED"
    count = await db.execute(select(func.count()).select_from(User).where(User.email == "lost@example.com"))
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_verify_email_wrong_token(async_client: AsyncClient, outbox) -> None:
    """Test a wrong token does not verify the account."""
    await _register(async_client, "wrong@example.com")
    user_id, _ = outbox.last_link_parts("wrong@example.com")

    response = await async_client.post("/v1/auth/verify-email", json={"userId": user_id, "token": "f" * 64})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_VERIFICATION_TOKEN"


@pytest.mark.asyncio
async def test_verify_email_expired_token(async_client: AsyncClient, db: AsyncSession, outbox) -> None:
    """Test an expired link is refused."""
    await _register(async_client, "late@example.com")
    user_id, token = outbox.last_link_parts("late@example.com")
    await db.execute(update(EmailVerification).values(expires_at=past(minutes=1)))
    await db.commit()

    response = await async_client.post("/v1/auth/verify-email", json={"userId": user_id, "token": token})

    assert response.json()["code"] == "VERIFICATION_TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_verify_email_already_verified(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test verifying a verified account is reported as such."""
    user = await create_test_user(db)

    response = await async_client.post(
        "/v1/auth/verify-email", json={"userId": str(user.id), "token": "a" * 64}
    )

    assert response.json()["code"] == "ALREADY_VERIFIED"


@pytest.mark.asyncio
async def test_resend_verification_replaces_link(async_client: AsyncClient, db: AsyncSession, outbox) -> None:
    """Test resending issues a new link and the old one stops working."""
    await _register(async_client, "again@example.com")
    user_id, first_token = outbox.last_link_parts("again@example.com")

    resend = await async_client.post("/v1/auth/resend-verification", json={"email": "again@example.com"})
    assert resend.status_code == 200
    _, second_token = outbox.last_link_parts("again@example.com")
    assert second_token != first_token

    stale = await async_client.post("/v1/auth/verify-email", json={"userId": user_id, "token": first_token})
    assert stale.json()["code"] == "INVALID_VERIFICATION_TOKEN"

    fresh = await async_client.post("/v1/auth/verify-email", json={"userId": user_id, "token": second_token})
    assert fresh.status_code == 200
    assert (await reload_user(db, UUID(user_id))).is_verified is True


@pytest.mark.asyncio
async def test_resend_verification_unknown_email(async_client: AsyncClient) -> None:
    """Test resending for an unknown email is not found."""
    response = await async_client.post("/v1/auth/resend-verification", json={"email": "ghost@example.com"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_resend_verification_already_verified(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test resending for a verified account is refused."""
    user = await create_test_user(db)

    response = await async_client.post("/v1/auth/resend-verification", json={"email": user.email})

    assert response.json()["code"] == "ALREADY_VERIFIED"
