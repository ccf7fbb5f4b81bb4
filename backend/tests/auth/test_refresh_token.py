"""Tests for refresh token rotation and its failure modes."""

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import create_token
from app.db.session import SessionLocal
from app.models.auth import RefreshToken
from app.services import session_store
from tests.helpers.agents import MOBILE_HEADERS, MOBILE_UA, OTHER_DESKTOP_UA
from tests.helpers.seed import (
    count_sessions,
    create_test_user,
    expire_sessions,
    get_refresh_token_row,
    get_sessions,
    login,
    past,
)

REFRESH_URL = "/v1/auth/refresh-token"


async def _mobile_login(client: AsyncClient, email: str) -> dict:
    response = await login(client, email, headers=MOBILE_HEADERS)
    assert response.status_code == 200
    return response.json()["data"]


async def _refresh(client: AsyncClient, refresh_token: str | None, **headers: str):
    request_headers = {"User-Agent": MOBILE_UA, **headers}
    if refresh_token is not None:
        request_headers["x-refresh-token"] = refresh_token
    return await client.post(REFRESH_URL, headers=request_headers)


@pytest.mark.asyncio
async def test_refresh_rotates_token_in_place(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test refresh issues a new pair and overwrites the session's stored token."""
    user = await create_test_user(db)
    data = await _mobile_login(async_client, user.email)
    session_id = data["session"]["id"]
    old_token = data["tokens"]["refreshToken"]
    old_row = await get_refresh_token_row(db, (await get_sessions(db, user.id))[0].id)
    old_row_expiry = old_row.expires_at

    response = await _refresh(async_client, old_token)

    assert response.status_code == 200
    new = response.json()["data"]
    assert new["session"]["id"] == session_id
    assert new["tokens"]["refreshToken"] != old_token
    assert response.headers["x-refresh-token"] == new["tokens"]["refreshToken"]

    row = await get_refresh_token_row(db, old_row.session_id)
    assert row.token == new["tokens"]["refreshToken"]
    assert row.expires_at >= old_row_expiry
    assert await count_sessions(db, user.id) == 1


@pytest.mark.asyncio
async def test_rotated_token_no_longer_resolves(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test the previous refresh token is dead after rotation."""
    user = await create_test_user(db)
    old_token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]
    await _refresh(async_client, old_token)

    response = await _refresh(async_client, old_token)

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_refresh_does_not_extend_session(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test rotation leaves the session's own expiry untouched."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]
    before = (await get_sessions(db, user.id))[0]
    expires_at, last_used = before.expires_at, before.last_used

    await _refresh(async_client, token)

    after = (await get_sessions(db, user.id))[0]
    assert after.expires_at == expires_at
    assert after.last_used >= last_used


@pytest.mark.asyncio
async def test_browser_refresh_uses_cookie(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a browser refreshes from its cookie and receives new cookies."""
    user = await create_test_user(db)
    await login(async_client, user.email)
    old_cookie = async_client.cookies.get("refreshToken")

    response = await async_client.post(REFRESH_URL)

    assert response.status_code == 200
    assert "tokens" not in response.json()["data"]
    assert response.cookies.get("refreshToken")
    assert response.cookies.get("refreshToken") != old_cookie


@pytest.mark.asyncio
async def test_refresh_accepts_query_parameter(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test the refresh token may travel as a query parameter."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]

    response = await async_client.post(
        REFRESH_URL, params={"refreshToken": token}, headers=MOBILE_HEADERS
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_header_wins_over_bearer(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a mobile client sending its access token as Bearer still refreshes."""
    user = await create_test_user(db)
    data = await _mobile_login(async_client, user.email)

    response = await _refresh(
        async_client,
        data["tokens"]["refreshToken"],
        Authorization=f"Bearer {data['tokens']['accessToken']}",
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_token(async_client: AsyncClient) -> None:
    """Test a missing refresh token is unauthorized."""
    response = await _refresh(async_client, None)

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_refresh_with_garbage_token(async_client: AsyncClient) -> None:
    """Test a malformed token is rejected as invalid."""
    response = await _refresh(async_client, "not-a-jwt")

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_refresh_with_access_token(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test an access token cannot be used to refresh."""
    user = await create_test_user(db)
    access_token = (await _mobile_login(async_client, user.email))["tokens"]["accessToken"]

    response = await _refresh(async_client, access_token)

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_refresh_with_expired_token(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a refresh token past its embedded expiry is rejected."""
    user = await create_test_user(db)
    issued_at = past(days=settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
    expired = create_token(str(user.id), user.email, "refresh", now=issued_at)

    response = await _refresh(async_client, expired)

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_refresh_user_mismatch(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a token whose subject differs from the owning session's user is rejected."""
    owner = await create_test_user(db)
    other = await create_test_user(db)
    await _mobile_login(async_client, owner.email)
    session = (await get_sessions(db, owner.id))[0]

    foreign = create_token(str(other.id), other.email, "refresh")
    await db.execute(update(RefreshToken).where(RefreshToken.session_id == session.id).values(token=foreign))
    await db.commit()

    response = await _refresh(async_client, foreign)

    assert response.status_code == 401
    assert response.json()["code"] == "USER_MISMATCH"


@pytest.mark.asyncio
async def test_refresh_from_other_device_is_rejected(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a changed user agent fails the fingerprint check in strict mode."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]

    response = await async_client.post(
        REFRESH_URL, headers={"User-Agent": OTHER_DESKTOP_UA, "x-refresh-token": token}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_MISMATCH"


@pytest.mark.asyncio
async def test_refresh_from_other_ip_is_rejected(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a changed client address fails the fingerprint check in strict mode."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]

    response = await _refresh(async_client, token, **{"X-Forwarded-For": "203.0.113.9"})

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_MISMATCH"


@pytest.mark.asyncio
async def test_refresh_fingerprint_not_enforced_when_relaxed(
    async_client: AsyncClient, db: AsyncSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a changed fingerprint only gets logged when strict mode is off."""
    monkeypatch.setattr(settings, "SESSION_FINGERPRINT_STRICT", False)
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]

    response = await _refresh(async_client, token, **{"X-Forwarded-For": "203.0.113.9"})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_stale_session_is_deleted(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test a session past its expiry cannot refresh and is removed."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]
    await expire_sessions(db, user.id)

    response = await _refresh(async_client, token)

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_EXPIRED"
    assert await count_sessions(db, user.id) == 0


@pytest.mark.asyncio
async def test_refresh_after_logout_all(async_client: AsyncClient, db: AsyncSession) -> None:
    """Test no refresh token survives logging out everywhere."""
    user = await create_test_user(db)
    data = await _mobile_login(async_client, user.email)

    logout = await async_client.post(
        "/v1/auth/logout-all-sessions",
        headers={**MOBILE_HEADERS, "Authorization": f"Bearer {data['tokens']['accessToken']}"},
    )
    assert logout.status_code == 200

    response = await _refresh(async_client, data["tokens"]["refreshToken"])

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_refresh_racing_another_rotation(
    async_client: AsyncClient, db: AsyncSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a refresh whose token is rotated between lookup and write is rejected."""
    user = await create_test_user(db)
    token = (await _mobile_login(async_client, user.email))["tokens"]["refreshToken"]
    lookup = session_store.find_by_refresh_token_value

    async def lookup_then_rotate_elsewhere(session_db: AsyncSession, value: str):
        found = await lookup(session_db, value)
        async with SessionLocal() as other_db:
            other = await lookup(other_db, value)
            await session_store.rotate_refresh_token(other_db, other, value, "rotated-elsewhere")
            await other_db.commit()
        return found

    monkeypatch.setattr(session_store, "find_by_refresh_token_value", lookup_then_rotate_elsewhere)

    response = await _refresh(async_client, token)

    assert response.status_code == 401
    assert response.json()["code"] == "SESSION_NOT_FOUND"
    row = await get_refresh_token_row(db, (await get_sessions(db, user.id))[0].id)
    assert row.token == "rotated-elsewhere"
    assert await count_sessions(db, user.id) == 1
