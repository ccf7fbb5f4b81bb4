"""Pytest configuration and shared fixtures."""

import os
import re
import tempfile
from collections.abc import AsyncGenerator
from typing import Any

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be in place first
_DB_DIR = tempfile.mkdtemp(prefix="session-auth-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["JWT_ACCESS_SECRET"] = "test_access_secret_key_min_32_chars_long"
os.environ["JWT_REFRESH_SECRET"] = "test_refresh_secret_key_min_32_chars_long"
os.environ["OAUTH_TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-google-client-secret"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["SESSION_FINGERPRINT_STRICT"] = "true"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.app_exceptions import OAuthFailed  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.oauth import get_google_oauth_client  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.engine import engine  # noqa: E402
from app.db.session import SessionLocal  # noqa: E402
from app.main import app  # noqa: E402
from app.services.email.base import EmailProvider  # noqa: E402
from app.services.email.service import set_email_service  # noqa: E402
from tests.helpers.agents import DESKTOP_UA  # noqa: E402


class RecordingEmailProvider(EmailProvider):
    """Email provider that keeps every message in memory."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None

    async def send(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: str | None = None,
        meta: dict | None = None,
    ) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append(
            {
                "to": to,
                "subject": subject,
                "body_text": body_text,
                "body_html": body_html,
                "template": (meta or {}).get("template"),
            }
        )
        return f"recording:{len(self.messages)}"

    def templates_for(self, to: str) -> list[str]:
        return [m["template"] for m in self.messages if m["to"] == to]

    def last(self, to: str | None = None) -> dict[str, Any]:
        messages = [m for m in self.messages if to is None or m["to"] == to]
        assert messages, f"no email sent to {to}"
        return messages[-1]

    def last_code(self, to: str | None = None) -> str:
        digits = settings.TWO_FACTOR_CODE_LENGTH
        match = re.search(rf"^(\d{{{digits}}})$", self.last(to)["body_text"], re.MULTILINE)
        assert match, "no code in email body"
        return match.group(1)

    def last_link_parts(self, to: str | None = None) -> tuple[str, str]:
        """(user_id, token) from the link in the last email."""
        match = re.search(r"/([0-9a-f-]{36})/([0-9a-f]{64})", self.last(to)["body_text"])
        assert match, "no link in email body"
        return match.group(1), match.group(2)


class FakeGoogleOAuth:
    """Stand-in for the Google adapter; identities are keyed by authorization code."""

    def __init__(self):
        self.identities: dict[str, dict[str, Any]] = {}
        self.exchanges: dict[str, dict[str, Any]] = {}
        self.refresh_results: dict[str, dict[str, Any]] = {}
        self.refresh_calls: list[str] = []

    def add_code(self, code: str, identity: dict[str, Any], refresh_token: str | None = "google-refresh") -> None:
        id_token = f"id-token-for-{code}"
        self.identities[id_token] = identity
        self.exchanges[code] = {
            "access_token": f"google-access-{code}",
            "refresh_token": refresh_token,
            "id_token": id_token,
            "expires_in": 3599,
        }

    def allow_refresh(self, refresh_token: str, identity: dict[str, Any]) -> None:
        id_token = f"id-token-refresh-{refresh_token}"
        self.identities[id_token] = identity
        self.refresh_results[refresh_token] = {
            "access_token": f"google-access-refreshed-{refresh_token}",
            "id_token": id_token,
            "expires_in": 3599,
        }

    async def exchange_code_for_tokens(self, code: str) -> dict[str, Any]:
        tokens = self.exchanges.get(code)
        if tokens is None:
            raise OAuthFailed()
        return dict(tokens)

    async def validate_id_token(self, id_token: str) -> dict[str, Any]:
        identity = self.identities.get(id_token)
        if identity is None:
            raise OAuthFailed()
        return dict(identity)

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        self.refresh_calls.append(refresh_token)
        result = self.refresh_results.get(refresh_token)
        if result is None:
            raise OAuthFailed()
        return dict(result)


@pytest.fixture(autouse=True)
async def prepare_database() -> AsyncGenerator[None, None]:
    """Recreate every table for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Database session for arranging and inspecting test data."""
    async with SessionLocal() as session:
        yield session


@pytest.fixture(autouse=True)
def outbox() -> RecordingEmailProvider:
    """Capture outgoing emails instead of delivering them."""
    provider = RecordingEmailProvider()
    set_email_service(provider)
    yield provider
    set_email_service(None)


@pytest.fixture
def google() -> FakeGoogleOAuth:
    """Fake Google OAuth client injected through dependency overrides."""
    fake = FakeGoogleOAuth()
    app.dependency_overrides[get_google_oauth_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_google_oauth_client, None)


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async API client posing as a desktop browser."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
        headers={"User-Agent": DESKTOP_UA},
    ) as client:
        yield client
