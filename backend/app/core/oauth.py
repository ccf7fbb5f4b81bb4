"""Google OAuth/OIDC adapter and at-rest encryption for provider tokens."""

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from cryptography.fernet import Fernet, InvalidToken
from jose import jwk, jwt
from jose.exceptions import JWTError

from app.core.app_exceptions import OAuthFailed
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# OIDC metadata cache (in-memory with TTL)
_jwks_cache: dict[str, dict[str, Any]] = {}  # {cache_key: {"jwks": {...}, "expires_at": timestamp}}

# Fernet cipher for encrypting Google tokens
_fernet: Fernet | None = None

GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


class GoogleOAuthAdapter:
    """Google OAuth/OIDC adapter.

    Wraps the three provider calls the auth flows need: code exchange,
    id_token validation and access-token refresh. Any provider failure is
    surfaced as ``OAuthFailed``.
    """

    token_endpoint = "https://oauth2.googleapis.com/token"
    jwks_uri = "https://www.googleapis.com/oauth2/v3/certs"

    def __init__(self):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.GOOGLE_REDIRECT_URI

    async def _post_token_endpoint(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.token_endpoint, data=data)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.warning("Google token endpoint call failed", extra={"error": str(e)})
            raise OAuthFailed() from e

    async def exchange_code_for_tokens(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens (access, refresh, id_token)."""
        return await self._post_token_endpoint(
            {
                "code": code,
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """Trade a stored Google refresh token for a fresh access token."""
        return await self._post_token_endpoint(
            {
                "refresh_token": refresh_token,
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
                "grant_type": "refresh_token",
            }
        )

    async def validate_id_token(self, id_token: str) -> dict[str, Any]:
        """Validate a Google id_token and return its claims.

        Returns the decoded payload: sub, email, given_name, family_name,
        picture, email_verified.
        """
        try:
            jwks = await self._get_jwks()
            kid = jwt.get_unverified_header(id_token).get("kid")
        except (httpx.HTTPError, JWTError) as e:
            raise OAuthFailed() from e

        key = None
        for jwk_key in jwks.get("keys", []):
            if jwk_key.get("kid") == kid:
                key = jwk.construct(jwk_key)
                break

        if not key:
            logger.warning("Google id_token signed with unknown key", extra={"kid": kid})
            raise OAuthFailed()

        try:
            payload = jwt.decode(
                id_token,
                key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"verify_iss": False, "verify_at_hash": False},
            )
        except JWTError as e:
            logger.warning("Google id_token rejected", extra={"error": str(e)})
            raise OAuthFailed() from e

        # Google issues both forms of the issuer
        if payload.get("iss") not in GOOGLE_ISSUERS:
            raise OAuthFailed()
        if not payload.get("email") or not payload.get("sub"):
            raise OAuthFailed("Google account has no email address")
        return payload

    async def _get_jwks(self) -> dict:
        """Get JWKS (cached with TTL)."""
        cache_key = "jwks:google"
        now = datetime.now(timezone.utc).timestamp()

        # Check cache
        if cache_key in _jwks_cache:
            cached = _jwks_cache[cache_key]
            expires_at = cached.get("expires_at", 0)
            if now < expires_at:
                return cached["jwks"]

        # Fetch fresh JWKS
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.jwks_uri)
            response.raise_for_status()
            jwks = response.json()

        # Cache with TTL
        expires_at = now + settings.JWKS_CACHE_TTL_SECONDS
        _jwks_cache[cache_key] = {"jwks": jwks, "expires_at": expires_at}
        return jwks


def get_google_oauth_client() -> GoogleOAuthAdapter:
    """Dependency returning the Google adapter (overridden in tests)."""
    return GoogleOAuthAdapter()


def token_expiry_from(tokens: dict[str, Any], now: datetime | None = None) -> datetime | None:
    """Absolute expiry for a token endpoint response carrying ``expires_in``."""
    expires_in = tokens.get("expires_in")
    if not expires_in:
        return None
    return (now or datetime.now(timezone.utc)) + timedelta(seconds=int(expires_in))


def get_fernet() -> Fernet:
    """Get Fernet cipher instance."""
    global _fernet
    if _fernet is None:
        if not settings.OAUTH_TOKEN_ENCRYPTION_KEY:
            raise ValueError("OAUTH_TOKEN_ENCRYPTION_KEY must be set")
        _fernet = Fernet(settings.OAUTH_TOKEN_ENCRYPTION_KEY.encode())
    return _fernet


def encrypt_oauth_token(token: str | None) -> str | None:
    """Encrypt a provider token for storage."""
    if token is None:
        return None
    return get_fernet().encrypt(token.encode()).decode()


def decrypt_oauth_token(encrypted_token: str | None) -> str | None:
    """Decrypt a stored provider token. Undecryptable values read as absent."""
    if not encrypted_token:
        return None
    try:
        return get_fernet().decrypt(encrypted_token.encode()).decode()
    except InvalidToken:
        logger.warning("Stored OAuth token could not be decrypted")
        return None
