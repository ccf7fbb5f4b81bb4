"""Translate the orchestrator's transport verdict into headers or cookies."""

from fastapi import Response

from app.core.config import settings
from app.core.dependencies import (
    ACCESS_TOKEN_COOKIE,
    ACCESS_TOKEN_HEADER,
    REFRESH_TOKEN_COOKIE,
    REFRESH_TOKEN_HEADER,
)
from app.core.device import Transport
from app.schemas.auth import AuthPayload, SessionResponse, TokensResponse, UserResponse
from app.services.auth_service import AuthResult


def _cookie_options() -> dict:
    production = settings.is_production
    return {
        "httponly": True,
        "secure": production,
        "samesite": "none" if production else "lax",
        "domain": settings.COOKIE_DOMAIN if production else None,
        "path": "/",
    }


def apply_auth_transport(response: Response, result: AuthResult) -> dict:
    """Deliver tokens per the transport verdict and return the response payload.

    Header transport: Authorization / x-access-token / x-refresh-token headers
    plus ``tokens`` in the body. Cookie transport: httpOnly cookies only.
    """
    tokens = result.tokens
    payload = AuthPayload(
        user=UserResponse.model_validate(result.user),
        session=SessionResponse.model_validate(result.session),
    )

    if result.transport == Transport.HEADER:
        response.headers["Authorization"] = f"Bearer {tokens.access_token}"
        response.headers[ACCESS_TOKEN_HEADER] = tokens.access_token
        response.headers[REFRESH_TOKEN_HEADER] = tokens.refresh_token
        payload.tokens = TokensResponse(
            access_token=tokens.access_token, refresh_token=tokens.refresh_token
        )
    else:
        options = _cookie_options()
        response.set_cookie(
            ACCESS_TOKEN_COOKIE,
            tokens.access_token,
            max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            **options,
        )
        response.set_cookie(
            REFRESH_TOKEN_COOKIE,
            tokens.refresh_token,
            max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
            **options,
        )

    return payload.model_dump(by_alias=True, mode="json", exclude_none=True)


def clear_auth_cookies(response: Response) -> None:
    options = _cookie_options()
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name,
            path=options["path"],
            domain=options["domain"],
            secure=options["secure"],
            httponly=True,
            samesite=options["samesite"],
        )
