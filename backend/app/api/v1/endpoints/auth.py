"""Authentication endpoints."""

from dataclasses import replace

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.transport import apply_auth_transport, clear_auth_cookies
from app.core.app_exceptions import AppError
from app.core.dependencies import (
    CurrentIdentity,
    extract_refresh_token,
    get_client_context,
)
from app.core.oauth import GoogleOAuthAdapter, get_google_oauth_client
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.schemas.auth import (
    ApiResponse,
    ChangePasswordRequest,
    EmailRequest,
    GoogleAuthRequest,
    IdentityResponse,
    LoginRequest,
    RegisteredUserResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    VerifyChangePasswordRequest,
    VerifyEmailRequest,
    VerifyLoginTwoFactorRequest,
    VerifyTwoFactorRequest,
)
from app.services import account_service, auth_service
from app.services.auth_service import ClientContext
from app.services.session_store import list_sessions_for_user

router = APIRouter(tags=["Auth"])


def _deny(request: Request, event_type: str, error: AppError, user_id=None) -> None:
    log_security_event(request, event_type, "deny", reason_code=error.code, user_id=user_id)


@router.post(
    "/register",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an unverified account and email a verification link.",
)
async def register(
    request_data: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Register a new user."""
    try:
        user = await account_service.register(db, request_data.email, request_data.password)
    except AppError as e:
        _deny(request, "auth_register", e)
        raise

    log_security_event(request, "auth_register", "allow", user_id=user.id)
    return ApiResponse(
        message="User registered successfully. Please check your email to verify your account.",
        data=RegisteredUserResponse.model_validate(user).model_dump(by_alias=True, mode="json"),
    )


@router.post(
    "/login",
    response_model=ApiResponse,
    summary="Login",
    description="Password login. Returns a two-factor prompt when 2FA is enabled.",
)
async def login(
    request_data: LoginRequest,
    request: Request,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Login with email and password."""
    if request_data.refresh_token:
        client = replace(client, refresh_token=request_data.refresh_token)

    try:
        outcome = await auth_service.login(db, request_data.email, request_data.password, client)
    except AppError as e:
        _deny(request, "auth_login", e)
        raise

    if outcome.kind == "TWO_FACTOR":
        log_security_event(request, "auth_login_two_factor_required", "allow", user_id=outcome.user_id)
        return ApiResponse(
            message="Two-factor authentication code sent to your email",
            data={"type": "TWO_FACTOR", "userId": str(outcome.user_id)},
        )

    log_security_event(request, "auth_login", "allow", user_id=outcome.auth.user.id)
    return ApiResponse(
        message="Login successful",
        data={"type": "LOGIN", **apply_auth_transport(response, outcome.auth)},
    )


@router.post(
    "/verify-login-two-factor",
    response_model=ApiResponse,
    summary="Verify login code",
    description="Consume the emailed login code and complete sign-in.",
)
async def verify_login_two_factor(
    request_data: VerifyLoginTwoFactorRequest,
    request: Request,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Complete a login deferred to two-factor."""
    try:
        auth = await auth_service.verify_login_two_factor(
            db, request_data.user_id, request_data.code, client
        )
    except AppError as e:
        _deny(request, "auth_login_two_factor", e, user_id=request_data.user_id)
        raise

    log_security_event(request, "auth_login_two_factor", "allow", user_id=auth.user.id)
    return ApiResponse(message="Login successful", data=apply_auth_transport(response, auth))


@router.post(
    "/refresh-token",
    response_model=ApiResponse,
    summary="Refresh tokens",
    description="Rotate the refresh token (from cookie, header or query) and issue a new pair.",
)
async def refresh_token(
    request: Request,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_db),
    oauth_client: GoogleOAuthAdapter = Depends(get_google_oauth_client),
) -> ApiResponse:
    """Refresh the token pair."""
    try:
        auth = await auth_service.refresh_session(
            db, extract_refresh_token(request), client, oauth_client
        )
    except AppError as e:
        _deny(request, "auth_refresh", e)
        raise

    log_security_event(request, "auth_refresh", "allow", user_id=auth.user.id)
    return ApiResponse(message="Token refreshed successfully", data=apply_auth_transport(response, auth))


@router.post(
    "/logout",
    response_model=ApiResponse,
    summary="Logout",
    description="End the current session and clear auth cookies.",
)
async def logout(
    identity: CurrentIdentity,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Logout the current session."""
    await auth_service.logout(db, identity.session_id)
    clear_auth_cookies(response)
    log_security_event(request, "auth_logout", "allow", user_id=identity.user_id)
    return ApiResponse(message="Logged out successfully", data={})


@router.post(
    "/logout-all-sessions",
    response_model=ApiResponse,
    summary="Logout everywhere",
    description="End every session of the current user.",
)
async def logout_all_sessions(
    identity: CurrentIdentity,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Logout all sessions."""
    await auth_service.logout_all(db, identity.user_id)
    clear_auth_cookies(response)
    log_security_event(request, "auth_logout_all", "allow", user_id=identity.user_id)
    return ApiResponse(message="Logged out from all sessions", data={})


@router.post(
    "/change-password",
    response_model=ApiResponse,
    summary="Change password",
    description="Change the password, or send a confirmation code when 2FA is enabled.",
)
async def change_password(
    request_data: ChangePasswordRequest,
    identity: CurrentIdentity,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Change the current user's password."""
    try:
        outcome = await account_service.change_password(
            db, identity.user_id, request_data.current_password, request_data.new_password
        )
    except AppError as e:
        _deny(request, "auth_change_password", e, user_id=identity.user_id)
        raise

    if outcome.kind == "TWO_FACTOR":
        return ApiResponse(
            message="Two-factor authentication code sent to your email",
            data={"type": "TWO_FACTOR"},
        )
    log_security_event(request, "auth_change_password", "allow", user_id=identity.user_id)
    return ApiResponse(message="Password changed successfully", data={"type": "PASSWORD_CHANGE"})


@router.post(
    "/verify-change-password-two-factor",
    response_model=ApiResponse,
    summary="Confirm password change",
)
async def verify_change_password_two_factor(
    request_data: VerifyChangePasswordRequest,
    identity: CurrentIdentity,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Apply a password change confirmed with its code."""
    try:
        await account_service.verify_change_password(
            db, identity.user_id, request_data.code, request_data.new_password
        )
    except AppError as e:
        _deny(request, "auth_change_password", e, user_id=identity.user_id)
        raise

    log_security_event(request, "auth_change_password", "allow", user_id=identity.user_id)
    return ApiResponse(message="Password changed successfully", data={})


@router.post(
    "/toggle-two-factor",
    response_model=ApiResponse,
    summary="Toggle two-factor",
    description="Send a code confirming the switch of two-factor authentication.",
)
async def toggle_two_factor(
    identity: CurrentIdentity,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Start enabling or disabling two-factor authentication."""
    action = await account_service.toggle_two_factor(db, identity.user_id)
    return ApiResponse(
        message="Two-factor authentication code sent to your email",
        data={"action": action.value},
    )


@router.post(
    "/verify-two-factor",
    response_model=ApiResponse,
    summary="Confirm two-factor toggle",
)
async def verify_two_factor(
    request_data: VerifyTwoFactorRequest,
    identity: CurrentIdentity,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Apply the pending two-factor toggle."""
    try:
        user = await account_service.verify_two_factor(db, identity.user_id, request_data.code)
    except AppError as e:
        _deny(request, "auth_two_factor_toggle", e, user_id=identity.user_id)
        raise

    log_security_event(
        request,
        "auth_two_factor_toggle",
        "allow",
        user_id=user.id,
        two_factor_enabled=user.is_two_factor_enabled,
    )
    state = "enabled" if user.is_two_factor_enabled else "disabled"
    return ApiResponse(
        message=f"Two-factor authentication {state}",
        data={"isTwoFactorEnabled": user.is_two_factor_enabled},
    )


@router.post(
    "/google-auth",
    response_model=ApiResponse,
    summary="Google sign-in",
    description="Exchange a Google authorization code and sign in, creating the account if needed.",
)
async def google_auth(
    request_data: GoogleAuthRequest,
    request: Request,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_db),
    oauth_client: GoogleOAuthAdapter = Depends(get_google_oauth_client),
) -> ApiResponse:
    """Sign in with Google."""
    try:
        auth = await auth_service.google_auth(db, request_data.code, client, oauth_client)
    except AppError as e:
        _deny(request, "auth_google", e)
        raise

    log_security_event(request, "auth_google", "allow", user_id=auth.user.id, provider="google")
    return ApiResponse(message="Google authentication successful", data=apply_auth_transport(response, auth))


@router.post("/verify-email", response_model=ApiResponse, summary="Verify email")
async def verify_email(
    request_data: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Consume an email verification link."""
    await account_service.verify_email(db, request_data.user_id, request_data.token)
    return ApiResponse(message="Email verified successfully", data={})


@router.post("/resend-verification", response_model=ApiResponse, summary="Resend verification email")
async def resend_verification(
    request_data: EmailRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Send a fresh verification link."""
    await account_service.resend_verification(db, request_data.email)
    return ApiResponse(message="Verification email sent", data={})


@router.post(
    "/request-password-reset",
    response_model=ApiResponse,
    summary="Request password reset",
    description="Always succeeds so account existence is not revealed.",
)
async def request_password_reset(
    request_data: EmailRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Email a password reset link."""
    await account_service.request_password_reset(db, request_data.email)
    log_security_event(request, "auth_password_reset_request", "allow")
    return ApiResponse(
        message="If an account exists with this email, a password reset link has been sent",
        data={},
    )


@router.post("/reset-password", response_model=ApiResponse, summary="Reset password")
async def reset_password(
    request_data: ResetPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """Set a new password from a reset link; ends every session."""
    try:
        await account_service.reset_password(
            db, request_data.user_id, request_data.token, request_data.password
        )
    except AppError as e:
        _deny(request, "auth_password_reset", e, user_id=request_data.user_id)
        raise

    log_security_event(request, "auth_password_reset", "allow", user_id=request_data.user_id)
    return ApiResponse(message="Password reset successfully", data={})


@router.get("/verify-auth", response_model=ApiResponse, summary="Check authentication")
async def verify_auth(identity: CurrentIdentity) -> ApiResponse:
    """Return the identity attached by the auth gate."""
    return ApiResponse(
        message="Authenticated",
        data=IdentityResponse.model_validate(identity).model_dump(by_alias=True, mode="json"),
    )


@router.get("/sessions", response_model=ApiResponse, summary="List sessions")
async def list_sessions(
    identity: CurrentIdentity,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    """List the current user's sessions, most recent first."""
    sessions = await list_sessions_for_user(db, identity.user_id)
    return ApiResponse(
        message="Sessions retrieved",
        data=[
            {
                **SessionResponse.model_validate(s).model_dump(by_alias=True, mode="json"),
                "current": s.id == identity.session_id,
            }
            for s in sessions
        ],
    )
