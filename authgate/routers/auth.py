"""
Authentication endpoints: password + TOTP login, token refresh, password change.
"""

from fastapi import APIRouter

from authgate.dependencies import AppSettings, Auth, CurrentToken, LoginRateLimit, RefreshRateLimit
from authgate.models import (
    ApiResponse,
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    TokenResponse,
)
from authgate.security.tokens import TokenPair

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(pair: TokenPair, expires_in: int) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=expires_in,
    )


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    operation_id="login",
    summary="Log in with username, password and a TOTP code",
)
async def login(
    _rate: LoginRateLimit,
    body: LoginRequest,
    auth_service: Auth,
    settings: AppSettings,
) -> ApiResponse[TokenResponse]:
    pair = await auth_service.login(body.username, body.password, body.totp_code)
    return ApiResponse(
        message="Authentication successful",
        data=_token_response(pair, int(settings.access_token_ttl.total_seconds())),
    )


@router.post(
    "/refresh",
    response_model=ApiResponse[TokenResponse],
    operation_id="refreshToken",
    summary="Exchange a refresh token for a new token pair",
)
async def refresh(
    _rate: RefreshRateLimit,
    body: RefreshRequest,
    auth_service: Auth,
    settings: AppSettings,
) -> ApiResponse[TokenResponse]:
    """
    The presented refresh token is not revoked and stays valid until it
    expires.
    """
    pair = await auth_service.refresh(body.refresh_token)
    return ApiResponse(
        message="Token refreshed successfully",
        data=_token_response(pair, int(settings.access_token_ttl.total_seconds())),
    )


@router.post(
    "/change-password",
    response_model=ApiResponse[None],
    operation_id="changePassword",
    summary="Change the password of the authenticated user",
)
async def change_password(
    _rate: LoginRateLimit,
    token: CurrentToken,
    body: ChangePasswordRequest,
    auth_service: Auth,
) -> ApiResponse[None]:
    """
    Requires a valid access token plus the current password and a fresh
    TOTP code.  Access tokens issued before the change remain valid
    until they expire.
    """
    await auth_service.change_password(
        token.username,
        body.current_password,
        body.new_password,
        body.totp_code,
    )
    return ApiResponse(message="Password changed successfully", data=None)
