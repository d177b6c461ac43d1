import logging
from typing import Annotated

from fastapi import Depends, Header, Request, Response

from authgate.config import Settings
from authgate.errors import RateLimitExceeded
from authgate.rate_limit import RateLimiters, RateLimitResult, client_identifier
from authgate.security.tokens import TokenIssuer, TokenPayload
from authgate.services.auth import AuthService

logger = logging.getLogger(__name__)


# ── Application state ──────────────────────────────────────────────────────


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters


AppSettings = Annotated[Settings, Depends(get_settings)]
Auth = Annotated[AuthService, Depends(get_auth_service)]


# ── Rate limiting ──────────────────────────────────────────────────────────


def _rate_limit_dependency(tier: str):
    async def check(
        request: Request,
        response: Response,
        limiters: Annotated[RateLimiters, Depends(get_rate_limiters)],
        settings: AppSettings,
    ) -> RateLimitResult:
        limiter = getattr(limiters, tier)
        result = limiter.check_rate_limit(client_identifier(request, settings.trusted_proxies))
        # Read back by the exception handlers so error responses carry the headers too.
        request.state.rate_limit = result
        if not result.allowed:
            raise RateLimitExceeded(
                result.reset_time,
                result.limit,
                message=f"Too many requests. Try again after {result.reset_time.isoformat()}",
            )
        response.headers.update(result.headers())
        return result

    check.__name__ = f"{tier}_rate_limit"
    return check


general_rate_limit = _rate_limit_dependency("general")
login_rate_limit = _rate_limit_dependency("login")
refresh_rate_limit = _rate_limit_dependency("refresh")

GeneralRateLimit = Annotated[RateLimitResult, Depends(general_rate_limit)]
LoginRateLimit = Annotated[RateLimitResult, Depends(login_rate_limit)]
RefreshRateLimit = Annotated[RateLimitResult, Depends(refresh_rate_limit)]


# ── Bearer token ───────────────────────────────────────────────────────────


async def get_current_token(
    auth_service: Auth,
    authorization: Annotated[str | None, Header()] = None,
) -> TokenPayload:
    token = TokenIssuer.extract_from_header(authorization)
    return await auth_service.validate_access_token(token)


CurrentToken = Annotated[TokenPayload, Depends(get_current_token)]
