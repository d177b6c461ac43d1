"""
FastAPI application factory for authgate.

``create_app`` wires one Settings object into every component:

  • UserStore      – aiosqlite users table, opened in the lifespan
  • TokenIssuer    – signs and verifies access/refresh JWTs
  • TotpVerifier   – second factor
  • RateLimiters   – general / login / refresh fixed-window limiters
  • AuthService    – login, refresh and password change on top of the above
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from authgate.config import VERSION, Settings, configure_logging, load_settings
from authgate.db import UserStore
from authgate.errors import AuthError, RateLimitExceeded, UnexpectedError, ValidationError
from authgate.rate_limit import RateLimiters, RateLimitResult
from authgate.routers import auth, health, tokens
from authgate.security.tokens import TokenIssuer
from authgate.security.totp import TotpVerifier
from authgate.services.auth import AuthService

logger = logging.getLogger(__name__)


# ── Middleware ─────────────────────────────────────────────────────────────


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds hardening headers and the response time to every response."""

    def __init__(self, app, production: bool = False) -> None:
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), payment=()"
        if request.url.path.startswith("/api/"):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'; base-uri 'none';"
        if self.production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response


# ── Error handling ─────────────────────────────────────────────────────────


def _error_response(request: Request, error: AuthError) -> JSONResponse:
    headers: dict[str, str] = {}
    rate: RateLimitResult | None = getattr(request.state, "rate_limit", None)
    if rate is not None:
        headers.update(rate.headers())
    if isinstance(error, RateLimitExceeded):
        headers["Retry-After"] = str(rate.retry_after(request.app.state.clock()) if rate else 1)
    if error.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.to_dict()},
        headers=headers,
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.kind)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.kind)
    return _error_response(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return _error_response(request, ValidationError("Invalid request body", details=details))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, UnexpectedError())


# ── Factory ────────────────────────────────────────────────────────────────


def create_app(settings: Settings | None = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """Build the API.  With no *settings*, reads them from the environment."""
    if settings is None:
        settings = load_settings()
        configure_logging(settings.log_level)

    store = UserStore(settings.db_path)
    issuer = TokenIssuer(
        settings.jwt_secret,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
        algorithm=settings.jwt_algorithm,
        clock=clock,
    )
    totp = TotpVerifier(valid_window=settings.totp_valid_window, clock=clock)
    auth_service = AuthService(store, issuer, totp)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting authgate (%s)...", settings.environment)
        await store.open()
        await auth_service.bootstrap(settings)
        yield
        logger.info("Shutting down authgate...")
        await store.close()

    app = FastAPI(
        title="authgate",
        description="Username/password + TOTP login issuing JWT access and refresh tokens",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.user_store = store
    app.state.token_issuer = issuer
    app.state.auth_service = auth_service
    app.state.rate_limiters = RateLimiters.from_settings(settings)
    app.state.clock = clock
    app.state.started_at = time.monotonic()

    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth.router)
    app.include_router(tokens.router)
    app.include_router(health.router)
    return app
