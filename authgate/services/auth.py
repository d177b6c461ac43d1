"""
Authentication service: login, token refresh, and password change.

Each public method raises only the error classes from
:mod:`authgate.errors`.  Credential failures are deliberately vague:
an unknown user, a wrong password, and a disabled account all raise the
same :class:`InvalidCredentials`.
"""

from __future__ import annotations

import functools
import logging
from typing import Awaitable, Callable, TypeVar

from authgate.config import Settings
from authgate.db import UserStore
from authgate.errors import (
    AuthError,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidOrMalformedToken,
    InvalidTotp,
    MissingFields,
    UnexpectedError,
    ValidationError,
)
from authgate.models import UserRecord
from authgate.security.passwords import (
    MAX_PASSWORD_BYTES,
    hash_password_async,
    verify_password_async,
)
from authgate.security.tokens import TokenIssuer, TokenPair, TokenPayload
from authgate.security.totp import TotpVerifier, generate_totp_secret, provisioning_uri

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

R = TypeVar("R")


def _service_boundary(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
    """Let taxonomy errors through; log and wrap anything else."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except AuthError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in %s", func.__name__)
            raise UnexpectedError() from exc

    return wrapper


class AuthService:
    def __init__(self, store: UserStore, issuer: TokenIssuer, totp: TotpVerifier) -> None:
        self.store = store
        self.issuer = issuer
        self.totp = totp
        # Compared against when the username is unknown, so both paths pay for bcrypt.
        self._dummy_hash: str | None = None

    # ── Internal checks ────────────────────────────────────────────────

    async def _timing_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await hash_password_async("authgate-timing-equalizer")
        return self._dummy_hash

    async def _verify_credentials(self, username: str, password: str) -> UserRecord:
        user = await self.store.get_by_username(username)
        if user is None:
            await verify_password_async(password, await self._timing_hash())
            raise InvalidCredentials()

        password_ok = await verify_password_async(password, user.password_hash)
        if not password_ok or not user.is_active:
            raise InvalidCredentials()
        return user

    def _verify_totp(self, code: str, user: UserRecord) -> None:
        if not self.totp.verify(code, user.totp_secret):
            raise InvalidTotp()

    # ── Public operations ──────────────────────────────────────────────

    @_service_boundary
    async def login(self, username: str, password: str, totp_code: str) -> TokenPair:
        """Check password and TOTP, then issue a fresh token pair."""
        username = (username or "").strip().lower()
        if not username or not password:
            raise InvalidCredentials()

        user = await self._verify_credentials(username, password)
        self._verify_totp(totp_code, user)

        pair = self.issuer.issue_token_pair(user.username)
        await self.store.update_last_login(user.id)
        logger.info("User %s logged in", user.username)
        return pair

    @_service_boundary
    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a new pair.

        The presented token is not revoked; it stays usable until it expires.
        """
        try:
            payload = self.issuer.verify_as_refresh(refresh_token)
        except InvalidOrMalformedToken:
            raise InvalidOrExpiredToken() from None
        return self.issuer.issue_token_pair(payload.username)

    @_service_boundary
    async def validate_access_token(self, token: str) -> TokenPayload:
        return self.issuer.verify_as_access(token)

    @_service_boundary
    async def change_password(
        self,
        username: str,
        current_password: str | None,
        new_password: str | None,
        totp_code: str | None,
    ) -> None:
        """Replace the password of *username*.

        The caller must already have verified an access token for
        *username*; the current password and a TOTP code are checked again
        here so a stolen token alone cannot change the password.
        """
        if not current_password or not new_password or not totp_code:
            raise MissingFields("Missing required fields for password change")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(new_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"New password cannot be longer than {MAX_PASSWORD_BYTES} bytes")

        user = await self._verify_credentials(username, current_password)
        self._verify_totp(totp_code, user)

        new_hash = await hash_password_async(new_password)
        await self.store.update_password(user.id, new_hash)
        logger.info("Password updated for user %s", user.username)

    # ── Bootstrap ──────────────────────────────────────────────────────

    async def bootstrap(self, settings: Settings) -> UserRecord | None:
        """Create the configured identity if the store has no users yet."""
        await self._timing_hash()

        existing = await self.store.count_users()
        if existing:
            logger.info("User store already has %d user(s), skipping bootstrap", existing)
            return None

        if not settings.auth_password_hash:
            logger.warning("No bootstrap password configured, no user created")
            return None

        totp_secret = settings.auth_totp_secret
        generated = totp_secret is None
        if generated:
            totp_secret = generate_totp_secret()

        user = await self.store.create_user(
            settings.auth_username,
            settings.auth_password_hash,
            totp_secret,
            metadata={"created_by": "system", "initial_setup": True},
        )
        logger.info("Bootstrap user %s created", user.username)
        if generated:
            # Printed once so the secret can be enrolled in an authenticator app.
            logger.warning(
                "Generated 2FA secret for %s, add it to your authenticator: %s",
                user.username,
                provisioning_uri(totp_secret, user.username, settings.totp_issuer),
            )
        return user
