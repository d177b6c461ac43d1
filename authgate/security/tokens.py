"""
Signed, expiring, typed JWTs.

Two kinds are issued for a subject: short-lived ``access`` tokens for API
calls and long-lived ``refresh`` tokens used only to obtain a new pair.
Tokens are stateless; validity is signature + expiry + type.  Each token
carries a random ``jti`` so a denylist can be keyed on it later.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Literal

import jwt

from authgate.errors import InvalidToken, MissingOrMalformedHeader, WrongTokenType

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh"]

ACCESS = "access"
REFRESH = "refresh"

BEARER_PREFIX = "Bearer "

_REQUIRED_CLAIMS = ["sub", "type", "iat", "exp"]


@dataclass(frozen=True)
class TokenPayload:
    username: str
    type: TokenType
    iat: int
    exp: int
    jti: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenIssuer:
    def __init__(
        self,
        secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token signing secret cannot be empty")
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self._clock = clock

    # ── Issue ──────────────────────────────────────────────────────────

    def _issue(self, subject: str, token_type: TokenType, ttl: timedelta) -> str:
        now = int(self._clock())
        payload = {
            "sub": subject,
            "type": token_type,
            "iat": now,
            "exp": now + int(ttl.total_seconds()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_access_token(self, subject: str) -> str:
        return self._issue(subject, ACCESS, self.access_ttl)

    def issue_refresh_token(self, subject: str) -> str:
        return self._issue(subject, REFRESH, self.refresh_ttl)

    def issue_token_pair(self, subject: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(subject),
            refresh_token=self.issue_refresh_token(subject),
        )

    # ── Verify ─────────────────────────────────────────────────────────

    def verify(self, token: str) -> TokenPayload:
        """Decode *token* and check its signature and expiry.

        Raises:
            InvalidToken: for a bad signature, a malformed payload, or an
                expired token (indistinguishable on purpose).
        """
        if not token:
            raise InvalidToken()
        try:
            # Expiry is checked against our own clock below.
            claims: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": _REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise InvalidToken() from None

        subject = claims.get("sub")
        token_type = claims.get("type")
        iat = claims.get("iat")
        exp = claims.get("exp")
        if (
            not isinstance(subject, str)
            or not subject
            or token_type not in (ACCESS, REFRESH)
            or not isinstance(iat, int)
            or not isinstance(exp, int)
        ):
            raise InvalidToken()
        if self._clock() >= exp:
            raise InvalidToken()

        jti = claims.get("jti")
        return TokenPayload(
            username=subject,
            type=token_type,
            iat=iat,
            exp=exp,
            jti=jti if isinstance(jti, str) else None,
        )

    def _verify_as(self, token: str, expected: TokenType) -> TokenPayload:
        payload = self.verify(token)
        if payload.type != expected:
            raise WrongTokenType()
        return payload

    def verify_as_access(self, token: str) -> TokenPayload:
        return self._verify_as(token, ACCESS)

    def verify_as_refresh(self, token: str) -> TokenPayload:
        return self._verify_as(token, REFRESH)

    # ── Header ─────────────────────────────────────────────────────────

    @staticmethod
    def extract_from_header(header_value: str | None) -> str:
        """Return the token from an ``Authorization: Bearer <token>`` value."""
        if not header_value or not header_value.startswith(BEARER_PREFIX):
            raise MissingOrMalformedHeader()
        token = header_value[len(BEARER_PREFIX):]
        if not token or token != token.strip():
            raise MissingOrMalformedHeader()
        return token
