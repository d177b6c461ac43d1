"""
Error taxonomy for the authentication API.

Every failure that reaches a client is one of the classes below.  Each
carries the HTTP status it maps to and a ``kind`` string that is
rendered into the JSON error body.  The token family all report the
same ``kind`` so clients cannot tell a bad signature from an expired or
mistyped token.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class AuthError(Exception):
    """Base class for errors surfaced to API clients."""

    kind = "AuthError"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


# ── 400 ────────────────────────────────────────────────────────────────────


class ValidationError(AuthError):
    kind = "ValidationError"
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class MissingFields(ValidationError):
    default_message = "Missing required fields"


# ── 401 ────────────────────────────────────────────────────────────────────


class InvalidCredentials(AuthError):
    kind = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid username or password"


class InvalidTotp(AuthError):
    kind = "InvalidTotp"
    status_code = 401
    default_message = "Invalid 2FA code"


class InvalidOrMalformedToken(AuthError):
    kind = "InvalidOrMalformedToken"
    status_code = 401
    default_message = "Invalid or expired token"


class InvalidToken(InvalidOrMalformedToken):
    """Bad signature, malformed payload, or expired."""


class WrongTokenType(InvalidOrMalformedToken):
    default_message = "Invalid token type"


class MissingOrMalformedHeader(InvalidOrMalformedToken):
    default_message = "Authorization header must be in format: Bearer <token>"


class InvalidOrExpiredToken(InvalidOrMalformedToken):
    default_message = "Invalid or expired refresh token"


# ── 429 ────────────────────────────────────────────────────────────────────


class RateLimitExceeded(AuthError):
    kind = "RateLimitExceeded"
    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(self, reset_time: datetime, limit: int, message: str | None = None) -> None:
        super().__init__(message)
        self.reset_time = reset_time
        self.limit = limit

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["resetTime"] = self.reset_time.isoformat()
        return body


# ── 500 ────────────────────────────────────────────────────────────────────


class UnexpectedError(AuthError):
    kind = "UnexpectedError"
    status_code = 500
    default_message = "An unexpected error occurred"
