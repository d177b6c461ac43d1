"""Pydantic models for the authgate API and user store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from authgate.security.passwords import MAX_PASSWORD_BYTES

T = TypeVar("T")

# ASCII digits only (\d also matches fullwidth digits).
TOTP_PATTERN = r"^[0-9]{6}$"


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (``totpCode``) while exposing snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Users ──────────────────────────────────────────────────────────────────


class UserRecord(BaseModel):
    """An identity as stored in the users table."""

    id: str
    username: str
    password_hash: str = Field(..., repr=False)
    totp_secret: str = Field(..., repr=False)
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Requests ───────────────────────────────────────────────────────────────


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, description="Username (case-insensitive)")
    password: str = Field(..., min_length=1, description="Account password")
    totp_code: str = Field(..., pattern=TOTP_PATTERN, description="6-digit code from the authenticator app")

    @field_validator("username")
    @classmethod
    def normalize_username(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("Username is required")
        return value


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, description="Refresh token from a previous login")


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=8, description="New password, at least 8 characters")
    totp_code: str = Field(..., pattern=TOTP_PATTERN, description="6-digit code from the authenticator app")

    @field_validator("new_password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"New password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        return value


# ── Responses ──────────────────────────────────────────────────────────────


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every endpoint."""

    success: bool = True
    message: str = "Success"
    data: Optional[T] = None


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    token_type: Literal["Bearer"] = "Bearer"


class TokenClaims(BaseModel):
    username: str
    iat: int
    exp: int


class RateLimitInfo(CamelModel):
    remaining: int
    reset_time: datetime


class TokenValidationResponse(CamelModel):
    token_valid: bool
    token_payload: TokenClaims
    rate_limit: Optional[RateLimitInfo] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    uptime: float
    timestamp: datetime
