"""
Fixed-window rate limiting keyed on client IP.

Three tiers, each an independent limiter so exhausting one does not
block the others:
  • general – 5 per 10 s (token validation and other API calls)
  • login   – 5 per minute (login and password change, brute-force guard)
  • refresh – 5 per minute (refresh-token exchange)

Counting is done by the ``limits`` package (the backend slowapi is
built on) with in-process ``MemoryStorage``.  A window opens at the
first request for an identifier and closes ``window_seconds`` later;
a burst straddling a window boundary can admit up to twice the limit.

Proxy headers are only trusted when the socket peer is listed in
``TRUSTED_PROXIES``; otherwise the peer address is the identifier.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, Protocol

from fastapi import Request
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter as _FixedWindowStrategy

from authgate.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: datetime
    limit: int

    @property
    def reset_epoch(self) -> int:
        return int(self.reset_time.timestamp())

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets (at least 1)."""
        return max(1, int(self.reset_time.timestamp() - now + 0.999))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_epoch),
        }


class RateLimiter(Protocol):
    name: str

    def check_rate_limit(self, identifier: str) -> RateLimitResult: ...

    def clear(self) -> None: ...


class FixedWindowRateLimiter:
    """Counts requests per identifier inside fixed windows."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        name: str = "default",
        storage: MemoryStorage | None = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._storage = storage or MemoryStorage()
        self._strategy = _FixedWindowStrategy(self._storage)
        # hit() and get_window_stats() are separate storage reads; the
        # result reported for a request must come from the same count.
        self._lock = threading.Lock()

    def check_rate_limit(self, identifier: str) -> RateLimitResult:
        """Count one request for *identifier* and report whether it is allowed."""
        with self._lock:
            allowed = self._strategy.hit(self._item, self.name, identifier)
            stats = self._strategy.get_window_stats(self._item, self.name, identifier)

        if not allowed:
            logger.warning("Rate limit '%s' exceeded for %s", self.name, identifier)
        return RateLimitResult(
            allowed=allowed,
            remaining=stats.remaining if allowed else 0,
            reset_time=datetime.fromtimestamp(stats.reset_time, tz=timezone.utc),
            limit=self.max_requests,
        )

    def clear(self) -> None:
        with self._lock:
            self._storage.reset()


@dataclass
class RateLimiters:
    general: RateLimiter
    login: RateLimiter
    refresh: RateLimiter

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimiters:
        def build(name: str, max_requests: int, window_seconds: int) -> FixedWindowRateLimiter:
            return FixedWindowRateLimiter(max_requests, window_seconds, name=name)

        return cls(
            general=build("general", settings.general_limit.max_requests, settings.general_limit.window_seconds),
            login=build("login", settings.login_limit.max_requests, settings.login_limit.window_seconds),
            refresh=build("refresh", settings.refresh_limit.max_requests, settings.refresh_limit.window_seconds),
        )

    def clear_all(self) -> None:
        for limiter in (self.general, self.login, self.refresh):
            limiter.clear()


# Single-value proxy headers, checked in order after X-Forwarded-For.
_CLIENT_IP_HEADERS = ("x-real-ip", "cf-connecting-ip", "x-client-ip")


def client_identifier(request: Request, trusted_proxies: Collection[str] = ()) -> str:
    """Client IP for rate limiting.

    Forwarding headers are read only when the direct peer is a trusted
    proxy.  X-Forwarded-For is walked from the right, skipping trusted
    hops, so entries a client prepends itself are never used.
    """
    peer = request.client.host if request.client else None
    if peer is None:
        return "unknown"
    if peer not in trusted_proxies:
        return peer

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if hop not in trusted_proxies:
                return hop

    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    return peer
