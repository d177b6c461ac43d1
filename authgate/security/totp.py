"""
TOTP (RFC 6238) verification for the second login factor.

Codes are 6 digits on a 30-second step.  ``valid_window`` is the number
of steps accepted on either side of the current one; both login and
password change use the same verifier, so the tolerance is the same at
every call site.
"""

from __future__ import annotations

import binascii
import logging
import re
import time
from typing import Callable

import pyotp

logger = logging.getLogger(__name__)

TOTP_DIGITS = 6
TOTP_INTERVAL = 30

_CODE_RE = re.compile(r"[0-9]{6}")


def is_totp_code(value: object) -> bool:
    return isinstance(value, str) and _CODE_RE.fullmatch(value) is not None


def generate_totp_secret() -> str:
    """Return a new random base32 secret (160 bits)."""
    return pyotp.random_base32(length=32)


def provisioning_uri(secret: str, username: str, issuer: str) -> str:
    """otpauth:// URI for enrolling *secret* in an authenticator app."""
    return pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=issuer)


class TotpVerifier:
    def __init__(self, valid_window: int = 1, clock: Callable[[], float] = time.time) -> None:
        if valid_window < 0:
            raise ValueError("valid_window must be >= 0")
        self.valid_window = valid_window
        self._clock = clock

    def verify(self, code: str, secret: str) -> bool:
        """True if *code* is valid for *secret* at the current time.

        Malformed codes and undecodable secrets fail instead of raising.
        """
        if not is_totp_code(code) or not secret:
            return False
        try:
            totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
            return totp.verify(code, for_time=int(self._clock()), valid_window=self.valid_window)
        except (binascii.Error, ValueError, TypeError):
            logger.warning("TOTP secret could not be decoded")
            return False
