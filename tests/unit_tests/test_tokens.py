"""Tests for JWT issuance and verification."""

from datetime import timedelta

import jwt
import pytest

from authgate.errors import (
    InvalidOrMalformedToken,
    InvalidToken,
    MissingOrMalformedHeader,
    WrongTokenType,
)
from authgate.security.tokens import TokenIssuer
from tests.mocks.models import TEST_JWT_SECRET


def _flip_signature_byte(token: str) -> str:
    header, payload, signature = token.split(".")
    flipped = "A" if signature[0] != "A" else "B"
    return ".".join([header, payload, flipped + signature[1:]])


class TestIssue:
    def test_access_token_payload(self, issuer):
        payload = issuer.verify(issuer.issue_access_token("alice"))
        assert payload.username == "alice"
        assert payload.type == "access"
        assert payload.exp - payload.iat == 900
        assert payload.jti

    def test_refresh_token_lifetime(self, issuer):
        payload = issuer.verify(issuer.issue_refresh_token("alice"))
        assert payload.type == "refresh"
        assert payload.exp - payload.iat == 604800

    def test_pair_has_one_of_each(self, issuer):
        pair = issuer.issue_token_pair("alice")
        assert issuer.verify_as_access(pair.access_token).username == "alice"
        assert issuer.verify_as_refresh(pair.refresh_token).username == "alice"

    def test_tokens_are_unique(self, issuer):
        assert issuer.issue_access_token("alice") != issuer.issue_access_token("alice")

    def test_custom_lifetime(self, clock):
        custom = TokenIssuer(TEST_JWT_SECRET, access_ttl=timedelta(minutes=5), clock=clock)
        payload = custom.verify(custom.issue_access_token("alice"))
        assert payload.exp - payload.iat == 300

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenIssuer("")


class TestVerify:
    def test_access_token_rejected_as_refresh(self, issuer):
        with pytest.raises(WrongTokenType):
            issuer.verify_as_refresh(issuer.issue_access_token("alice"))

    def test_refresh_token_rejected_as_access(self, issuer):
        with pytest.raises(WrongTokenType):
            issuer.verify_as_access(issuer.issue_refresh_token("alice"))

    def test_tampered_signature(self, issuer):
        token = _flip_signature_byte(issuer.issue_access_token("alice"))
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_other_secret(self, issuer, clock):
        other = TokenIssuer("a-completely-different-signing-secret-value", clock=clock)
        with pytest.raises(InvalidToken):
            issuer.verify(other.issue_access_token("alice"))

    def test_expired_access_token(self, issuer, clock):
        token = issuer.issue_access_token("alice")
        clock.advance(899)
        assert issuer.verify(token).username == "alice"
        clock.advance(1)
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_expired_refresh_token(self, issuer, clock):
        token = issuer.issue_refresh_token("alice")
        clock.advance(604800)
        with pytest.raises(InvalidToken):
            issuer.verify_as_refresh(token)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_garbage(self, issuer, token):
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_missing_type_claim(self, issuer, clock):
        now = int(clock())
        token = jwt.encode({"sub": "alice", "iat": now, "exp": now + 60}, TEST_JWT_SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_unknown_type_claim(self, issuer, clock):
        now = int(clock())
        token = jwt.encode(
            {"sub": "alice", "type": "admin", "iat": now, "exp": now + 60},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_unsigned_token_rejected(self, issuer, clock):
        now = int(clock())
        token = jwt.encode({"sub": "alice", "type": "access", "iat": now, "exp": now + 60}, "", algorithm="none")
        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_failures_share_one_message(self, issuer, clock):
        expired = issuer.issue_access_token("alice")
        clock.advance(1000)
        messages = set()
        for token in (expired, "garbage", _flip_signature_byte(issuer.issue_access_token("alice"))):
            with pytest.raises(InvalidOrMalformedToken) as excinfo:
                issuer.verify(token)
            messages.add(excinfo.value.message)
        assert len(messages) == 1


class TestExtractFromHeader:
    def test_bearer_token(self):
        assert TokenIssuer.extract_from_header("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize(
        "value",
        [None, "", "Bearer", "Bearer ", "bearer abc", "Basic abc", "Token abc", "Bearer  abc", "abc"],
    )
    def test_malformed(self, value):
        with pytest.raises(MissingOrMalformedHeader):
            TokenIssuer.extract_from_header(value)
