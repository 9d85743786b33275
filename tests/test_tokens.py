"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - issue -> validate returns the same user ID before expiry
  - expired tokens raise TokenExpired
  - a token signed with another key raises InvalidSignature
  - garbage, tampered and claim-less tokens raise InvalidSignature
  - constructor guards (empty key, non-positive TTL)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import InvalidSignature, TokenError, TokenExpired
from auth.tokens import TokenService

KEY = "k" * 32
OTHER_KEY = "o" * 32


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(KEY, ttl_seconds=3600)


def test_issue_then_validate_round_trip(tokens):
    claims = tokens.validate(tokens.issue(7))
    assert claims.user_id == 7
    assert claims.expires_at - claims.issued_at == timedelta(seconds=3600)


def test_expired_token(tokens):
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    with pytest.raises(TokenExpired):
        tokens.validate(tokens.issue(7, now=issued))


def test_wrong_key_is_invalid_signature(tokens):
    foreign = TokenService(OTHER_KEY, ttl_seconds=3600).issue(7)
    with pytest.raises(InvalidSignature):
        tokens.validate(foreign)


@pytest.mark.parametrize("garbage", ["", "abc", "a.b.c"])
def test_garbage_is_invalid_signature(tokens, garbage):
    with pytest.raises(InvalidSignature):
        tokens.validate(garbage)


def test_tampered_payload_is_rejected(tokens):
    header, payload, signature = tokens.issue(7).split(".")
    forged = jwt.encode({"sub": "8", "user_id": 8}, OTHER_KEY, algorithm="HS256").split(".")[1]
    with pytest.raises(InvalidSignature):
        tokens.validate(".".join([header, forged, signature]))


def test_token_without_user_claim_is_rejected(tokens):
    now = datetime.now(timezone.utc)
    bare = jwt.encode({"iat": now, "exp": now + timedelta(minutes=5)}, KEY, algorithm="HS256")
    with pytest.raises(InvalidSignature):
        tokens.validate(bare)


def test_token_errors_share_a_base_class():
    assert issubclass(TokenExpired, TokenError)
    assert issubclass(InvalidSignature, TokenError)


def test_empty_key_is_rejected():
    with pytest.raises(ValueError):
        TokenService("", ttl_seconds=60)


def test_non_positive_ttl_is_rejected():
    with pytest.raises(ValueError):
        TokenService(KEY, ttl_seconds=0)
