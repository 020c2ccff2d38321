"""Tests for signed, expiring email tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from storefront_identity.security.tokens import (
    TokenExpired,
    TokenInvalid,
    TokenPurpose,
    TokenService,
)

from conftest import ISSUER, SECRET


def _service_at(moment: datetime) -> TokenService:
    return TokenService(secret=SECRET, issuer=ISSUER, clock=lambda: moment)


def test_issued_token_validates_to_subject_and_purpose(tokens):
    token = tokens.issue("alice@x.com", TokenPurpose.VERIFY_EMAIL, 60)

    claims = tokens.validate(token, TokenPurpose.VERIFY_EMAIL)

    assert claims.subject_email == "alice@x.com"
    assert claims.purpose is TokenPurpose.VERIFY_EMAIL
    assert claims.expires_at > datetime.now(timezone.utc)
    assert tokens.extract_subject(token) == "alice@x.com"


def test_tokens_issued_back_to_back_differ(tokens):
    first = tokens.issue("alice@x.com", TokenPurpose.VERIFY_EMAIL, 60)
    second = tokens.issue("alice@x.com", TokenPurpose.VERIFY_EMAIL, 60)

    assert first != second


@pytest.mark.parametrize(
    ("ttl", "elapsed"),
    [(1, 5), (60, 61 + 5), (900, 3600), (86400, 86400 * 2)],
)
def test_token_past_expiry_fails_with_expired(tokens, ttl, elapsed):
    issued_at = datetime.now(timezone.utc) - timedelta(seconds=elapsed)
    token = _service_at(issued_at).issue("alice@x.com", TokenPurpose.RESET_PASSWORD, ttl)

    with pytest.raises(TokenExpired):
        tokens.validate(token)


def test_expired_token_still_yields_subject(tokens):
    issued_at = datetime.now(timezone.utc) - timedelta(hours=1)
    token = _service_at(issued_at).issue("alice@x.com", TokenPurpose.VERIFY_EMAIL, 60)

    assert tokens.extract_subject(token) == "alice@x.com"


def test_token_signed_with_other_secret_is_invalid(tokens):
    forged = TokenService(secret="attacker", issuer=ISSUER).issue(
        "alice@x.com", TokenPurpose.VERIFY_EMAIL, 60
    )

    with pytest.raises(TokenInvalid):
        tokens.validate(forged)
    with pytest.raises(TokenInvalid):
        tokens.extract_subject(forged)


def test_expired_forgery_is_invalid_not_expired(tokens):
    issued_at = datetime.now(timezone.utc) - timedelta(hours=1)
    forged = TokenService(secret="attacker", issuer=ISSUER, clock=lambda: issued_at).issue(
        "alice@x.com", TokenPurpose.VERIFY_EMAIL, 60
    )

    with pytest.raises(TokenInvalid):
        tokens.validate(forged)


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
def test_malformed_token_is_invalid(tokens, token):
    with pytest.raises(TokenInvalid):
        tokens.validate(token)
    with pytest.raises(TokenInvalid):
        tokens.extract_subject(token)


def test_purpose_mismatch_is_invalid(tokens):
    token = tokens.issue("alice@x.com", TokenPurpose.RESET_PASSWORD, 60)

    with pytest.raises(TokenInvalid):
        tokens.validate(token, TokenPurpose.VERIFY_EMAIL)


def test_foreign_issuer_is_invalid(tokens):
    token = TokenService(secret=SECRET, issuer="someone.else").issue(
        "alice@x.com", TokenPurpose.VERIFY_EMAIL, 60
    )

    with pytest.raises(TokenInvalid):
        tokens.validate(token)


def test_token_without_purpose_claim_is_invalid(tokens):
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode(
        {"iss": ISSUER, "sub": "alice@x.com", "iat": now, "exp": now + 60},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(TokenInvalid):
        tokens.validate(token)


def test_expiry_is_judged_by_the_injected_clock():
    moment = datetime(2020, 1, 1, tzinfo=timezone.utc)
    frozen = _service_at(moment)
    token = frozen.issue("alice@x.com", TokenPurpose.VERIFY_EMAIL, 60)

    assert frozen.validate(token, TokenPurpose.VERIFY_EMAIL).subject_email == "alice@x.com"

    with pytest.raises(TokenExpired):
        _service_at(moment + timedelta(seconds=60)).validate(token)
