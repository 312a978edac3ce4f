"""Tests for the token codec."""

from datetime import datetime, timedelta, timezone

import pytest

from jose import jwt

from schema.security import TokenKind
from security.errors import AuthError, AuthErrorKind
from security.tokens import TokenCodec, issued_before, remaining_lifetime


@pytest.fixture
def codec():
    return TokenCodec(
        access_secret="access-secret",
        refresh_secret="refresh-secret",
        access_lifetime=timedelta(minutes=15),
        refresh_lifetime=timedelta(days=7),
    )


def test_issue_and_decode_access_token(codec):
    token = codec.issue_access("user-1")
    claims = codec.decode(token, TokenKind.ACCESS)

    assert claims.sub == "user-1"
    assert claims.type == TokenKind.ACCESS
    assert claims.exp - claims.iat == 15 * 60


def test_refresh_token_lifetime(codec):
    claims = codec.decode(codec.issue_refresh("user-1"), TokenKind.REFRESH)
    assert claims.exp - claims.iat == 7 * 24 * 3600


def test_tokens_issued_in_the_same_second_differ(codec):
    now = datetime.now(timezone.utc)
    first = codec.issue("user-1", TokenKind.REFRESH, now=now)
    second = codec.issue("user-1", TokenKind.REFRESH, now=now)
    assert first != second


def test_access_token_is_not_a_refresh_token(codec):
    with pytest.raises(AuthError) as exc_info:
        codec.decode(codec.issue_access("user-1"), TokenKind.REFRESH)
    assert exc_info.value.kind == AuthErrorKind.INVALID_TOKEN


def test_type_claim_is_checked_even_with_the_right_secret(codec):
    forged = jwt.encode(
        {"sub": "user-1", "type": "refresh", "jti": "x", "iat": 0, "exp": 32503680000},
        "access-secret",
        algorithm="HS256",
    )
    with pytest.raises(AuthError) as exc_info:
        codec.decode(forged, TokenKind.ACCESS)
    assert exc_info.value.kind == AuthErrorKind.INVALID_TOKEN


def test_expired_token_is_distinguished(codec):
    issued = datetime.now(timezone.utc) - timedelta(hours=1)
    token = codec.issue("user-1", TokenKind.ACCESS, now=issued)

    with pytest.raises(AuthError) as exc_info:
        codec.decode(token, TokenKind.ACCESS)
    assert exc_info.value.kind == AuthErrorKind.TOKEN_EXPIRED


def test_expired_token_decodes_without_expiry_check(codec):
    issued = datetime.now(timezone.utc) - timedelta(hours=1)
    token = codec.issue("user-1", TokenKind.ACCESS, now=issued)
    assert codec.decode(token, TokenKind.ACCESS, verify_exp=False).sub == "user-1"


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token(codec, token):
    with pytest.raises(AuthError) as exc_info:
        codec.decode(token, TokenKind.ACCESS)
    assert exc_info.value.kind == AuthErrorKind.INVALID_TOKEN


def test_tampered_signature(codec):
    token = codec.issue_access("user-1")
    with pytest.raises(AuthError):
        codec.decode(token[:-2] + ("A" if token[-2] != "A" else "B") + token[-1], TokenKind.ACCESS)


def test_remaining_lifetime(codec):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    claims = codec.decode(codec.issue("user-1", TokenKind.ACCESS, now=now), TokenKind.ACCESS)

    assert remaining_lifetime(claims, now=now) == 15 * 60 + 1
    assert remaining_lifetime(claims, now=now + timedelta(milliseconds=500)) == 15 * 60 + 1
    assert remaining_lifetime(claims, now=now + timedelta(hours=1)) == 0


def test_remaining_lifetime_covers_the_expiry_second(codec):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    claims = codec.decode(codec.issue("user-1", TokenKind.ACCESS, now=now), TokenKind.ACCESS)
    expiry = datetime.fromtimestamp(claims.exp, tz=timezone.utc)

    assert remaining_lifetime(claims, now=expiry - timedelta(milliseconds=300)) == 2
    assert remaining_lifetime(claims, now=expiry + timedelta(milliseconds=500)) == 1
    assert remaining_lifetime(claims, now=expiry + timedelta(seconds=1)) == 0


def test_issued_before(codec):
    now = datetime.now(timezone.utc)
    claims = codec.decode(codec.issue("user-1", TokenKind.ACCESS, now=now - timedelta(seconds=5)), TokenKind.ACCESS)

    assert issued_before(claims, now)
    assert not issued_before(claims, now - timedelta(seconds=10))
    assert not issued_before(claims, None)
    assert issued_before(claims, now.replace(tzinfo=None))
