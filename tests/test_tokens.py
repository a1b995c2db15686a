"""Unit tests for auth/tokens.py -- bcrypt helpers and TokenIssuer.

Covers:
- hash/verify round trip, wrong password, malformed stored hash
- >72-byte inputs hash without error
- access and refresh tokens carry the expected claims and are not interchangeable
- two pairs issued back to back are distinct (jti)
- expired -> TokenExpiredError; tampered / wrong issuer / wrong audience -> TokenInvalidError
- clock tolerance accepts a token that expired moments ago
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import User
from auth.tokens import TokenIssuer, hash_password, verify_password
from core.config import get_settings
from core.errors import TokenExpiredError, TokenInvalidError


@pytest.fixture
def user() -> User:
    return User(
        id="user-1",
        email="ana@example.com",
        name="Ana Perez",
        password_hash="$2b$04$abcdefghijklmnopqrstuv0123456789ABCDEFGHIJKLMNOPQRSTU",
        role="admin",
    )


def _forge(secret: str, **overrides) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": "user-1",
        "email": "ana@example.com",
        "role": "admin",
        "type": "access",
        "jti": "x",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": settings.token_issuer,
        "aud": settings.token_audience,
    }
    claims.update(overrides)
    return jwt.encode(claims, secret, algorithm="HS256")


class TestPasswords:
    def test_roundtrip(self) -> None:
        hashed = hash_password("Str0ng!Pass", rounds=4)
        assert hashed != "Str0ng!Pass"
        assert verify_password("Str0ng!Pass", hashed)
        assert not verify_password("Wr0ng!Pass", hashed)

    def test_long_input_is_accepted(self) -> None:
        long_password = "Aa1!" * 30
        hashed = hash_password(long_password, rounds=4)
        assert verify_password(long_password, hashed)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("Str0ng!Pass", "not-a-bcrypt-hash") is False


class TestIssuer:
    def test_access_token_claims(self, issuer, user) -> None:
        pair = issuer.issue_pair(user)
        identity = issuer.verify_access(pair.access_token)
        assert identity.user_id == "user-1"
        assert identity.email == "ana@example.com"
        assert identity.role == "admin"

        claims = jwt.get_unverified_claims(pair.access_token)
        assert claims["type"] == "access"
        assert claims["iss"] == "bustrack-sv"
        assert claims["aud"] == "bustrack-api"
        assert claims["exp"] - claims["iat"] == get_settings().access_token_expire_seconds

    def test_refresh_token_verifies_as_refresh_only(self, issuer, user) -> None:
        pair = issuer.issue_pair(user)
        assert issuer.verify_refresh(pair.refresh_token).user_id == "user-1"
        with pytest.raises(TokenInvalidError):
            issuer.verify_access(pair.refresh_token)
        with pytest.raises(TokenInvalidError):
            issuer.verify_refresh(pair.access_token)

    def test_pairs_are_distinct(self, issuer, user) -> None:
        first = issuer.issue_pair(user)
        second = issuer.issue_pair(user)
        assert first.access_token != second.access_token
        assert first.refresh_token != second.refresh_token
        assert first.access_token != first.refresh_token

    def test_expired(self, issuer) -> None:
        past = datetime.now(timezone.utc) - timedelta(minutes=10)
        token = _forge(get_settings().jwt_secret, iat=past - timedelta(minutes=15), exp=past)
        with pytest.raises(TokenExpiredError):
            issuer.verify_access(token)

    def test_clock_tolerance(self, issuer) -> None:
        just_now = datetime.now(timezone.utc) - timedelta(seconds=5)
        token = _forge(get_settings().jwt_secret, iat=just_now - timedelta(minutes=15), exp=just_now)
        assert issuer.verify_access(token).user_id == "user-1"

    @pytest.mark.parametrize(
        "overrides",
        [{"iss": "someone-else"}, {"aud": "other-api"}, {"type": "refresh"}],
    )
    def test_wrong_claims_rejected(self, issuer, overrides: dict) -> None:
        token = _forge(get_settings().jwt_secret, **overrides)
        with pytest.raises(TokenInvalidError):
            issuer.verify_access(token)

    def test_wrong_secret_rejected(self, issuer) -> None:
        token = _forge("x" * 40)
        with pytest.raises(TokenInvalidError):
            issuer.verify_access(token)

    @pytest.mark.parametrize("token", ["", "not.a.jwt", "abc"])
    def test_garbage_rejected(self, issuer, token: str) -> None:
        with pytest.raises(TokenInvalidError):
            issuer.verify_access(token)

    def test_missing_claims_rejected(self, issuer) -> None:
        token = _forge(get_settings().jwt_secret, email=None)
        claims = jwt.get_unverified_claims(token)
        claims.pop("email")
        stripped = jwt.encode(claims, get_settings().jwt_secret, algorithm="HS256")
        with pytest.raises(TokenInvalidError):
            issuer.verify_access(stripped)
