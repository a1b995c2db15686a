"""
auth/tokens.py -- Password hashing and JWT issuance/verification.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The work factor comes
       from Settings.bcrypt_rounds. bcrypt only reads the first 72 bytes of its
       input and recent releases raise on longer input, so the input is cut to
       72 bytes explicitly. The password policy caps length at 128 characters
       and restricts the charset to ASCII, so at most the tail of very long
       passwords is ignored.

       _dummy_hash() enables timing equalization in IdentityService.login():
       an unknown email still pays for one bcrypt comparison, so response
       time does not reveal whether an account exists.

  JWT: python-jose with HS256. Access and refresh tokens are signed with
       different secrets and carry a `type` claim, so neither can stand in for
       the other even if the secrets were ever shared. Verification checks
       signature, expiry (with clock tolerance), issuer and audience, and maps
       every failure to TokenExpiredError or TokenInvalidError.

Layer rule: no imports from api/, fleet/, or storage/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from auth.models import Identity
from core.errors import TokenExpiredError, TokenInvalidError

if TYPE_CHECKING:
    from auth.models import User
    from core.config import Settings

logger = logging.getLogger("bustrack.auth")

_ALGORITHM = "HS256"
_BCRYPT_MAX_BYTES = 72

ACCESS = "access"
REFRESH = "refresh"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is treated as a mismatch, never as an error the
    caller could tell apart from a wrong password.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


_DUMMY_HASHES: dict[int, str] = {}


def _dummy_hash(rounds: int) -> str:
    # Built on first use, per work factor, so the throwaway comparison costs
    # the same as a real one.
    if rounds not in _DUMMY_HASHES:
        _DUMMY_HASHES[rounds] = hash_password("bustrack_timing_dummy", rounds)
    return _DUMMY_HASHES[rounds]


def burn_password_check(plain: str, rounds: int = 10) -> None:
    """Run one bcrypt comparison against a throwaway hash and discard the result."""
    verify_password(plain, _dummy_hash(rounds))


# ---------------------------------------------------------------------------
# JWT issuance and verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenIssuer:
    """Signs and verifies access/refresh tokens for one Settings instance.

    Usage:
        issuer = TokenIssuer(get_settings())
        pair = issuer.issue_pair(user)
        identity = issuer.verify_access(pair.access_token)
    """

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._access_ttl = timedelta(seconds=settings.access_token_expire_seconds)
        self._refresh_ttl = timedelta(seconds=settings.refresh_token_expire_seconds)
        self._issuer = settings.token_issuer
        self._audience = settings.token_audience
        self._leeway = settings.token_clock_tolerance_seconds

    def issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self._encode(user, ACCESS, self._access_secret, self._access_ttl),
            refresh_token=self._encode(user, REFRESH, self._refresh_secret, self._refresh_ttl),
        )

    def verify_access(self, token: str) -> Identity:
        return self._to_identity(self._decode(token, ACCESS, self._access_secret))

    def verify_refresh(self, token: str) -> Identity:
        return self._to_identity(self._decode(token, REFRESH, self._refresh_secret))

    # ------------------------------------------------------------------

    def _encode(self, user: User, token_type: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
            "iss": self._issuer,
            "aud": self._audience,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def _decode(self, token: str, expected_type: str, secret: str) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenInvalidError("Token is missing")
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={"leeway": self._leeway},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except JWTError as exc:
            raise TokenInvalidError("Invalid token") from exc
        if payload.get("type") != expected_type:
            raise TokenInvalidError("Invalid token type")
        return payload

    @staticmethod
    def _to_identity(payload: dict[str, Any]) -> Identity:
        try:
            return Identity(user_id=payload["sub"], email=payload["email"], role=payload["role"])
        except KeyError as exc:
            raise TokenInvalidError("Invalid token") from exc
