"""
auth/service.py -- Identity service: registration, login, token rotation, profile.

Every operation is async. Store calls and bcrypt are blocking, so they run in
a worker thread via anyio.to_thread.run_sync and the event loop stays free.
Before each of those suspension points the optional CancellationToken is
checked; a client that disconnected mid-request stops the remaining steps.

Security:
  login() returns the same InvalidCredentialsError for an unknown email and a
  wrong password, and runs bcrypt in both cases (against a throwaway hash for
  unknown emails) so neither message nor timing reveals account existence.

  refresh() collapses every verification failure into one TokenInvalidError.
  The refresh token being rotated is not revoked; see DESIGN.md.

Layer rule: no imports from api/ or fleet/.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Optional

import anyio

from auth.models import DEFAULT_ROLE, NAME_MAX_LENGTH, NAME_MIN_LENGTH, ROLES, Identity, User
from auth.store import UserRepository
from auth.tokens import TokenIssuer, burn_password_check, hash_password, verify_password
from core.cancellation import CancellationToken, checkpoint
from core.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidCredentialsError,
    NotFoundError,
    TokenInvalidError,
)
from core.validation import validate_email, validate_enum, validate_password, validate_text

logger = logging.getLogger("bustrack.auth")


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


async def _run(func, *args, **kwargs):
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


class IdentityService:
    """Account flows on top of UserRepository and TokenIssuer.

    Usage:
        service = IdentityService(users, issuer, bcrypt_rounds=10)
        result = await service.register("ana@example.com", "Ana", "Str0ng!Pass")
        again = await service.login("ana@example.com", "Str0ng!Pass")
    """

    def __init__(
        self,
        users: UserRepository,
        tokens: TokenIssuer,
        bcrypt_rounds: int = 10,
        self_registration_enabled: bool = True,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._rounds = bcrypt_rounds
        self._self_registration_enabled = self_registration_enabled

    async def register(
        self,
        email: str,
        name: str,
        password: str,
        role: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AuthResult:
        """Create an account and sign it in.

        Cheap checks (shape, policy, uniqueness) run before bcrypt so a bad
        request never pays for a hash.
        """
        if not self._self_registration_enabled:
            raise AuthorizationError("Self-registration is disabled")

        normalized = validate_email(email)
        validate_password(password)
        validate_text(name, "name", NAME_MIN_LENGTH, NAME_MAX_LENGTH, label="Name")
        role = validate_enum(role or DEFAULT_ROLE, ROLES, field="role")

        await checkpoint(cancel)
        if await _run(self._users.find_by_email, normalized) is not None:
            raise self._users.conflict_error()

        await checkpoint(cancel)
        password_hash = await _run(hash_password, password, self._rounds)

        await checkpoint(cancel)
        user = await _run(
            self._users.create,
            User(email=normalized, name=name, password_hash=password_hash, role=role),
        )
        logger.info("Registered user %s (role=%s)", user.id, user.role)
        return self._sign_in(user)

    async def login(self, email: str, password: str, cancel: Optional[CancellationToken] = None) -> AuthResult:
        await checkpoint(cancel)
        user = await _run(self._users.find_by_email, email)

        await checkpoint(cancel)
        if user is None:
            await _run(burn_password_check, password or "", self._rounds)
            logger.warning("Failed login: unknown account")
            raise InvalidCredentialsError()
        if not await _run(verify_password, password or "", user.password_hash):
            logger.warning("Failed login: wrong password for user %s", user.id)
            raise InvalidCredentialsError()
        return self._sign_in(user)

    async def refresh(self, refresh_token: str, cancel: Optional[CancellationToken] = None) -> AuthResult:
        """Exchange a valid refresh token for a brand-new pair.

        The user is re-read so a role change or deletion since the old pair
        was issued is reflected in (or blocks) the new one.
        """
        try:
            identity = self._tokens.verify_refresh(refresh_token)
        except AuthenticationError as exc:
            raise TokenInvalidError("Invalid or expired refresh token") from exc

        await checkpoint(cancel)
        user = await _run(self._users.find_by_id, identity.user_id)
        if user is None:
            raise TokenInvalidError("Invalid or expired refresh token")
        return self._sign_in(user)

    async def profile(self, identity: Identity, cancel: Optional[CancellationToken] = None) -> User:
        await checkpoint(cancel)
        user = await _run(self._users.find_by_id, identity.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _sign_in(self, user: User) -> AuthResult:
        pair = self._tokens.issue_pair(user)
        return AuthResult(user=user, access_token=pair.access_token, refresh_token=pair.refresh_token)
