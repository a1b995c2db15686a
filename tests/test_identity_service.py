"""Unit tests for auth/service.py -- IdentityService.

Async operations are driven with asyncio.run (conftest.run).

Covers:
- register: default role, token pair, duplicate email in any case, policy
  failures before any hashing, disabled self-registration
- login: unknown email and wrong password are indistinguishable
- refresh: rotation returns a new pair; garbage, access tokens and deleted
  users all fail with TOKEN_INVALID
- profile: safe view of the caller; NotFoundError after deletion
- cancellation: a cancelled token stops the operation before any write
"""

from __future__ import annotations

import pytest

from auth.service import IdentityService
from auth.store import UserRepository
from core.cancellation import CancellationToken, OperationCancelled
from core.errors import AuthorizationError, ConflictError, InvalidCredentialsError, NotFoundError, TokenInvalidError, ValidationError
from conftest import run

PASSWORD = "Str0ng!Pass"


@pytest.fixture
def users(store) -> UserRepository:
    return UserRepository(store)


@pytest.fixture
def service(users, issuer) -> IdentityService:
    return IdentityService(users, issuer, bcrypt_rounds=4)


class TestRegister:
    def test_defaults_to_supervisor_and_issues_pair(self, service) -> None:
        result = run(service.register("Ana@Example.com", "Ana Perez", PASSWORD))
        assert result.user.role == "supervisor"
        assert result.user.email == "ana@example.com"
        assert result.access_token and result.refresh_token
        assert result.access_token != result.refresh_token
        assert "passwordHash" not in result.user.to_json()

    def test_stores_bcrypt_hash_not_plaintext(self, service, users) -> None:
        run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        stored = users.find_by_email("ana@example.com")
        assert stored.password_hash != PASSWORD
        assert stored.password_hash.startswith("$2")

    def test_duplicate_email_any_case(self, service) -> None:
        run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        with pytest.raises(ConflictError) as exc:
            run(service.register("ANA@example.com", "Other Ana", PASSWORD))
        assert exc.value.field == "email"

    def test_weak_password_names_requirement(self, service, users) -> None:
        with pytest.raises(ValidationError) as exc:
            run(service.register("ana@example.com", "Ana Perez", "alllowercase1!"))
        assert exc.value.details["requirement"] == "uppercase"
        assert users.find_by_email("ana@example.com") is None

    def test_invalid_role(self, service) -> None:
        with pytest.raises(ValidationError) as exc:
            run(service.register("ana@example.com", "Ana Perez", PASSWORD, role="driver"))
        assert exc.value.field == "role"

    def test_self_registration_disabled(self, users, issuer) -> None:
        closed = IdentityService(users, issuer, bcrypt_rounds=4, self_registration_enabled=False)
        with pytest.raises(AuthorizationError):
            run(closed.register("ana@example.com", "Ana Perez", PASSWORD))


class TestLogin:
    def test_success(self, service) -> None:
        run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        result = run(service.login("  ANA@example.com", PASSWORD))
        assert result.user.email == "ana@example.com"

    def test_unknown_email_and_wrong_password_are_identical(self, service) -> None:
        run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        with pytest.raises(InvalidCredentialsError) as unknown:
            run(service.login("nobody@example.com", PASSWORD))
        with pytest.raises(InvalidCredentialsError) as wrong:
            run(service.login("ana@example.com", "Wr0ng!Pass"))
        assert unknown.value.to_dict() == wrong.value.to_dict()
        assert unknown.value.to_dict() == {"error": "Invalid email or password", "type": "INVALID_CREDENTIALS"}


class TestRefresh:
    def test_rotation_returns_new_pair(self, service, issuer) -> None:
        registered = run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        rotated = run(service.refresh(registered.refresh_token))
        assert rotated.refresh_token != registered.refresh_token
        assert rotated.access_token != registered.access_token
        assert issuer.verify_access(rotated.access_token).user_id == registered.user.id

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_garbage_is_token_invalid(self, service, token: str) -> None:
        with pytest.raises(TokenInvalidError) as exc:
            run(service.refresh(token))
        assert exc.value.message == "Invalid or expired refresh token"

    def test_access_token_is_not_a_refresh_token(self, service) -> None:
        registered = run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        with pytest.raises(TokenInvalidError):
            run(service.refresh(registered.access_token))

    def test_deleted_user_cannot_refresh(self, service, users) -> None:
        registered = run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        users.remove(registered.user.id)
        with pytest.raises(TokenInvalidError):
            run(service.refresh(registered.refresh_token))


class TestProfile:
    def test_returns_user(self, service, issuer) -> None:
        registered = run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        identity = issuer.verify_access(registered.access_token)
        assert run(service.profile(identity)).id == registered.user.id

    def test_deleted_user_not_found(self, service, users, issuer) -> None:
        registered = run(service.register("ana@example.com", "Ana Perez", PASSWORD))
        identity = issuer.verify_access(registered.access_token)
        users.remove(registered.user.id)
        with pytest.raises(NotFoundError):
            run(service.profile(identity))


class TestCancellation:
    def test_cancelled_register_writes_nothing(self, service, users) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            run(service.register("ana@example.com", "Ana Perez", PASSWORD, cancel=token))
        assert users.find_by_email("ana@example.com") is None

    def test_probe_reporting_disconnect_cancels(self, service) -> None:
        async def disconnected() -> bool:
            return True

        with pytest.raises(OperationCancelled):
            run(service.login("ana@example.com", PASSWORD, cancel=CancellationToken(probe=disconnected)))
