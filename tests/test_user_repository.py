"""Unit tests for auth/store.py -- UserRepository.

Covers:
- create assigns id/timestamps and never stores the plaintext
- duplicate email in any letter case -> ConflictError(field="email")
- find_by_email normalizes input; malformed input is "not found"
- update/remove on a missing id -> NotFoundError
- list filters by role and honours the limit
- store failures surface as StorageError, distinguishable from "not found"
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.models import User
from auth.store import UserRepository
from core.errors import ConflictError, NotFoundError, StorageError

FAKE_HASH = "$2b$04$abcdefghijklmnopqrstuv0123456789ABCDEFGHIJKLMNOPQRSTU"


@pytest.fixture
def users(store) -> UserRepository:
    return UserRepository(store)


def _user(email: str = "ana@example.com", role: str = "supervisor") -> User:
    return User(email=email, name="Ana Perez", password_hash=FAKE_HASH, role=role)


class TestCreate:
    def test_assigns_id_and_timestamps(self, users) -> None:
        created = users.create(_user())
        assert created.id
        assert created.created_at is not None
        assert created.updated_at is not None

    @pytest.mark.parametrize("email", ["ana@example.com", "ANA@EXAMPLE.COM", "  Ana@Example.com "])
    def test_duplicate_email_any_case_conflicts(self, users, email: str) -> None:
        users.create(_user())
        with pytest.raises(ConflictError) as exc:
            users.create(_user(email=email))
        assert exc.value.field == "email"
        assert exc.value.to_dict()["details"] == {"field": "email"}


class TestLookup:
    def test_find_by_email_normalizes(self, users) -> None:
        created = users.create(_user())
        assert users.find_by_email("  ANA@example.com ").id == created.id

    def test_find_by_email_malformed_is_none(self, users) -> None:
        assert users.find_by_email("not-an-email") is None

    def test_find_by_id_missing_is_none(self, users) -> None:
        assert users.find_by_id("missing") is None


class TestUpdateRemove:
    def test_update_persists_and_refreshes_updated_at(self, users) -> None:
        created = users.create(_user())
        created.name = "Ana Maria"
        updated = users.update(created)
        assert updated.name == "Ana Maria"
        assert updated.updated_at >= created.created_at

    def test_update_into_taken_email_conflicts(self, users) -> None:
        users.create(_user("first@example.com"))
        second = users.create(_user("second@example.com"))
        second.email = "first@example.com"
        with pytest.raises(ConflictError):
            users.update(second)

    def test_update_missing_raises(self, users) -> None:
        ghost = User(id="missing", email="g@example.com", name="Ghost", password_hash=FAKE_HASH)
        with pytest.raises(NotFoundError):
            users.update(ghost)

    def test_remove(self, users) -> None:
        created = users.create(_user())
        assert users.remove(created.id) is True
        assert users.find_by_id(created.id) is None
        with pytest.raises(NotFoundError):
            users.remove(created.id)


class TestList:
    def test_filters_by_role_and_limits(self, users) -> None:
        users.create(_user("a1@example.com", role="admin"))
        for i in range(3):
            users.create(_user(f"s{i}@example.com"))
        assert [u.email for u in users.list(role="admin")] == ["a1@example.com"]
        assert len(users.list(role="supervisor", limit=2)) == 2
        assert len(users.list()) == 4


class TestStorageFailure:
    def test_driver_error_becomes_storage_error(self, users, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(users._store, "get", boom)
        with pytest.raises(StorageError) as exc:
            users.find_by_id("any")
        assert exc.value.message == "An unexpected error occurred."
        assert "disk" not in exc.value.message
        assert isinstance(exc.value.__cause__, OperationalError)
