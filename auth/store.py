"""
auth/store.py -- Persistence layer for User accounts.

Pattern: Repository + Data Mapper. UserRepository is the repository;
User.to_document() / User.from_document() are the mappers. Services and route
code never touch the document store directly.

Uniqueness:
  create() looks the email up first and raises ConflictError(field="email")
  before any write. The store's unique-key index on users.email catches the
  race between that check and the insert; _guard() maps the resulting
  DuplicateKeyError to the same ConflictError.

Errors:
  find_* return None for "not found". Store failures raise StorageError.

Layer rule: no imports from api/ or fleet/.
"""

from __future__ import annotations

from typing import Optional

from auth.models import User
from core.errors import NotFoundError, ValidationError
from core.validation import validate_email
from storage.repository import DocumentRepository

USER_LIST_DEFAULT_LIMIT = 10


class UserRepository(DocumentRepository):
    """Repository for User entities.

    Usage:
        users = UserRepository(store)
        created = users.create(User(email="a@b.com", name="Ana", password_hash=h))
        same = users.find_by_email("A@B.com")
    """

    collection = User.collection()
    unique_field = "email"
    conflict_field = "email"
    conflict_message = "Email already registered"

    def find_by_id(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        with self._guard("find_by_id"):
            doc = self._store.get(self.collection, user_id)
        return User.from_document(doc) if doc else None

    def find_by_email(self, email: str) -> Optional[User]:
        """Look up by email. Input is trimmed and lowercased first; malformed input is simply not found."""
        try:
            normalized = validate_email(email)
        except ValidationError:
            return None
        with self._guard("find_by_email"):
            doc = self._store.find_one(self.collection, self.unique_field, normalized)
        return User.from_document(doc) if doc else None

    def create(self, user: User) -> User:
        """Persist a new user and return it with id and timestamps assigned."""
        if self.find_by_email(user.email) is not None:
            raise self.conflict_error()
        with self._guard("create"):
            new_id = self._store.insert(self.collection, user.to_document())
            doc = self._store.get(self.collection, new_id)
        return User.from_document(doc)

    def update(self, user: User) -> User:
        """Write the user's current fields back and return the re-read copy."""
        if user.id is None or self.find_by_id(user.id) is None:
            raise NotFoundError("User not found")
        other = self.find_by_email(user.email)
        if other is not None and other.id != user.id:
            raise self.conflict_error()
        user.touch()
        with self._guard("update"):
            updated = self._store.update(self.collection, user.id, user.to_document())
            doc = self._store.get(self.collection, user.id) if updated else None
        if doc is None:
            raise NotFoundError("User not found")
        return User.from_document(doc)

    def remove(self, user_id: str) -> bool:
        if self.find_by_id(user_id) is None:
            raise NotFoundError("User not found")
        with self._guard("remove"):
            return self._store.delete(self.collection, user_id)

    def list(self, role: Optional[str] = None, limit: int = USER_LIST_DEFAULT_LIMIT) -> list[User]:
        """Return up to `limit` users in creation order, optionally filtered by role."""
        filters = {"role": role} if role else None
        with self._guard("list"):
            docs = self._store.scan(self.collection, filters, limit=max(1, limit))
        return [User.from_document(d) for d in docs]
