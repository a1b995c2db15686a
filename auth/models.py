"""
auth/models.py -- User domain model and decoded token identity.

Pattern: self-validating domain object. Every field is a property whose setter
runs the matching primitive from core/validation.py, and __init__ assigns
through those setters, so a User that exists is a valid User.

Two representations:
  to_json()      -- the safe view sent to clients. Never contains the hash.
  to_document()  -- the storage body. Contains passwordHash.

repr(user) goes through the safe fields only, so a user object that ends up in
a log line cannot leak its hash.

Layer rule: no imports from api/, fleet/, or storage/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from core.errors import ValidationError
from core.validation import validate_email, validate_enum, validate_text

ROLES = ("admin", "supervisor")
DEFAULT_ROLE = "supervisor"

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
PASSWORD_HASH_MIN_LENGTH = 10


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class User:
    """An account that can sign in to the dashboard.

    id, created_at and updated_at are assigned by the store; a freshly built
    User has them as None until the repository returns the persisted copy.
    """

    def __init__(
        self,
        email: str,
        name: str,
        password_hash: str,
        role: str = DEFAULT_ROLE,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self._id = id
        self.email = email
        self.name = name
        self.role = role
        self.password_hash = password_hash
        self.created_at = created_at
        self.updated_at = updated_at

    # ------------------------------------------------------------------
    # Validated properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def email(self) -> str:
        return self._email

    @email.setter
    def email(self, value: str) -> None:
        self._email = validate_email(value)

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = validate_text(value, "name", NAME_MIN_LENGTH, NAME_MAX_LENGTH, label="Name")

    @property
    def role(self) -> str:
        return self._role

    @role.setter
    def role(self, value: str) -> None:
        self._role = validate_enum(value, ROLES, field="role")

    @property
    def password_hash(self) -> str:
        return self._password_hash

    @password_hash.setter
    def password_hash(self, value: str) -> None:
        if not value or not isinstance(value, str) or len(value) < PASSWORD_HASH_MIN_LENGTH:
            raise ValidationError("Password hash is invalid", field="passwordHash")
        self._password_hash = value

    @property
    def created_at(self) -> Optional[datetime]:
        return self._created_at

    @created_at.setter
    def created_at(self, value: Any) -> None:
        self._created_at = _parse_timestamp(value)

    @property
    def updated_at(self) -> Optional[datetime]:
        return self._updated_at

    @updated_at.setter
    def updated_at(self, value: Any) -> None:
        self._updated_at = _parse_timestamp(value)

    # ------------------------------------------------------------------
    # Behaviour
    # ------------------------------------------------------------------

    def is_admin(self) -> bool:
        return self._role == "admin"

    def is_supervisor(self) -> bool:
        return self._role == "supervisor"

    def touch(self) -> None:
        """Bump updated_at to now (the store overwrites it again on write)."""
        self._updated_at = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @classmethod
    def collection(cls) -> str:
        return "users"

    @classmethod
    def allowed_roles(cls) -> tuple[str, ...]:
        return ROLES

    def to_json(self) -> dict[str, Any]:
        """Safe view for API responses."""
        return {
            "id": self._id,
            "email": self._email,
            "name": self._name,
            "role": self._role,
            "createdAt": _iso(self._created_at),
            "updatedAt": _iso(self._updated_at),
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "email": self._email,
            "name": self._name,
            "role": self._role,
            "passwordHash": self._password_hash,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "User":
        return cls(
            id=doc["id"],
            email=doc["email"],
            name=doc["name"],
            role=doc.get("role", DEFAULT_ROLE),
            password_hash=doc["passwordHash"],
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def __repr__(self) -> str:
        return f"User(id={self._id!r}, email={self._email!r}, name={self._name!r}, role={self._role!r})"


@dataclass(frozen=True)
class Identity:
    """The caller as described by a verified access token.

    Built from token claims only -- no store round-trip -- so authorization
    checks stay cheap. Use IdentityService.profile() when the full User is needed.
    """

    user_id: str
    email: str
    role: str

    def has_role(self, *roles: str) -> bool:
        return self.role in roles
