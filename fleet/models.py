"""
fleet/models.py -- Bus domain model, GPS position, and the update/filter/page types.

Pattern: self-validating domain object (same shape as auth/models.User). Every
Bus field is a property whose setter normalizes and validates; __init__ assigns
through the setters, so an invalid Bus cannot be constructed or mutated into.

Position is a frozen value object. A bus either has a complete, in-range
position or none at all; (0, 0) is a real position, not "absent".

BusUpdate is the allow-list of fields a client may change. Anything not named
here (id, timestamps) cannot be written through an update.

Layer rule: no imports from api/, auth/, or storage/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from core.errors import ValidationError
from core.validation import (
    validate_coordinates,
    validate_enum,
    validate_non_negative_int,
    validate_text,
)

STATUSES = ("parked", "moving", "maintenance")

LICENSE_PLATE_MIN_LENGTH = 3
LICENSE_PLATE_MAX_LENGTH = 20
UNIT_NAME_MIN_LENGTH = 1
UNIT_NAME_MAX_LENGTH = 50


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _optional_text(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", field=field_name)
    return value.strip() or None


# ---------------------------------------------------------------------------
# Position
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        lat, lng = validate_coordinates(self.lat, self.lng)
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)

    @classmethod
    def from_json(cls, data: Any) -> "Position":
        """Build from a {lat, lng} mapping. Both keys are required."""
        if not isinstance(data, dict):
            raise ValidationError("Position must be an object with lat and lng", field="position")
        if data.get("lat") is None:
            raise ValidationError("Latitude is required", field="latitude")
        if data.get("lng") is None:
            raise ValidationError("Longitude is required", field="longitude")
        return cls(data["lat"], data["lng"])

    def to_json(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


# ---------------------------------------------------------------------------
# Update / filter / page types
# ---------------------------------------------------------------------------


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

# Client-facing (camelCase) name -> BusUpdate attribute.
_UPDATE_FIELDS = {
    "licensePlate": "license_plate",
    "unitName": "unit_name",
    "status": "status",
    "route": "route",
    "driver": "driver",
    "movingTime": "moving_time",
    "parkedTime": "parked_time",
    "isFavorite": "is_favorite",
    "position": "position",
}


@dataclass
class BusUpdate:
    """Partial update. Fields left as UNSET are not touched.

    position=None clears the position; a Position replaces it.
    """

    license_plate: Any = UNSET
    unit_name: Any = UNSET
    status: Any = UNSET
    route: Any = UNSET
    driver: Any = UNSET
    moving_time: Any = UNSET
    parked_time: Any = UNSET
    is_favorite: Any = UNSET
    position: Any = UNSET

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "BusUpdate":
        """Build from a camelCase mapping. Unknown keys are rejected."""
        unknown = sorted(set(data) - set(_UPDATE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}", field=unknown[0])
        values = {}
        for key, value in data.items():
            if key == "position" and value is not None and not isinstance(value, Position):
                value = Position.from_json(value)
            values[_UPDATE_FIELDS[key]] = value
        return cls(**values)

    def changes(self) -> dict[str, Any]:
        return {name: value for name, value in self.__dict__.items() if value is not UNSET}

    def is_empty(self) -> bool:
        return not self.changes()


@dataclass(frozen=True)
class BusFilters:
    """Equality filters for list queries. None means "do not filter"."""

    status: Optional[str] = None
    route: Optional[str] = None
    is_favorite: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.status is not None:
            validate_enum(self.status, STATUSES, field="status")

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if self.status is not None:
            query["status"] = self.status
        route = (self.route or "").strip()
        if route:
            query["route"] = route
        if self.is_favorite is not None:
            query["isFavorite"] = self.is_favorite
        return query


@dataclass
class BusPage:
    """One page of buses.

    Offset pages fill total/page/total_pages; cursor pages fill next_cursor
    and leave the counts as None (no count pass is made).
    """

    items: list["Bus"]
    has_more: bool
    page_size: int
    total: Optional[int] = None
    page: Optional[int] = None
    total_pages: Optional[int] = None
    next_cursor: Optional[str] = None


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class Bus:
    """A bus in the fleet."""

    def __init__(
        self,
        license_plate: str,
        unit_name: str,
        status: str,
        route: Optional[str] = None,
        driver: Optional[str] = None,
        moving_time: int = 0,
        parked_time: int = 0,
        is_favorite: bool = False,
        position: Optional[Position] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self._id = id
        self.license_plate = license_plate
        self.unit_name = unit_name
        self.status = status
        self.route = route
        self.driver = driver
        self.moving_time = moving_time
        self.parked_time = parked_time
        self.is_favorite = is_favorite
        self.position = position
        self._created_at = _parse_timestamp(created_at)
        self._updated_at = _parse_timestamp(updated_at)

    # ------------------------------------------------------------------
    # Validated properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def created_at(self) -> Optional[datetime]:
        return self._created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        return self._updated_at

    @property
    def license_plate(self) -> str:
        return self._license_plate

    @license_plate.setter
    def license_plate(self, value: str) -> None:
        plate = validate_text(
            value, "licensePlate", LICENSE_PLATE_MIN_LENGTH, LICENSE_PLATE_MAX_LENGTH, label="License plate"
        )
        self._license_plate = plate.upper()

    @property
    def unit_name(self) -> str:
        return self._unit_name

    @unit_name.setter
    def unit_name(self, value: str) -> None:
        self._unit_name = validate_text(value, "unitName", UNIT_NAME_MIN_LENGTH, UNIT_NAME_MAX_LENGTH, label="Unit name")

    @property
    def status(self) -> str:
        return self._status

    @status.setter
    def status(self, value: str) -> None:
        self._status = validate_enum(value, STATUSES, field="status")

    @property
    def route(self) -> Optional[str]:
        return self._route

    @route.setter
    def route(self, value: Optional[str]) -> None:
        self._route = _optional_text(value, "route")

    @property
    def driver(self) -> Optional[str]:
        return self._driver

    @driver.setter
    def driver(self, value: Optional[str]) -> None:
        self._driver = _optional_text(value, "driver")

    @property
    def moving_time(self) -> int:
        return self._moving_time

    @moving_time.setter
    def moving_time(self, value: int) -> None:
        self._moving_time = validate_non_negative_int(value, "movingTime", label="Moving time")

    @property
    def parked_time(self) -> int:
        return self._parked_time

    @parked_time.setter
    def parked_time(self, value: int) -> None:
        self._parked_time = validate_non_negative_int(value, "parkedTime", label="Parked time")

    @property
    def is_favorite(self) -> bool:
        return self._is_favorite

    @is_favorite.setter
    def is_favorite(self, value: bool) -> None:
        if not isinstance(value, bool):
            raise ValidationError("isFavorite must be a boolean", field="isFavorite")
        self._is_favorite = value

    @property
    def position(self) -> Optional[Position]:
        return self._position

    @position.setter
    def position(self, value: Any) -> None:
        if value is not None and not isinstance(value, Position):
            value = Position.from_json(value)
        self._position = value

    # ------------------------------------------------------------------
    # Behaviour
    # ------------------------------------------------------------------

    def is_moving(self) -> bool:
        return self._status == "moving"

    def is_parked(self) -> bool:
        return self._status == "parked"

    def is_in_maintenance(self) -> bool:
        return self._status == "maintenance"

    def has_position(self) -> bool:
        return self._position is not None

    def update_position(self, lat: float, lng: float) -> None:
        self._position = Position(lat, lng)

    def clear_position(self) -> None:
        self._position = None

    def toggle_favorite(self) -> bool:
        self._is_favorite = not self._is_favorite
        return self._is_favorite

    def apply(self, update: BusUpdate) -> None:
        """Assign every set field of update through its validating setter."""
        for name, value in update.changes().items():
            setattr(self, name, value)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @classmethod
    def collection(cls) -> str:
        return "buses"

    @classmethod
    def allowed_statuses(cls) -> tuple[str, ...]:
        return STATUSES

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "licensePlate": self._license_plate,
            "unitName": self._unit_name,
            "status": self._status,
            "route": self._route,
            "driver": self._driver,
            "movingTime": self._moving_time,
            "parkedTime": self._parked_time,
            "isFavorite": self._is_favorite,
            "position": self._position.to_json() if self._position else None,
            "createdAt": self._created_at.isoformat() if self._created_at else None,
            "updatedAt": self._updated_at.isoformat() if self._updated_at else None,
        }

    def to_document(self) -> dict[str, Any]:
        doc = self.to_json()
        for key in ("id", "createdAt", "updatedAt"):
            doc.pop(key)
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Bus":
        return cls(
            id=doc["id"],
            license_plate=doc["licensePlate"],
            unit_name=doc["unitName"],
            status=doc["status"],
            route=doc.get("route"),
            driver=doc.get("driver"),
            moving_time=doc.get("movingTime", 0),
            parked_time=doc.get("parkedTime", 0),
            is_favorite=doc.get("isFavorite", False),
            position=doc.get("position"),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def __repr__(self) -> str:
        return f"Bus(id={self._id!r}, license_plate={self._license_plate!r}, status={self._status!r})"
