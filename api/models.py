"""
API request and response models for BusTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the domain classes in auth/models.py and
fleet/models.py, which own validation and the internal representation. Route
handlers map between the two.

Request models only check shape (required keys, JSON types). Ranges, lengths
and formats are enforced by the domain, so there is exactly one definition of
each rule and the error names the same field either way.

Wire names are camelCase (licensePlate, refreshToken); Python attributes stay
snake_case through alias_generator=to_camel.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, model_validator
from pydantic.alias_generators import to_camel

# JSON numbers only. Lax float/int would turn true/false into 1/0.
Number = Union[StrictInt, StrictFloat]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    email: str
    name: str
    password: str
    role: Optional[str] = None


class LoginRequest(_CamelModel):
    email: str
    password: str


class RefreshRequest(_CamelModel):
    refresh_token: str


# ---------------------------------------------------------------------------
# Bus requests
# ---------------------------------------------------------------------------


class PositionIn(BaseModel):
    """Both coordinates are required; a partial position is rejected."""

    lat: Number
    lng: Number


class BusCreateRequest(_CamelModel):
    license_plate: str
    unit_name: str
    status: str
    route: Optional[str] = None
    driver: Optional[str] = None
    moving_time: Number = 0
    parked_time: Number = 0
    is_favorite: bool = False
    position: Optional[PositionIn] = None


class BusUpdateRequest(_CamelModel):
    """Partial update. Unknown keys are rejected; at least one key is required.

    Use to_changes() rather than model_dump(): it keeps only the keys the
    client actually sent, so an explicit null (clear position) is
    distinguishable from an omitted field.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    license_plate: Optional[str] = None
    unit_name: Optional[str] = None
    status: Optional[str] = None
    route: Optional[str] = None
    driver: Optional[str] = None
    moving_time: Optional[Number] = None
    parked_time: Optional[Number] = None
    is_favorite: Optional[bool] = None
    position: Optional[PositionIn] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "BusUpdateRequest":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

    def to_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, by_alias=True)


class PositionUpdateRequest(PositionIn):
    pass


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserView(_CamelModel):
    """Safe view of a user. There is no password field to leak."""

    id: str
    email: str
    name: str
    role: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AuthResponse(_CamelModel):
    user: UserView
    token: str
    refresh_token: str


class TokensResponse(_CamelModel):
    token: str
    refresh_token: str


class MeResponse(BaseModel):
    user: UserView


class PositionView(BaseModel):
    lat: float
    lng: float


class BusView(_CamelModel):
    id: str
    license_plate: str
    unit_name: str
    status: str
    route: Optional[str] = None
    driver: Optional[str] = None
    moving_time: int
    parked_time: int
    is_favorite: bool
    position: Optional[PositionView] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class BusResponse(BaseModel):
    bus: BusView


class OffsetPagination(_CamelModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_more: bool


class CursorPagination(_CamelModel):
    page_size: int
    has_more: bool
    next_cursor: Optional[str]


class BusListResponse(BaseModel):
    data: list[BusView]
    pagination: Union[OffsetPagination, CursorPagination]


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    error: str
    type: str
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
