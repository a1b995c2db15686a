"""
api/routes/v1/buses.py -- Fleet REST endpoints.

Routes:
  GET    /api/v1/buses                 -- paginated list, filters: status, route, favorite
  GET    /api/v1/buses/{id}            -- single bus
  POST   /api/v1/buses                 -- create (admin)
  PATCH  /api/v1/buses/{id}            -- partial update (admin)
  PATCH  /api/v1/buses/{id}/favorite   -- toggle favorite (any role)
  PATCH  /api/v1/buses/{id}/position   -- set GPS position (admin)
  DELETE /api/v1/buses/{id}            -- delete (admin), 204

Pagination follows Settings.pagination_strategy. Offset mode reads page and
pageSize; cursor mode reads cursor and pageSize and returns nextCursor. Both
return {data, pagination} with hasMore.

All routes require a valid access token and count against the general API
rate limit.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import cancel_token, get_bus_service
from api.limiter import enforce_api_limit
from api.models import (
    BusCreateRequest,
    BusListResponse,
    BusResponse,
    BusUpdateRequest,
    PositionUpdateRequest,
)
from auth.dependencies import get_current_identity, require_admin
from core.cancellation import CancellationToken
from fleet.models import BusFilters, BusPage, BusUpdate
from fleet.service import CURSOR, BusService

# Auth policy:
# - GET    /buses, /buses/{id}:     any authenticated role
# - PATCH  /buses/{id}/favorite:    any authenticated role
# - POST   /buses:                  admin
# - PATCH  /buses/{id}:             admin
# - PATCH  /buses/{id}/position:    admin
# - DELETE /buses/{id}:             admin
router = APIRouter(dependencies=[Depends(enforce_api_limit)])


def _pagination(page: BusPage, strategy: str) -> dict:
    if strategy == CURSOR:
        return {"pageSize": page.page_size, "hasMore": page.has_more, "nextCursor": page.next_cursor}
    return {
        "page": page.page,
        "pageSize": page.page_size,
        "total": page.total,
        "totalPages": page.total_pages,
        "hasMore": page.has_more,
    }


@router.get("/buses", response_model=BusListResponse, dependencies=[Depends(get_current_identity)])
async def list_buses(
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    status: Optional[str] = Query(None),
    route: Optional[str] = Query(None),
    favorite: Optional[bool] = Query(None),
    cursor: Optional[str] = Query(None),
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    """List buses. page and pageSize are clamped, not rejected."""
    filters = BusFilters(status=status, route=route, is_favorite=favorite)
    result = await service.list_buses(page=page, page_size=page_size, filters=filters, cursor=cursor, cancel=cancel)
    return {
        "data": [bus.to_json() for bus in result.items],
        "pagination": _pagination(result, service.pagination_strategy),
    }


@router.get("/buses/{bus_id}", response_model=BusResponse, dependencies=[Depends(get_current_identity)])
async def get_bus(
    bus_id: str,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    bus = await service.get_bus(bus_id, cancel=cancel)
    return {"bus": bus.to_json()}


@router.post("/buses", response_model=BusResponse, status_code=201, dependencies=[Depends(require_admin)])
async def create_bus(
    body: BusCreateRequest,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    bus = await service.create_bus(body.model_dump(by_alias=True), cancel=cancel)
    return {"bus": bus.to_json()}


@router.patch("/buses/{bus_id}", response_model=BusResponse, dependencies=[Depends(require_admin)])
async def update_bus(
    bus_id: str,
    body: BusUpdateRequest,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    """Apply a partial update. Only the allow-listed fields can change."""
    bus = await service.update_bus(bus_id, BusUpdate.from_json(body.to_changes()), cancel=cancel)
    return {"bus": bus.to_json()}


@router.patch("/buses/{bus_id}/favorite", response_model=BusResponse, dependencies=[Depends(get_current_identity)])
async def toggle_favorite(
    bus_id: str,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    bus = await service.toggle_favorite(bus_id, cancel=cancel)
    return {"bus": bus.to_json()}


@router.patch("/buses/{bus_id}/position", response_model=BusResponse, dependencies=[Depends(require_admin)])
async def update_position(
    bus_id: str,
    body: PositionUpdateRequest,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    bus = await service.update_position(bus_id, body.lat, body.lng, cancel=cancel)
    return {"bus": bus.to_json()}


@router.delete("/buses/{bus_id}", status_code=204, dependencies=[Depends(require_admin)])
async def delete_bus(
    bus_id: str,
    service: BusService = Depends(get_bus_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> Response:
    await service.delete_bus(bus_id, cancel=cancel)
    return Response(status_code=204)
