"""
fleet/service.py -- Bus use cases: list, read, create, update, favorite, delete, move.

Async facade over BusRepository. Repository calls block on the store, so each
runs in a worker thread via anyio.to_thread.run_sync, preceded by a
cancellation checkpoint. Validation that needs no store access (coordinates,
filters, update shape) runs first, so bad input never costs a round-trip.

Role checks live in the HTTP layer (auth.dependencies.require_role); this
service assumes the caller has already been authorized.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Optional

import anyio

from core.cancellation import CancellationToken, checkpoint
from core.errors import NotFoundError, ValidationError
from fleet.models import Bus, BusFilters, BusPage, BusUpdate, Position
from fleet.store import BusRepository

logger = logging.getLogger("bustrack.fleet")

OFFSET = "offset"
CURSOR = "cursor"


async def _run(func, *args, **kwargs):
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


class BusService:
    """Usage:
    service = BusService(BusRepository(store))
    page = await service.list_buses(page=2, page_size=5)
    """

    def __init__(self, buses: BusRepository, pagination_strategy: str = OFFSET) -> None:
        self._buses = buses
        self._strategy = pagination_strategy

    @property
    def pagination_strategy(self) -> str:
        return self._strategy

    async def list_buses(
        self,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
        filters: Optional[BusFilters] = None,
        cursor: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> BusPage:
        await checkpoint(cancel)
        if self._strategy == CURSOR:
            return await _run(self._buses.list_after, cursor, page_size, filters)
        return await _run(self._buses.list, page, page_size, filters)

    async def get_bus(self, bus_id: str, cancel: Optional[CancellationToken] = None) -> Bus:
        await checkpoint(cancel)
        bus = await _run(self._buses.find_by_id, bus_id)
        if bus is None:
            raise NotFoundError("Bus not found")
        return bus

    async def create_bus(self, data: dict[str, Any], cancel: Optional[CancellationToken] = None) -> Bus:
        """Build a Bus from a camelCase mapping and persist it."""
        bus = Bus(
            license_plate=data.get("licensePlate"),
            unit_name=data.get("unitName"),
            status=data.get("status"),
            route=data.get("route"),
            driver=data.get("driver"),
            moving_time=data.get("movingTime") or 0,
            parked_time=data.get("parkedTime") or 0,
            is_favorite=bool(data.get("isFavorite", False)),
            position=data.get("position"),
        )
        await checkpoint(cancel)
        return await _run(self._buses.create, bus)

    async def update_bus(
        self, bus_id: str, update: BusUpdate, cancel: Optional[CancellationToken] = None
    ) -> Bus:
        if update.is_empty():
            raise ValidationError("At least one field must be provided for update", field="body")
        bus = await self.get_bus(bus_id, cancel)
        bus.apply(update)
        await checkpoint(cancel)
        return await _run(self._buses.update, bus)

    async def toggle_favorite(self, bus_id: str, cancel: Optional[CancellationToken] = None) -> Bus:
        bus = await self.get_bus(bus_id, cancel)
        bus.toggle_favorite()
        await checkpoint(cancel)
        return await _run(self._buses.update, bus)

    async def delete_bus(self, bus_id: str, cancel: Optional[CancellationToken] = None) -> None:
        await checkpoint(cancel)
        await _run(self._buses.remove, bus_id)

    async def update_position(
        self, bus_id: str, lat: Any, lng: Any, cancel: Optional[CancellationToken] = None
    ) -> Bus:
        position = Position(lat, lng)
        await checkpoint(cancel)
        return await _run(self._buses.update_position, bus_id, position.lat, position.lng)
