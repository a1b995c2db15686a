"""
fleet/store.py -- Persistence layer for Bus entities.

Pattern: Repository + Data Mapper (same structure as auth/store.py).

Pagination, two strategies with one public shape (BusPage):
  list()        offset: one count pass, then skip (page-1)*page_size and take
                page_size. Page is clamped to >= 1 and page_size to [1, 100].
  list_after()  cursor: the continuation token is the last id seen. No count
                pass; fetches page_size + 1 rows to know whether more exist.

Ordering is by id, which the document store makes time-ordered, so both
strategies list buses in creation order and a cursor never skips or repeats
a bus that existed when the first page was read.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from core.errors import NotFoundError
from fleet.models import Bus, BusFilters, BusPage, Position
from storage.repository import DocumentRepository

logger = logging.getLogger("bustrack.fleet")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def clamp_page(page: Optional[int]) -> int:
    return max(1, int(page or 1))


def clamp_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    return min(MAX_PAGE_SIZE, max(1, int(page_size)))


class BusRepository(DocumentRepository):
    """Repository for Bus entities.

    Usage:
        buses = BusRepository(store)
        bus = buses.create(Bus(license_plate="abc-123", unit_name="Unit 1", status="parked"))
        page = buses.list(page=1, page_size=20, filters=BusFilters(status="parked"))
    """

    collection = Bus.collection()
    unique_field = "licensePlate"
    conflict_field = "licensePlate"
    conflict_message = "License plate already registered"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_id(self, bus_id: str) -> Optional[Bus]:
        if not bus_id:
            return None
        with self._guard("find_by_id"):
            doc = self._store.get(self.collection, bus_id)
        return Bus.from_document(doc) if doc else None

    def find_by_license_plate(self, plate: str) -> Optional[Bus]:
        """Look up by plate. Input is trimmed and uppercased first."""
        if not plate or not isinstance(plate, str):
            return None
        with self._guard("find_by_license_plate"):
            doc = self._store.find_one(self.collection, self.unique_field, plate.strip().upper())
        return Bus.from_document(doc) if doc else None

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        page: Optional[int] = 1,
        page_size: Optional[int] = DEFAULT_PAGE_SIZE,
        filters: Optional[BusFilters] = None,
    ) -> BusPage:
        page = clamp_page(page)
        page_size = clamp_page_size(page_size)
        query = (filters or BusFilters()).to_query()
        offset = (page - 1) * page_size
        with self._guard("list"):
            total = self._store.count(self.collection, query)
            # No scan past the last match.
            docs = self._store.scan(self.collection, query, offset=offset, limit=page_size) if offset < total else []
        total_pages = math.ceil(total / page_size) if total else 0
        return BusPage(
            items=[Bus.from_document(d) for d in docs],
            has_more=page < total_pages,
            page_size=page_size,
            total=total,
            page=page,
            total_pages=total_pages,
        )

    def list_after(
        self,
        cursor: Optional[str] = None,
        page_size: Optional[int] = DEFAULT_PAGE_SIZE,
        filters: Optional[BusFilters] = None,
    ) -> BusPage:
        page_size = clamp_page_size(page_size)
        query = (filters or BusFilters()).to_query()
        with self._guard("list_after"):
            docs = self._store.scan(self.collection, query, limit=page_size + 1, after=cursor or None)
        has_more = len(docs) > page_size
        items = [Bus.from_document(d) for d in docs[:page_size]]
        return BusPage(
            items=items,
            has_more=has_more,
            page_size=page_size,
            next_cursor=items[-1].id if has_more else None,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, bus: Bus) -> Bus:
        """Persist a new bus and return it with id and timestamps assigned."""
        if self.find_by_license_plate(bus.license_plate) is not None:
            raise self.conflict_error()
        with self._guard("create"):
            new_id = self._store.insert(self.collection, bus.to_document())
            doc = self._store.get(self.collection, new_id)
        logger.info("Created bus %s (%s)", new_id, bus.license_plate)
        return Bus.from_document(doc)

    def update(self, bus: Bus) -> Bus:
        """Write the bus's current fields back and return the re-read copy.

        A plate that now collides with another bus raises ConflictError.
        """
        if bus.id is None or self.find_by_id(bus.id) is None:
            raise NotFoundError("Bus not found")
        other = self.find_by_license_plate(bus.license_plate)
        if other is not None and other.id != bus.id:
            raise self.conflict_error()
        with self._guard("update"):
            updated = self._store.update(self.collection, bus.id, bus.to_document())
            doc = self._store.get(self.collection, bus.id) if updated else None
        if doc is None:
            raise NotFoundError("Bus not found")
        return Bus.from_document(doc)

    def remove(self, bus_id: str) -> bool:
        if self.find_by_id(bus_id) is None:
            raise NotFoundError("Bus not found")
        with self._guard("remove"):
            removed = self._store.delete(self.collection, bus_id)
        logger.info("Removed bus %s", bus_id)
        return removed

    def update_position(self, bus_id: str, lat: float, lng: float) -> Bus:
        """Validate the coordinates, then move the bus there."""
        position = Position(lat, lng)
        bus = self.find_by_id(bus_id)
        if bus is None:
            raise NotFoundError("Bus not found")
        bus.position = position
        return self.update(bus)

