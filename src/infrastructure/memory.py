"""
In-process implementations of the booking and rate table stores.

Without a transactional database the compare-and-set must be serialised
per booking: ``InMemoryBookingRepository`` keeps one lock per booking id
and performs the check and the write while holding it.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from collections import defaultdict
from dataclasses import replace
from typing import Any, Iterable, Mapping, Optional

from src.domain.entities import Booking, BookingExpectation, BookingUpdate
from src.domain.enums import JOB_SEQUENCE, VehicleType
from src.domain.pricing import RateTable, default_rate_table


class InMemoryBookingRepository:
    def __init__(self, bookings: Iterable[Booking] = ()):
        self._rows: dict[int, Booking] = {}
        self._locks: defaultdict[int, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()
        self._ids = itertools.count(1)
        for booking in bookings:
            self._store(booking)

    def _store(self, booking: Booking) -> Booking:
        with self._registry_lock:
            stored = replace(booking, id=booking.id or next(self._ids))
            self._rows[stored.id] = stored
        return replace(stored)

    def _lock_for(self, booking_id: int) -> threading.Lock:
        with self._registry_lock:
            return self._locks[booking_id]

    def _snapshot(self) -> list[Booking]:
        with self._registry_lock:
            return list(self._rows.values())

    async def create(self, booking: Booking) -> Booking:
        return self._store(booking)

    async def get(self, booking_id: int) -> Optional[Booking]:
        with self._lock_for(booking_id):
            row = self._rows.get(booking_id)
            return replace(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Optional[Booking]:
        for row in self._snapshot():
            if row.idempotency_key == key:
                return replace(row)
        return None

    async def compare_and_set(
        self,
        booking_id: int,
        expected: BookingExpectation,
        update: BookingUpdate,
    ) -> bool:
        with self._lock_for(booking_id):
            row = self._rows.get(booking_id)
            if row is None or not row.matches(expected):
                return False
            self._rows[booking_id] = row.with_update(update)
            return True

    async def list_open(
        self, vehicle_types: Optional[Iterable[VehicleType]] = None
    ) -> list[Booking]:
        wanted = set(vehicle_types or [])
        return [
            replace(b)
            for b in self._snapshot()
            if b.is_open and (not wanted or b.vehicle_type in wanted)
        ]

    async def current_for_driver(self, driver_id: int) -> Optional[Booking]:
        active = [
            b
            for b in self._snapshot()
            if b.assigned_driver_id == driver_id and b.status in JOB_SEQUENCE[:-1]
        ]
        return replace(active[-1]) if active else None

    async def list_for_driver(self, driver_id: int, since=None, until=None) -> list[Booking]:
        rows = []
        for b in self._snapshot():
            if b.assigned_driver_id != driver_id:
                continue
            if since is not None and (b.completed_at is None or b.completed_at < since):
                continue
            if until is not None and (b.completed_at is None or b.completed_at > until):
                continue
            rows.append(replace(b))
        return rows


class InMemoryRateTableStore:
    """Holds one snapshot; each update swaps in a whole new table."""

    def __init__(self, table: Optional[RateTable] = None):
        self._table = table or default_rate_table()
        self._lock = asyncio.Lock()

    async def get(self) -> RateTable:
        return self._table

    async def update(self, changes: Mapping[str, Any]) -> RateTable:
        async with self._lock:
            self._table = self._table.merged(changes)
            return self._table

    async def reset(self) -> RateTable:
        async with self._lock:
            self._table = default_rate_table(
                self._table.schedule.utc_offset_minutes,
                version=self._table.version + 1,
            )
            return self._table
