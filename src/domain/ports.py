"""
Collaborator interfaces consumed by the job core.

The core only depends on these protocols; the SQLAlchemy, Redis and
in-memory implementations live in ``src.infrastructure``.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from .entities import Booking, BookingExpectation, BookingUpdate
from .enums import VehicleType
from .pricing import RateTable


class BookingRepository(Protocol):
    async def get(self, booking_id: int) -> Optional[Booking]: ...

    async def compare_and_set(
        self,
        booking_id: int,
        expected: BookingExpectation,
        update: BookingUpdate,
    ) -> bool:
        """Apply *update* only if the booking still matches *expected*.

        Must be atomic per booking: of several concurrent calls with the
        same expectation at most one returns ``True``.
        """
        ...


class DriverEligibility(Protocol):
    async def is_eligible(self, driver_id: int, vehicle_type: VehicleType) -> bool: ...


class CancelAuthorizer(Protocol):
    async def can_cancel(self, actor_id: int, booking: Booking) -> bool: ...


class RateTableStore(Protocol):
    async def get(self) -> RateTable: ...

    async def update(self, changes: Mapping[str, Any]) -> RateTable: ...

    async def reset(self) -> RateTable: ...
