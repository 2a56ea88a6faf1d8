"""
Domain entities.

``Booking`` is owned by the booking store.  The core never mutates one in
place: it describes the change as a ``BookingUpdate`` guarded by a
``BookingExpectation`` and asks the store to compare-and-set it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from .enums import OPEN_STATUSES, BookingStatus, LoadType, VehicleType, is_terminal
from .pricing import PriceBreakdown


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class EarningsRecord:
    driver_share: float
    platform_fee: float

    @property
    def total(self) -> float:
        return self.driver_share + self.platform_fee


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Booking:
    id: Optional[int] = None
    customer_id: int = 0
    vehicle_type: VehicleType = VehicleType.PICKUP
    load_type: LoadType = LoadType.OTHER
    pickup: Location = field(default_factory=lambda: Location(0, 0))
    dropoff: Location = field(default_factory=lambda: Location(0, 0))
    distance_km: float = 0.0
    duration_minutes: float = 0.0
    helpers_count: int = 0
    status: BookingStatus = BookingStatus.PENDING
    assigned_driver_id: Optional[int] = None
    price_breakdown: Optional[PriceBreakdown] = None
    pickup_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status_timestamps: dict[BookingStatus, datetime] = field(default_factory=dict)
    cancellation_reason: Optional[str] = None
    earnings: Optional[EarningsRecord] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES and self.assigned_driver_id is None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def total_price(self) -> Optional[float]:
        if self.price_breakdown is None:
            return None
        return self.price_breakdown.total_price

    def matches(self, expected: "BookingExpectation") -> bool:
        return (
            self.status == expected.status
            and self.assigned_driver_id == expected.assigned_driver_id
        )

    def with_update(self, update: "BookingUpdate") -> "Booking":
        """Return a copy with *update* applied; ``self`` is left untouched."""
        timestamps = dict(self.status_timestamps)
        timestamps[update.status] = update.at
        changed = replace(self, status=update.status, status_timestamps=timestamps)
        if update.assigned_driver_id is not None:
            changed.assigned_driver_id = update.assigned_driver_id
        if update.status == BookingStatus.ACCEPTED:
            changed.accepted_at = update.at
        if update.status == BookingStatus.COMPLETED:
            changed.completed_at = update.at
            changed.earnings = update.earnings
        if update.cancellation_reason is not None:
            changed.cancellation_reason = update.cancellation_reason
        return changed


# ── Compare-and-set payloads ──────────────────────────────────────────


@dataclass(frozen=True)
class BookingExpectation:
    """State the booking must still be in for an update to land.

    ``assigned_driver_id=None`` means "no driver assigned".
    """

    status: BookingStatus
    assigned_driver_id: Optional[int] = None


@dataclass(frozen=True)
class BookingUpdate:
    status: BookingStatus
    at: datetime
    assigned_driver_id: Optional[int] = None
    cancellation_reason: Optional[str] = None
    earnings: Optional[EarningsRecord] = None
