"""Domain enumerations and the job lifecycle ordering."""

from __future__ import annotations

import enum
from typing import Optional


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    DRIVER_EN_ROUTE = "driver_en_route"
    ARRIVED_PICKUP = "arrived_pickup"
    LOADING = "loading"
    IN_TRANSIT = "in_transit"
    ARRIVED_DESTINATION = "arrived_destination"
    UNLOADING = "unloading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Bookings a driver may still claim
OPEN_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)

# Happy path, in order.  CANCELLED is a side exit and never appears here.
JOB_SEQUENCE: tuple[BookingStatus, ...] = (
    BookingStatus.ACCEPTED,
    BookingStatus.DRIVER_EN_ROUTE,
    BookingStatus.ARRIVED_PICKUP,
    BookingStatus.LOADING,
    BookingStatus.IN_TRANSIT,
    BookingStatus.ARRIVED_DESTINATION,
    BookingStatus.UNLOADING,
    BookingStatus.COMPLETED,
)


def next_status(status: BookingStatus) -> Optional[BookingStatus]:
    """Return the single successor of *status* on the job path.

    Open statuses and terminal statuses have no successor that ``advance``
    may request; claiming an open booking goes through ``accept_job``.
    """
    if status not in JOB_SEQUENCE:
        return None
    idx = JOB_SEQUENCE.index(status)
    if idx + 1 >= len(JOB_SEQUENCE):
        return None
    return JOB_SEQUENCE[idx + 1]


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


class VehicleType(str, enum.Enum):
    PICKUP = "pickup"
    SMALL_TRUCK = "small_truck"
    MEDIUM_TRUCK = "medium_truck"
    LARGE_TRUCK = "large_truck"
    VAN = "van"


class LoadType(str, enum.Enum):
    FURNITURE = "furniture"
    APPLIANCES = "appliances"
    ELECTRONICS = "electronics"
    FRAGILE = "fragile"
    BOXES = "boxes"
    OTHER = "other"


class TimeWindow(str, enum.Enum):
    PEAK_HOURS = "peak_hours"
    WEEKEND = "weekend"
    NIGHT = "night"


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class DriverApproval(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
