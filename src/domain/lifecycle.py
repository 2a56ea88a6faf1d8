"""
Job Lifecycle State Machine
===========================

    pending/confirmed --accept_job--> accepted -> driver_en_route
      -> arrived_pickup -> loading -> in_transit -> arrived_destination
      -> unloading -> completed

    any non-terminal status --cancel--> cancelled

Concurrency safety
------------------
Every mutation is a single compare-and-set against the booking store,
pinned to the status (and assigned driver) observed on the preceding
read.  Two callers racing on one booking can therefore never both win:

* ``accept_job``: the loser gets ``JobAlreadyClaimedError``.
* ``advance`` / ``cancel``: the loser re-reads and gets
  ``AlreadyTerminalError`` or ``InvalidTransitionError`` against the
  booking's now-current status.

No operation retries internally; every rejection means the caller must
refresh its view first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .earnings import DRIVER_SHARE_RATIO, earnings_for
from .entities import Booking, BookingExpectation, BookingUpdate
from .enums import BookingStatus, next_status
from .errors import (
    AlreadyTerminalError,
    CancelNotPermittedError,
    DriverNotEligibleError,
    EmptyReasonError,
    InvalidInputError,
    InvalidTransitionError,
    JobAlreadyClaimedError,
    JobNotFoundError,
    NotAssignedDriverError,
)
from .ports import BookingRepository, CancelAuthorizer, DriverEligibility

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_status(value) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(value)
    except ValueError:
        raise InvalidInputError(
            f"Unknown status: {value!r}", field="status"
        ) from None


class JobLifecycle:
    """Accept, advance and cancel jobs against a booking repository."""

    def __init__(
        self,
        bookings: BookingRepository,
        eligibility: DriverEligibility,
        authorizer: Optional[CancelAuthorizer] = None,
        clock: Callable[[], datetime] = utcnow,
        driver_share_ratio: float = DRIVER_SHARE_RATIO,
    ):
        self.bookings = bookings
        self.eligibility = eligibility
        self.authorizer = authorizer
        self.clock = clock
        self.driver_share_ratio = driver_share_ratio

    # ── Accept ────────────────────────────────────────────────────

    async def accept_job(self, booking_id: int, driver_id: int) -> Booking:
        booking = await self._load(booking_id)

        if not booking.is_open:
            raise JobAlreadyClaimedError(
                f"Booking {booking_id} is no longer open",
                booking_id=booking_id,
                current_status=booking.status,
                requested_status=BookingStatus.ACCEPTED,
            )

        if not await self.eligibility.is_eligible(driver_id, booking.vehicle_type):
            logger.warning(
                "Driver %s not eligible for booking %s (%s)",
                driver_id, booking_id, booking.vehicle_type.value,
            )
            raise DriverNotEligibleError(
                f"Driver {driver_id} cannot take a {booking.vehicle_type.value} job",
                booking_id=booking_id,
                current_status=booking.status,
            )

        claimed = await self.bookings.compare_and_set(
            booking_id,
            BookingExpectation(status=booking.status, assigned_driver_id=None),
            BookingUpdate(
                status=BookingStatus.ACCEPTED,
                at=self.clock(),
                assigned_driver_id=driver_id,
            ),
        )
        if not claimed:
            logger.warning(
                "Driver %s lost the race for booking %s", driver_id, booking_id
            )
            raise JobAlreadyClaimedError(
                f"Booking {booking_id} was claimed by another driver",
                booking_id=booking_id,
                current_status=booking.status,
                requested_status=BookingStatus.ACCEPTED,
            )

        logger.info("Booking %s accepted by driver %s", booking_id, driver_id)
        return await self._load(booking_id)

    # ── Advance ───────────────────────────────────────────────────

    async def advance(
        self,
        booking_id: int,
        requested_status,
        actor_id: int,
        reason: Optional[str] = None,
    ) -> Booking:
        """Move the job one step along the fixed order.

        Requesting ``cancelled`` is delegated to ``cancel``.
        """
        requested = parse_status(requested_status)
        if requested == BookingStatus.CANCELLED:
            return await self.cancel(booking_id, actor_id, reason or "")

        booking = await self._load(booking_id)
        self._ensure_not_terminal(booking, requested)

        if booking.assigned_driver_id is None or booking.assigned_driver_id != actor_id:
            raise NotAssignedDriverError(
                f"Actor {actor_id} is not the assigned driver of booking {booking_id}",
                booking_id=booking_id,
                current_status=booking.status,
                requested_status=requested,
            )

        expected_next = next_status(booking.status)
        if requested != expected_next:
            raise InvalidTransitionError(
                f"Cannot move booking {booking_id} from "
                f"{booking.status.value} to {requested.value}",
                booking_id=booking_id,
                current_status=booking.status,
                requested_status=requested,
            )

        earnings = None
        if requested == BookingStatus.COMPLETED:
            earnings = earnings_for(
                booking.price_breakdown.total_price if booking.price_breakdown else 0.0,
                self.driver_share_ratio,
            )

        applied = await self.bookings.compare_and_set(
            booking_id,
            BookingExpectation(status=booking.status, assigned_driver_id=actor_id),
            BookingUpdate(status=requested, at=self.clock(), earnings=earnings),
        )
        if not applied:
            await self._raise_for_lost_race(booking_id, requested)

        logger.info(
            "Booking %s: %s -> %s", booking_id, booking.status.value, requested.value
        )
        return await self._load(booking_id)

    # ── Cancel ────────────────────────────────────────────────────

    async def cancel(self, booking_id: int, actor_id: int, reason: str) -> Booking:
        if reason is None or not reason.strip():
            raise EmptyReasonError(
                "A cancellation reason is required",
                booking_id=booking_id,
                requested_status=BookingStatus.CANCELLED,
            )

        booking = await self._load(booking_id)
        self._ensure_not_terminal(booking, BookingStatus.CANCELLED)

        if self.authorizer is not None and not await self.authorizer.can_cancel(
            actor_id, booking
        ):
            raise CancelNotPermittedError(
                f"Actor {actor_id} may not cancel booking {booking_id}",
                booking_id=booking_id,
                current_status=booking.status,
                requested_status=BookingStatus.CANCELLED,
            )

        applied = await self.bookings.compare_and_set(
            booking_id,
            BookingExpectation(
                status=booking.status,
                assigned_driver_id=booking.assigned_driver_id,
            ),
            BookingUpdate(
                status=BookingStatus.CANCELLED,
                at=self.clock(),
                cancellation_reason=reason.strip(),
            ),
        )
        if not applied:
            await self._raise_for_lost_race(booking_id, BookingStatus.CANCELLED)

        logger.info(
            "Booking %s cancelled by %s from %s", booking_id, actor_id, booking.status.value
        )
        return await self._load(booking_id)

    # ── Internals ─────────────────────────────────────────────────

    async def _load(self, booking_id: int) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise JobNotFoundError(
                f"Booking {booking_id} not found", booking_id=booking_id
            )
        return booking

    @staticmethod
    def _ensure_not_terminal(booking: Booking, requested: BookingStatus) -> None:
        if booking.is_terminal:
            raise AlreadyTerminalError(
                f"Booking {booking.id} is already {booking.status.value}",
                booking_id=booking.id,
                current_status=booking.status,
                requested_status=requested,
            )

    async def _raise_for_lost_race(
        self, booking_id: int, requested: BookingStatus
    ) -> None:
        current = await self._load(booking_id)
        logger.warning(
            "Concurrent update on booking %s: now %s, wanted %s",
            booking_id, current.status.value, requested.value,
        )
        self._ensure_not_terminal(current, requested)
        raise InvalidTransitionError(
            f"Booking {booking_id} changed to {current.status.value} concurrently",
            booking_id=booking_id,
            current_status=current.status,
            requested_status=requested,
        )


