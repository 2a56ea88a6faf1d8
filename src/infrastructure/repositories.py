"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work).  The booking
repository converts rows to ``Booking`` entities and implements the
atomic compare-and-set the job core relies on.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, DriverModel, UserModel, VehicleModel
from src.domain.entities import (
    Booking,
    BookingExpectation,
    BookingUpdate,
    EarningsRecord,
    Location,
)
from src.domain.enums import (
    JOB_SEQUENCE,
    OPEN_STATUSES,
    BookingStatus,
    DriverApproval,
    UserRole,
    VehicleType,
)
from src.domain.pricing import PriceBreakdown


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise before writing; SQLite keeps the wall clock and drops the offset."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_domain(row: BookingModel) -> Booking:
    earnings = None
    if row.driver_earnings is not None:
        earnings = EarningsRecord(
            driver_share=row.driver_earnings, platform_fee=row.platform_fee or 0.0
        )
    return Booking(
        id=row.id,
        customer_id=row.customer_id,
        vehicle_type=VehicleType(row.vehicle_type),
        load_type=row.load_type,
        pickup=Location(row.pickup_lat, row.pickup_lng),
        dropoff=Location(row.dropoff_lat, row.dropoff_lng),
        distance_km=row.distance_km,
        duration_minutes=row.duration_minutes,
        helpers_count=row.helpers_count,
        status=BookingStatus(row.status),
        assigned_driver_id=row.assigned_driver_id,
        price_breakdown=PriceBreakdown.from_dict(row.price_breakdown),
        pickup_at=_as_utc(row.pickup_at),
        accepted_at=_as_utc(row.accepted_at),
        completed_at=_as_utc(row.completed_at),
        status_timestamps={
            BookingStatus(k): datetime.fromisoformat(v)
            for k, v in (row.status_timestamps or {}).items()
        },
        cancellation_reason=row.cancellation_reason,
        earnings=earnings,
        idempotency_key=row.idempotency_key,
        created_at=_as_utc(row.created_at),
    )


class SqlBookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: Booking) -> Booking:
        if booking.price_breakdown is None:
            raise ValueError("A booking is created from a priced quote")
        row = BookingModel(
            customer_id=booking.customer_id,
            vehicle_type=booking.vehicle_type,
            load_type=booking.load_type,
            pickup_lat=booking.pickup.latitude,
            pickup_lng=booking.pickup.longitude,
            dropoff_lat=booking.dropoff.latitude,
            dropoff_lng=booking.dropoff.longitude,
            distance_km=booking.distance_km,
            duration_minutes=booking.duration_minutes,
            helpers_count=booking.helpers_count,
            pickup_at=_to_utc(booking.pickup_at),
            status=booking.status,
            price_breakdown=booking.price_breakdown.to_dict(),
            total_price=booking.price_breakdown.total_price,
            status_timestamps={
                s.value: ts.isoformat() for s, ts in booking.status_timestamps.items()
            },
            idempotency_key=booking.idempotency_key,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return _to_domain(row)

    async def get(self, booking_id: int) -> Optional[Booking]:
        # populate_existing: a preceding conditional UPDATE bypasses the
        # identity map, so always reload the row.
        row = await self.session.get(
            BookingModel, booking_id, populate_existing=True
        )
        return _to_domain(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.idempotency_key == key)
        )
        row = result.scalar_one_or_none()
        return _to_domain(row) if row else None

    async def compare_and_set(
        self,
        booking_id: int,
        expected: BookingExpectation,
        update: BookingUpdate,
    ) -> bool:
        """Single conditional ``UPDATE``; ``True`` iff exactly one row changed."""
        row = await self.session.get(
            BookingModel, booking_id, populate_existing=True
        )
        if row is None or BookingStatus(row.status) != expected.status:
            return False

        # Timestamps only change together with status, so the copy read
        # here is current whenever the status guard below holds.
        timestamps = dict(row.status_timestamps or {})
        timestamps[update.status.value] = update.at.isoformat()

        values = {"status": update.status, "status_timestamps": timestamps}
        if update.assigned_driver_id is not None:
            values["assigned_driver_id"] = update.assigned_driver_id
        if update.status == BookingStatus.ACCEPTED:
            values["accepted_at"] = _to_utc(update.at)
        if update.status == BookingStatus.COMPLETED:
            values["completed_at"] = _to_utc(update.at)
            if update.earnings is not None:
                values["driver_earnings"] = update.earnings.driver_share
                values["platform_fee"] = update.earnings.platform_fee
        if update.cancellation_reason is not None:
            values["cancellation_reason"] = update.cancellation_reason

        if expected.assigned_driver_id is None:
            driver_guard = BookingModel.assigned_driver_id.is_(None)
        else:
            driver_guard = BookingModel.assigned_driver_id == expected.assigned_driver_id

        result = await self.session.execute(
            sa_update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == expected.status,
                driver_guard,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_open(
        self, vehicle_types: Optional[Iterable[VehicleType]] = None
    ) -> list[Booking]:
        query = (
            select(BookingModel)
            .where(
                BookingModel.status.in_(sorted(OPEN_STATUSES)),
                BookingModel.assigned_driver_id.is_(None),
            )
            .order_by(BookingModel.pickup_at)
        )
        vehicle_types = list(vehicle_types or [])
        if vehicle_types:
            query = query.where(BookingModel.vehicle_type.in_(vehicle_types))
        result = await self.session.execute(query)
        return [_to_domain(r) for r in result.scalars().all()]

    async def current_for_driver(self, driver_id: int) -> Optional[Booking]:
        """The driver's job that is accepted but not yet completed."""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.assigned_driver_id == driver_id,
                BookingModel.status.in_(JOB_SEQUENCE[:-1]),
            )
            .order_by(BookingModel.accepted_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _to_domain(row) if row else None

    async def list_for_driver(
        self,
        driver_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[Booking]:
        """Jobs dated by completion; open windows also return unfinished jobs."""
        query = select(BookingModel).where(
            BookingModel.assigned_driver_id == driver_id
        )
        if since is not None:
            query = query.where(BookingModel.completed_at >= _to_utc(since))
        if until is not None:
            query = query.where(BookingModel.completed_at <= _to_utc(until))
        result = await self.session.execute(
            query.order_by(BookingModel.completed_at, BookingModel.accepted_at)
        )
        return [_to_domain(r) for r in result.scalars().all()]


class SqlDriverEligibility:
    """Approved, available, and owns an active vehicle of the required type."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_eligible(self, driver_id: int, vehicle_type: VehicleType) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverModel)
            .join(VehicleModel, VehicleModel.driver_id == DriverModel.user_id)
            .where(
                DriverModel.user_id == driver_id,
                DriverModel.approval_status == DriverApproval.APPROVED,
                DriverModel.is_available.is_(True),
                VehicleModel.vehicle_type == vehicle_type,
                VehicleModel.is_active.is_(True),
            )
        )
        return (result.scalar() or 0) > 0


class SqlCancelAuthorizer:
    """The booking's customer, its assigned driver, or any operator."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def can_cancel(self, actor_id: int, booking: Booking) -> bool:
        if actor_id in (booking.customer_id, booking.assigned_driver_id):
            return True
        user = await self.session.get(UserModel, actor_id)
        return user is not None and user.role == UserRole.ADMIN

