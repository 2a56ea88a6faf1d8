"""
Shared test fixtures.

SQL tests use an in-memory SQLite database (via aiosqlite) built from the
production models, so they run without Docker / PostgreSQL / Redis.
Job-core tests run against the in-memory booking store with fake driver
eligibility and cancel authorization.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.entities import Booking, Location
from src.domain.enums import JOB_SEQUENCE, BookingStatus, LoadType, VehicleType
from src.domain.lifecycle import JobLifecycle
from src.domain.pricing import TripInput, default_rate_table, estimate
from src.infrastructure.database import Base
from src.infrastructure.memory import InMemoryBookingRepository
from src.infrastructure import models  # noqa: F401  (registers the tables)


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Sample data ───────────────────────────────────────────────────────

CUSTOMER_ID = 1
DRIVER_A = 101  # pickup + van
DRIVER_B = 102  # pickup
DRIVER_C = 103  # large truck only
ADMIN_ID = 900
STRANGER_ID = 555

# Wednesday 11:00 local: no peak, weekend or night surcharge
OFF_PEAK = datetime(2026, 10, 21, 11, 0)
FIXED_NOW = datetime(2026, 10, 21, 8, 0, tzinfo=timezone.utc)

CBD = Location(-1.2864, 36.8172)
WESTLANDS = Location(-1.2676, 36.8108)


def make_booking(
    vehicle_type: VehicleType = VehicleType.PICKUP,
    load_type: LoadType = LoadType.FURNITURE,
    distance_km: float = 10.0,
    duration_minutes: float = 20.0,
    helpers_count: int = 0,
    **overrides,
) -> Booking:
    """A pending booking priced from the default rate table (pickup: 1000)."""
    trip = TripInput(
        vehicle_type=vehicle_type,
        load_type=load_type,
        distance_km=distance_km,
        duration_minutes=duration_minutes,
        pickup_at=OFF_PEAK,
        helpers_count=helpers_count,
    )
    fields = dict(
        customer_id=CUSTOMER_ID,
        vehicle_type=vehicle_type,
        load_type=load_type,
        pickup=CBD,
        dropoff=WESTLANDS,
        distance_km=distance_km,
        duration_minutes=duration_minutes,
        helpers_count=helpers_count,
        price_breakdown=estimate(trip, default_rate_table()),
        pickup_at=OFF_PEAK,
    )
    fields.update(overrides)
    return Booking(**fields)


async def advance_to(
    lifecycle: JobLifecycle,
    booking_id: int,
    target: BookingStatus,
    driver_id: int = DRIVER_A,
) -> Booking:
    """Accept *booking_id* and walk it forward until it reaches *target*."""
    booking = await lifecycle.accept_job(booking_id, driver_id)
    for status in JOB_SEQUENCE[1 : JOB_SEQUENCE.index(target) + 1]:
        booking = await lifecycle.advance(booking_id, status, driver_id)
    return booking


# ── Fakes ─────────────────────────────────────────────────────────────


class StaticEligibility:
    """Drivers and the vehicle types they may take.

    Yields to the event loop before answering so that concurrent callers
    all read the booking before any of them writes.
    """

    def __init__(self, drivers: dict[int, Iterable[VehicleType]]):
        self.drivers = {d: set(types) for d, types in drivers.items()}

    async def is_eligible(self, driver_id: int, vehicle_type: VehicleType) -> bool:
        await asyncio.sleep(0)
        return vehicle_type in self.drivers.get(driver_id, set())


class ActorAuthorizer:
    """The booking's customer, its assigned driver, or one of ``admins``."""

    def __init__(self, admins: Iterable[int] = (ADMIN_ID,)):
        self.admins = set(admins)

    async def can_cancel(self, actor_id: int, booking: Booking) -> bool:
        return (
            actor_id in (booking.customer_id, booking.assigned_driver_id)
            or actor_id in self.admins
        )


class StepClock:
    """Advances one minute per call so status timestamps are ordered."""

    def __init__(self, start: datetime = FIXED_NOW):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def repo() -> InMemoryBookingRepository:
    return InMemoryBookingRepository()


@pytest.fixture
def eligibility() -> StaticEligibility:
    return StaticEligibility(
        {
            DRIVER_A: {VehicleType.PICKUP, VehicleType.VAN},
            DRIVER_B: {VehicleType.PICKUP},
            DRIVER_C: {VehicleType.LARGE_TRUCK},
        }
    )


@pytest.fixture
def authorizer() -> ActorAuthorizer:
    return ActorAuthorizer()


@pytest.fixture
def lifecycle(repo, eligibility, authorizer) -> JobLifecycle:
    return JobLifecycle(repo, eligibility, authorizer, clock=StepClock())


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh schema per test; the in-memory database dies with the engine."""
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()
