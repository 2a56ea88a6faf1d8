"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 customers, 5 drivers and 1 operator
  - one vehicle per driver (drivers 1-4 approved and available)
  - 8 bookings priced from the default rate table, walked through the
    job lifecycle to a mix of open, in-progress, completed and cancelled
  - the default rate table snapshot in Redis
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from src.config import settings
from src.domain.entities import Booking, Location
from src.domain.enums import (
    JOB_SEQUENCE,
    BookingStatus,
    DriverApproval,
    LoadType,
    UserRole,
    VehicleType,
)
from src.domain.lifecycle import JobLifecycle
from src.domain.pricing import TripInput, default_rate_table, estimate
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import DriverModel, UserModel, VehicleModel
from src.infrastructure.rate_store import RedisRateTableStore
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    SqlBookingRepository,
    SqlCancelAuthorizer,
    SqlDriverEligibility,
)

# Nairobi CBD (approx)
CITY_LAT, CITY_LNG = -1.2864, 36.8172


CUSTOMERS = [
    {"name": "Wanjiku Kamau", "email": "wanjiku@example.com"},
    {"name": "Otieno Odhiambo", "email": "otieno@example.com"},
    {"name": "Amina Hassan", "email": "amina@example.com"},
    {"name": "Kipchoge Rotich", "email": "kipchoge@example.com"},
    {"name": "Njeri Mwangi", "email": "njeri@example.com"},
    {"name": "Baraka Mutua", "email": "baraka@example.com"},
]

DRIVERS = [
    {"name": "Juma Ochieng", "email": "juma@example.com", "vehicle": VehicleType.PICKUP,
     "plate": "KDA 101A", "approval": DriverApproval.APPROVED, "lat": -1.2900, "lng": 36.8200},
    {"name": "Mary Wambui", "email": "mary@example.com", "vehicle": VehicleType.SMALL_TRUCK,
     "plate": "KDB 202B", "approval": DriverApproval.APPROVED, "lat": -1.2800, "lng": 36.8100},
    {"name": "Peter Kiprono", "email": "peter@example.com", "vehicle": VehicleType.MEDIUM_TRUCK,
     "plate": "KDC 303C", "approval": DriverApproval.APPROVED, "lat": -1.3000, "lng": 36.7900},
    {"name": "Grace Akinyi", "email": "grace@example.com", "vehicle": VehicleType.VAN,
     "plate": "KDD 404D", "approval": DriverApproval.APPROVED, "lat": -1.2700, "lng": 36.8300},
    {"name": "David Njoroge", "email": "david@example.com", "vehicle": VehicleType.LARGE_TRUCK,
     "plate": "KDE 505E", "approval": DriverApproval.PENDING, "lat": -1.3100, "lng": 36.8400},
]

# (customer idx, vehicle, load, dropoff, km, minutes, helpers, driver idx, target status)
BOOKINGS = [
    (0, VehicleType.PICKUP, LoadType.FURNITURE, (-1.2921, 36.7800), 6.5, 18, 0, None, BookingStatus.PENDING),
    (1, VehicleType.SMALL_TRUCK, LoadType.APPLIANCES, (-1.2200, 36.8900), 12.0, 30, 2, None, BookingStatus.PENDING),
    (2, VehicleType.VAN, LoadType.BOXES, (-1.3200, 36.8500), 8.2, 22, 0, 3, BookingStatus.DRIVER_EN_ROUTE),
    (3, VehicleType.PICKUP, LoadType.ELECTRONICS, (-1.2600, 36.8000), 4.1, 12, 1, 0, BookingStatus.LOADING),
    (4, VehicleType.MEDIUM_TRUCK, LoadType.FURNITURE, (-1.1800, 36.9300), 21.0, 45, 3, 2, BookingStatus.COMPLETED),
    (5, VehicleType.SMALL_TRUCK, LoadType.FRAGILE, (-1.3300, 36.7700), 15.5, 35, 1, 1, BookingStatus.COMPLETED),
    (0, VehicleType.PICKUP, LoadType.OTHER, (-1.3000, 36.8300), 3.0, 10, 0, 0, BookingStatus.COMPLETED),
    (1, VehicleType.VAN, LoadType.BOXES, (-1.2500, 36.8600), 7.0, 20, 0, 3, BookingStatus.CANCELLED),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        customers = []
        for c in CUSTOMERS:
            m = UserModel(name=c["name"], email=c["email"], role=UserRole.CUSTOMER)
            session.add(m)
            customers.append(m)
        operator = UserModel(name="Ops Desk", email="ops@example.com", role=UserRole.ADMIN)
        session.add(operator)

        driver_users = []
        for d in DRIVERS:
            m = UserModel(name=d["name"], email=d["email"], role=UserRole.DRIVER)
            session.add(m)
            driver_users.append(m)
        await session.flush()
        print(f"  Created {len(customers)} customers, {len(driver_users)} drivers, 1 operator")

        # ── Drivers & vehicles ────────────────────────────────────────
        for user, d in zip(driver_users, DRIVERS):
            session.add(
                DriverModel(
                    user_id=user.id,
                    approval_status=d["approval"],
                    is_available=d["approval"] == DriverApproval.APPROVED,
                    current_lat=d["lat"],
                    current_lng=d["lng"],
                )
            )
            await session.flush()
            session.add(
                VehicleModel(
                    driver_id=user.id,
                    vehicle_type=d["vehicle"],
                    license_plate=d["plate"],
                    is_active=True,
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} vehicles")

        # ── Bookings ──────────────────────────────────────────────────
        table = default_rate_table(settings.pricing_utc_offset_minutes)
        repo = SqlBookingRepository(session)
        lifecycle = JobLifecycle(
            repo,
            SqlDriverEligibility(session),
            SqlCancelAuthorizer(session),
            driver_share_ratio=settings.driver_share_ratio,
        )
        now = datetime.now(timezone.utc)

        for i, (cust, vehicle, load, dropoff, km, minutes, helpers, drv, target) in enumerate(BOOKINGS):
            trip = TripInput(
                vehicle_type=vehicle,
                load_type=load,
                distance_km=km,
                duration_minutes=minutes,
                pickup_at=now + timedelta(hours=2 + i * 5),
                helpers_count=helpers,
            )
            booking = await repo.create(
                Booking(
                    customer_id=customers[cust].id,
                    vehicle_type=vehicle,
                    load_type=load,
                    pickup=Location(CITY_LAT + i * 0.002, CITY_LNG - i * 0.002),
                    dropoff=Location(*dropoff),
                    distance_km=km,
                    duration_minutes=minutes,
                    helpers_count=helpers,
                    price_breakdown=estimate(trip, table),
                    pickup_at=trip.pickup_at,
                )
            )
            if drv is None:
                continue

            driver_id = driver_users[drv].id
            await lifecycle.accept_job(booking.id, driver_id)
            if target == BookingStatus.CANCELLED:
                await lifecycle.cancel(booking.id, customers[cust].id, "Moving date changed")
                continue
            for status in JOB_SEQUENCE[1 : JOB_SEQUENCE.index(target) + 1]:
                await lifecycle.advance(booking.id, status, driver_id)

        await session.commit()
        print(f"  Created {len(BOOKINGS)} bookings")

    # ── Rate table ────────────────────────────────────────────────────
    store = RedisRateTableStore(await get_redis())
    await store.replace(table)
    print(f"  Stored default rate table (version {table.version})")
    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
