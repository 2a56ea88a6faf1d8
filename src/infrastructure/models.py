"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``users``     -- customers, drivers and operators (``role``)
* ``drivers``   -- driver profile keyed by user id (approval, availability)
* ``vehicles``  -- vehicles registered by a driver
* ``bookings``  -- customer moves with their frozen price and job status

Indexes
-------
* **B-Tree** on ``bookings.status``, ``customer_id``, ``assigned_driver_id``,
  ``vehicle_type`` and ``idempotency_key`` for the job feed, the driver
  earnings query and the conditional accept update.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)

from .database import Base
from src.domain.enums import (
    BookingStatus,
    DriverApproval,
    LoadType,
    UserRole,
    VehicleType,
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverModel(Base):
    __tablename__ = "drivers"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    license_number = Column(String(40), nullable=True)
    approval_status = Column(
        Enum(DriverApproval), default=DriverApproval.PENDING, nullable=False
    )
    is_available = Column(Boolean, default=False, nullable=False)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("drivers.user_id"), nullable=False)
    vehicle_type = Column(Enum(VehicleType), nullable=False)
    license_plate = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_vehicles_driver", "driver_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    vehicle_type = Column(Enum(VehicleType), nullable=False)
    load_type = Column(Enum(LoadType), default=LoadType.OTHER, nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    duration_minutes = Column(Float, nullable=False)
    helpers_count = Column(Integer, default=0, nullable=False)
    pickup_at = Column(DateTime(timezone=True), nullable=False)

    status = Column(
        Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False
    )
    assigned_driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    # Frozen at confirmation; see PriceBreakdown.to_dict
    price_breakdown = Column(JSON, nullable=False)
    total_price = Column(Float, nullable=False)
    status_timestamps = Column(JSON, nullable=False, default=dict)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    driver_earnings = Column(Float, nullable=True)
    platform_fee = Column(Float, nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_customer", "customer_id"),
        Index("idx_bookings_driver", "assigned_driver_id"),
        Index("idx_bookings_vehicle_type", "vehicle_type"),
        Index("idx_bookings_idempotency", "idempotency_key"),
    )
