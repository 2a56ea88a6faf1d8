"""Initial schema: users, drivers, vehicles and bookings.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

BOOKING_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "ACCEPTED",
    "DRIVER_EN_ROUTE",
    "ARRIVED_PICKUP",
    "LOADING",
    "IN_TRANSIT",
    "ARRIVED_DESTINATION",
    "UNLOADING",
    "COMPLETED",
    "CANCELLED",
)
VEHICLE_TYPES = ("PICKUP", "SMALL_TRUCK", "MEDIUM_TRUCK", "LARGE_TRUCK", "VAN")
LOAD_TYPES = ("FURNITURE", "APPLIANCES", "ELECTRONICS", "FRAGILE", "BOXES", "OTHER")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column(
            "role",
            sa.Enum("CUSTOMER", "DRIVER", "ADMIN", name="userrole"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column("license_number", sa.String(40), nullable=True),
        sa.Column(
            "approval_status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="driverapproval"),
            nullable=False,
        ),
        sa.Column("is_available", sa.Boolean, nullable=False),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id",
            sa.Integer,
            sa.ForeignKey("drivers.user_id"),
            nullable=False,
        ),
        sa.Column(
            "vehicle_type",
            sa.Enum(*VEHICLE_TYPES, name="vehicletype"),
            nullable=False,
        ),
        sa.Column("license_plate", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_vehicles_driver", "vehicles", ["driver_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "vehicle_type",
            postgresql.ENUM(*VEHICLE_TYPES, name="vehicletype", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "load_type", sa.Enum(*LOAD_TYPES, name="loadtype"), nullable=False
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("duration_minutes", sa.Float, nullable=False),
        sa.Column("helpers_count", sa.Integer, nullable=False),
        sa.Column("pickup_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*BOOKING_STATUSES, name="bookingstatus"),
            nullable=False,
        ),
        sa.Column(
            "assigned_driver_id",
            sa.Integer,
            sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column("price_breakdown", sa.JSON, nullable=False),
        sa.Column("total_price", sa.Float, nullable=False),
        sa.Column("status_timestamps", sa.JSON, nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("driver_earnings", sa.Float, nullable=True),
        sa.Column("platform_fee", sa.Float, nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_customer", "bookings", ["customer_id"])
    op.create_index("idx_bookings_driver", "bookings", ["assigned_driver_id"])
    op.create_index("idx_bookings_vehicle_type", "bookings", ["vehicle_type"])
    op.create_index("idx_bookings_idempotency", "bookings", ["idempotency_key"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("vehicles")
    op.drop_table("drivers")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS bookingstatus")
    op.execute("DROP TYPE IF EXISTS loadtype")
    op.execute("DROP TYPE IF EXISTS vehicletype")
    op.execute("DROP TYPE IF EXISTS driverapproval")
    op.execute("DROP TYPE IF EXISTS userrole")
