"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, Field

from src.domain.earnings import EarningsSummary
from src.domain.entities import Booking
from src.domain.enums import LoadType, TimeWindow, VehicleType
from src.domain.pricing import (
    LOAD_MULTIPLIER_RANGE,
    TIME_MULTIPLIER_RANGE,
    PriceBreakdown,
    RateTable,
    round_half_up,
)

LoadMultiplier = Annotated[
    float, Field(ge=LOAD_MULTIPLIER_RANGE[0], le=LOAD_MULTIPLIER_RANGE[1])
]
TimeMultiplier = Annotated[
    float, Field(ge=TIME_MULTIPLIER_RANGE[0], le=TIME_MULTIPLIER_RANGE[1])
]


# ── Requests ──────────────────────────────────────────────────────────


class TripRequest(BaseModel):
    """Trip description; ranges are checked by the estimator itself."""

    load_type: LoadType = LoadType.OTHER
    distance_km: float
    duration_minutes: float = 0.0
    pickup_at: datetime
    requires_helpers: bool = False
    helpers_count: int = 0

    @property
    def effective_helpers(self) -> int:
        return self.helpers_count if self.requires_helpers else 0


class EstimateRequest(TripRequest):
    vehicle_type: Optional[VehicleType] = Field(
        None, description="Omit to quote every vehicle type."
    )


class BookingCreateRequest(TripRequest):
    customer_id: int
    vehicle_type: VehicleType
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class AcceptJobRequest(BaseModel):
    driver_id: int


class StatusUpdateRequest(BaseModel):
    actor_id: int
    status: str
    cancellation_reason: Optional[str] = None


class CancelRequest(BaseModel):
    actor_id: int
    cancellation_reason: str = ""


class VehicleRateUpdate(BaseModel):
    base: Optional[float] = Field(None, ge=0)
    per_km: Optional[float] = Field(None, ge=0)
    per_minute: Optional[float] = Field(None, ge=0)


class ScheduleUpdate(BaseModel):
    peak_hours: Optional[list[tuple[str, str]]] = None
    night: Optional[tuple[str, str]] = None
    weekend_days: Optional[list[Annotated[int, Field(ge=0, le=6)]]] = None
    utc_offset_minutes: Optional[int] = Field(None, gt=-24 * 60, lt=24 * 60)


class RateTableUpdate(BaseModel):
    base_rates: Optional[dict[VehicleType, VehicleRateUpdate]] = None
    load_multipliers: Optional[dict[LoadType, LoadMultiplier]] = None
    time_multipliers: Optional[dict[TimeWindow, TimeMultiplier]] = None
    helper_rate: Optional[float] = Field(None, ge=0)
    minimum_charge: Optional[float] = Field(None, ge=0)
    schedule: Optional[ScheduleUpdate] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, mode="json")


class PricingPreviewRequest(BaseModel):
    trip: EstimateRequest
    rate_table: RateTableUpdate = Field(
        default_factory=RateTableUpdate,
        description="Unsaved edits applied on top of the current table.",
    )


# ── Responses ─────────────────────────────────────────────────────────


class PriceBreakdownResponse(BaseModel):
    base_component: float
    distance_component: float
    load_multiplier_applied: float
    time_multiplier_applied: float
    applied_windows: list[TimeWindow]
    helper_charge: float
    subtotal_before_floor: float
    total_price: float
    minimum_applied: bool
    total_display: int = Field(..., description="Total rounded to whole currency units.")

    @classmethod
    def from_domain(cls, breakdown: PriceBreakdown) -> "PriceBreakdownResponse":
        return cls(
            **breakdown.to_dict(),
            minimum_applied=breakdown.minimum_applied,
            total_display=round_half_up(breakdown.total_price),
        )


class VehicleEstimate(BaseModel):
    vehicle_type: VehicleType
    price: PriceBreakdownResponse


class EstimateResponse(BaseModel):
    rate_table_version: int
    estimates: list[VehicleEstimate]


class RateTableResponse(BaseModel):
    version: int
    config: dict[str, Any]

    @classmethod
    def from_domain(cls, table: RateTable) -> "RateTableResponse":
        return cls(version=table.version, config=table.to_dict())


class BookingResponse(BaseModel):
    id: int
    customer_id: int
    vehicle_type: VehicleType
    load_type: LoadType
    pickup_lat: float
    pickup_lng: float
    dropoff_lat: float
    dropoff_lng: float
    distance_km: float
    duration_minutes: float
    helpers_count: int
    status: str
    assigned_driver_id: Optional[int] = None
    price: Optional[PriceBreakdownResponse] = None
    pickup_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status_timestamps: dict[str, datetime] = {}
    cancellation_reason: Optional[str] = None
    driver_share: Optional[float] = None
    platform_fee: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
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
            status=booking.status.value,
            assigned_driver_id=booking.assigned_driver_id,
            price=(
                PriceBreakdownResponse.from_domain(booking.price_breakdown)
                if booking.price_breakdown
                else None
            ),
            pickup_at=booking.pickup_at,
            accepted_at=booking.accepted_at,
            completed_at=booking.completed_at,
            status_timestamps={
                s.value: ts for s, ts in booking.status_timestamps.items()
            },
            cancellation_reason=booking.cancellation_reason,
            driver_share=booking.earnings.driver_share if booking.earnings else None,
            platform_fee=booking.earnings.platform_fee if booking.earnings else None,
            created_at=booking.created_at,
        )


class JobFeedItem(BookingResponse):
    distance_from_driver: Optional[float] = None


class CurrentJobResponse(BaseModel):
    job: Optional[BookingResponse] = None
    next_status: Optional[str] = None


class JobEarningsResponse(BaseModel):
    booking_id: Optional[int]
    total_price: float
    driver_share: float
    completed_at: Optional[datetime] = None


class EarningsResponse(BaseModel):
    period: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    total_earnings: float
    total_revenue: float
    platform_fees: float
    total_jobs: int
    average_per_job: float
    jobs: list[JobEarningsResponse] = []

    @classmethod
    def from_domain(cls, summary: EarningsSummary) -> "EarningsResponse":
        window = summary.window
        return cls(
            period=window.period if window else "all",
            start=window.start if window else None,
            end=window.end if window else None,
            total_earnings=summary.total_earnings,
            total_revenue=summary.total_revenue,
            platform_fees=summary.platform_fees,
            total_jobs=summary.job_count,
            average_per_job=summary.average_per_job,
            jobs=[
                JobEarningsResponse(
                    booking_id=j.booking_id,
                    total_price=j.total_price,
                    driver_share=j.driver_share,
                    completed_at=j.completed_at,
                )
                for j in summary.jobs
            ],
        )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    kind: str
    detail: str
    message: str
    booking_id: Optional[int] = None
    current_status: Optional[str] = None
    requested_status: Optional[str] = None
    field: Optional[str] = None
