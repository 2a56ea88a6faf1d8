"""
Booking endpoints
=================

POST /api/v1/bookings                    -- confirm a quote as a booking
GET  /api/v1/bookings/{booking_id}       -- booking status and frozen price
PUT  /api/v1/bookings/{booking_id}/cancel -- cancel with a reason
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from src.api.dependencies import get_booking_repository, get_lifecycle, get_rate_store
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import BookingCreateRequest, BookingResponse, CancelRequest
from src.domain.entities import Booking, Location
from src.domain.enums import BookingStatus
from src.domain.pricing import TripInput, estimate

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Create a booking from a quote",
    description=(
        "Prices the trip against the current rate table and freezes that "
        "price on the booking.  The booking then appears in the driver job feed."
    ),
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    repo=Depends(get_booking_repository),
    store=Depends(get_rate_store),
):
    # ── Idempotency guard ─────────────────────────────────────────
    if body.idempotency_key:
        existing = await repo.get_by_idempotency_key(body.idempotency_key)
        if existing:
            return BookingResponse.from_domain(existing)

    trip = TripInput(
        vehicle_type=body.vehicle_type,
        load_type=body.load_type,
        distance_km=body.distance_km,
        duration_minutes=body.duration_minutes,
        pickup_at=body.pickup_at,
        helpers_count=body.effective_helpers,
    )
    rate_table = await store.get()
    price = estimate(trip, rate_table)

    booking = await repo.create(
        Booking(
            customer_id=body.customer_id,
            vehicle_type=trip.vehicle_type,
            load_type=trip.load_type,
            pickup=Location(body.pickup_lat, body.pickup_lng),
            dropoff=Location(body.dropoff_lat, body.dropoff_lng),
            distance_km=trip.distance_km,
            duration_minutes=trip.duration_minutes,
            helpers_count=trip.helpers_count,
            status=BookingStatus.PENDING,
            price_breakdown=price,
            pickup_at=rate_table.schedule.aware(trip.pickup_at),
            idempotency_key=body.idempotency_key,
        )
    )
    return BookingResponse.from_domain(booking)


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking status and price",
)
@limiter.limit(RATE_LIMIT)
async def get_booking(
    request: Request,
    booking_id: int,
    repo=Depends(get_booking_repository),
):
    booking = await repo.get(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return BookingResponse.from_domain(booking)


@router.put(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
    description=(
        "Allowed from any status before completion.  A non-empty "
        "cancellation reason is required."
    ),
)
@limiter.limit(RATE_LIMIT)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: CancelRequest,
    lifecycle=Depends(get_lifecycle),
):
    booking = await lifecycle.cancel(booking_id, body.actor_id, body.cancellation_reason)
    return BookingResponse.from_domain(booking)
