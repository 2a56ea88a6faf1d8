"""
Admin / operator endpoints
==========================

GET  /api/v1/admin/pricing                    -- current rate table
PUT  /api/v1/admin/pricing                    -- partial update (new version)
POST /api/v1/admin/pricing/reset              -- restore factory defaults
POST /api/v1/admin/pricing/preview            -- quote with unsaved edits
PUT  /api/v1/admin/bookings/{booking_id}/status -- operator status change
GET  /api/v1/admin/health                     -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_lifecycle, get_rate_store
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingResponse,
    HealthResponse,
    PriceBreakdownResponse,
    PricingPreviewRequest,
    RateTableResponse,
    RateTableUpdate,
    StatusUpdateRequest,
)
from src.domain.errors import InvalidInputError
from src.domain.pricing import TripInput, estimate

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/pricing", response_model=RateTableResponse, summary="Current rate table")
@limiter.limit(RATE_LIMIT)
async def get_pricing(request: Request, store=Depends(get_rate_store)):
    return RateTableResponse.from_domain(await store.get())


@router.put(
    "/pricing",
    response_model=RateTableResponse,
    summary="Update pricing",
    description="Only the fields present are changed; the result is a new version.",
)
@limiter.limit(RATE_LIMIT)
async def update_pricing(
    request: Request,
    body: RateTableUpdate,
    store=Depends(get_rate_store),
):
    return RateTableResponse.from_domain(await store.update(body.changes()))


@router.post(
    "/pricing/reset",
    response_model=RateTableResponse,
    summary="Reset pricing to defaults",
)
@limiter.limit(RATE_LIMIT)
async def reset_pricing(request: Request, store=Depends(get_rate_store)):
    return RateTableResponse.from_domain(await store.reset())


@router.post(
    "/pricing/preview",
    response_model=PriceBreakdownResponse,
    summary="Preview a quote against unsaved pricing edits",
)
@limiter.limit(RATE_LIMIT)
async def preview_pricing(
    request: Request,
    body: PricingPreviewRequest,
    store=Depends(get_rate_store),
):
    if body.trip.vehicle_type is None:
        raise InvalidInputError("vehicle_type is required", field="vehicle_type")
    candidate = (await store.get()).merged(body.rate_table.changes())
    trip = TripInput(
        vehicle_type=body.trip.vehicle_type,
        load_type=body.trip.load_type,
        distance_km=body.trip.distance_km,
        duration_minutes=body.trip.duration_minutes,
        pickup_at=body.trip.pickup_at,
        helpers_count=body.trip.effective_helpers,
    )
    return PriceBreakdownResponse.from_domain(estimate(trip, candidate))


@router.put(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    summary="Operator status change",
    description=(
        "Operators may cancel any non-terminal booking.  Forward moves "
        "remain reserved for the assigned driver."
    ),
)
@limiter.limit(RATE_LIMIT)
async def update_booking_status(
    request: Request,
    booking_id: int,
    body: StatusUpdateRequest,
    lifecycle=Depends(get_lifecycle),
):
    booking = await lifecycle.advance(
        booking_id, body.status, body.actor_id, reason=body.cancellation_reason
    )
    return BookingResponse.from_domain(booking)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
