"""
Quote endpoint
==============

POST /api/v1/pricing/estimate -- price a trip for one or every vehicle type
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_rate_store
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import EstimateRequest, EstimateResponse, PriceBreakdownResponse, VehicleEstimate
from src.domain.pricing import TripInput, estimate, estimate_all

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post(
    "/estimate",
    response_model=EstimateResponse,
    summary="Get an itemised price quote",
)
@limiter.limit(RATE_LIMIT)
async def estimate_price(
    request: Request,
    body: EstimateRequest,
    store=Depends(get_rate_store),
):
    table = await store.get()

    if body.vehicle_type is not None:
        trip = TripInput(
            vehicle_type=body.vehicle_type,
            load_type=body.load_type,
            distance_km=body.distance_km,
            duration_minutes=body.duration_minutes,
            pickup_at=body.pickup_at,
            helpers_count=body.effective_helpers,
        )
        quotes = {body.vehicle_type: estimate(trip, table)}
    else:
        quotes = estimate_all(
            table,
            load_type=body.load_type,
            distance_km=body.distance_km,
            duration_minutes=body.duration_minutes,
            pickup_at=body.pickup_at,
            helpers_count=body.effective_helpers,
        )

    return EstimateResponse(
        rate_table_version=table.version,
        estimates=[
            VehicleEstimate(
                vehicle_type=vehicle, price=PriceBreakdownResponse.from_domain(price)
            )
            for vehicle, price in quotes.items()
        ],
    )
