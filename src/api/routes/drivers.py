"""
Driver endpoints
================

GET  /api/v1/drivers/jobs/available            -- open jobs, by vehicle type / radius
POST /api/v1/drivers/jobs/{booking_id}/accept  -- claim an open job (exactly one winner)
PUT  /api/v1/drivers/jobs/{booking_id}/status  -- advance or cancel the job
GET  /api/v1/drivers/{driver_id}/jobs/current  -- the driver's active job
GET  /api/v1/drivers/{driver_id}/earnings      -- earnings for a period
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_booking_repository, get_lifecycle
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    AcceptJobRequest,
    BookingResponse,
    CurrentJobResponse,
    EarningsResponse,
    ErrorResponse,
    JobFeedItem,
    StatusUpdateRequest,
)
from src.config import settings
from src.domain.distance import haversine_km
from src.domain.earnings import EarningsWindow, aggregate
from src.domain.enums import VehicleType, next_status
from src.domain.lifecycle import utcnow

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/jobs/available",
    response_model=list[JobFeedItem],
    summary="List open jobs",
    description=(
        "Open, unclaimed bookings.  When the driver position is given, only "
        "jobs whose pickup lies within ``radius_km`` are returned, nearest first."
    ),
)
@limiter.limit(RATE_LIMIT)
async def available_jobs(
    request: Request,
    vehicle_types: list[VehicleType] = Query(default=[]),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: float = Query(settings.default_feed_radius_km, gt=0),
    repo=Depends(get_booking_repository),
):
    jobs = await repo.list_open(vehicle_types)
    items = []
    for booking in jobs:
        item = JobFeedItem(**BookingResponse.from_domain(booking).model_dump())
        if lat is not None and lng is not None:
            item.distance_from_driver = round(
                haversine_km(lat, lng, booking.pickup.latitude, booking.pickup.longitude), 1
            )
            if item.distance_from_driver > radius_km:
                continue
        items.append(item)
    if lat is not None and lng is not None:
        items.sort(key=lambda i: i.distance_from_driver)
    return items


@router.post(
    "/jobs/{booking_id}/accept",
    response_model=BookingResponse,
    summary="Accept an open job",
    responses={
        403: {"model": ErrorResponse, "description": "Driver not eligible for this vehicle type."},
        409: {"model": ErrorResponse, "description": "This job was just taken."},
    },
)
@limiter.limit(RATE_LIMIT)
async def accept_job(
    request: Request,
    booking_id: int,
    body: AcceptJobRequest,
    lifecycle=Depends(get_lifecycle),
):
    booking = await lifecycle.accept_job(booking_id, body.driver_id)
    return BookingResponse.from_domain(booking)


@router.put(
    "/jobs/{booking_id}/status",
    response_model=BookingResponse,
    summary="Advance the job to its next status, or cancel it",
)
@limiter.limit(RATE_LIMIT)
async def update_job_status(
    request: Request,
    booking_id: int,
    body: StatusUpdateRequest,
    lifecycle=Depends(get_lifecycle),
):
    booking = await lifecycle.advance(
        booking_id, body.status, body.actor_id, reason=body.cancellation_reason
    )
    return BookingResponse.from_domain(booking)


@router.get(
    "/{driver_id}/jobs/current",
    response_model=CurrentJobResponse,
    summary="The driver's active job and the status it moves to next",
)
@limiter.limit(RATE_LIMIT)
async def current_job(
    request: Request,
    driver_id: int,
    repo=Depends(get_booking_repository),
):
    booking = await repo.current_for_driver(driver_id)
    if booking is None:
        return CurrentJobResponse()
    upcoming = next_status(booking.status)
    return CurrentJobResponse(
        job=BookingResponse.from_domain(booking),
        next_status=upcoming.value if upcoming else None,
    )


@router.get(
    "/{driver_id}/earnings",
    response_model=EarningsResponse,
    summary="Driver earnings for a period",
)
@limiter.limit(RATE_LIMIT)
async def driver_earnings(
    request: Request,
    driver_id: int,
    period: str = Query("week", pattern="^(week|month|all|custom)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    repo=Depends(get_booking_repository),
):
    window = EarningsWindow.from_period(period, utcnow(), start_date, end_date)
    bookings = await repo.list_for_driver(driver_id, window.start, window.end)
    summary = aggregate(bookings, window, settings.driver_share_ratio)
    return EarningsResponse.from_domain(summary)
