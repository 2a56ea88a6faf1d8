"""
Driver earnings.

A completed booking pays the driver ``round_half_up(total x 0.8)``; the
remainder is the platform fee.  ``aggregate`` sums those records over a
caller-supplied, already-filtered sequence of bookings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from .entities import Booking, EarningsRecord
from .enums import BookingStatus
from .errors import InvalidInputError
from .pricing import round_half_up

DRIVER_SHARE_RATIO = 0.8

PERIOD_DAYS = {"week": 7, "month": 30}


def earnings_for(
    total_price: float, driver_share_ratio: float = DRIVER_SHARE_RATIO
) -> EarningsRecord:
    driver_share = round_half_up(total_price * driver_share_ratio)
    return EarningsRecord(
        driver_share=driver_share, platform_fee=total_price - driver_share
    )


@dataclass(frozen=True)
class EarningsWindow:
    """Inclusive ``[start, end]`` range; ``None`` leaves a side open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    period: str = "all"

    @classmethod
    def from_period(
        cls,
        period: str,
        now: datetime,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> "EarningsWindow":
        if period in PERIOD_DAYS:
            return cls(start=now - timedelta(days=PERIOD_DAYS[period]), end=now, period=period)
        if period == "all":
            return cls(period=period)
        if period == "custom":
            if start_date is None or end_date is None:
                raise InvalidInputError(
                    "custom period needs both start_date and end_date",
                    field="start_date" if start_date is None else "end_date",
                )
            if end_date < start_date:
                raise InvalidInputError(
                    "end_date is before start_date", field="end_date"
                )
            return cls(
                start=datetime.combine(start_date, time.min, tzinfo=timezone.utc),
                end=datetime.combine(end_date, time.max, tzinfo=timezone.utc),
                period=period,
            )
        raise InvalidInputError(f"Unknown period: {period!r}", field="period")


@dataclass(frozen=True)
class JobEarnings:
    booking_id: Optional[int]
    total_price: float
    driver_share: float
    completed_at: Optional[datetime]


@dataclass(frozen=True)
class EarningsSummary:
    total_earnings: float
    total_revenue: float
    platform_fees: float
    job_count: int
    average_per_job: float
    window: Optional[EarningsWindow] = None
    jobs: tuple[JobEarnings, ...] = ()


def aggregate(
    bookings: Iterable[Booking],
    window: Optional[EarningsWindow] = None,
    driver_share_ratio: float = DRIVER_SHARE_RATIO,
) -> EarningsSummary:
    """
    Sum the earnings of every completed booking in *bookings*.

    The input is consumed once and nothing is kept between calls.  The
    window is reported back but not applied; filtering by time and driver
    belongs to the query that produced *bookings*.
    """
    total_earnings = 0.0
    total_revenue = 0.0
    platform_fees = 0.0
    jobs: list[JobEarnings] = []

    for booking in bookings:
        if not isinstance(booking, Booking):
            raise InvalidInputError(
                f"Expected a Booking, got {type(booking).__name__}",
                field="bookings",
            )
        if booking.status != BookingStatus.COMPLETED:
            continue
        if booking.price_breakdown is None:
            raise InvalidInputError(
                "Completed booking has no price",
                field="price_breakdown",
                booking_id=booking.id,
            )
        record = booking.earnings or earnings_for(
            booking.price_breakdown.total_price, driver_share_ratio
        )
        total_earnings += record.driver_share
        total_revenue += booking.price_breakdown.total_price
        platform_fees += record.platform_fee
        jobs.append(
            JobEarnings(
                booking_id=booking.id,
                total_price=booking.price_breakdown.total_price,
                driver_share=record.driver_share,
                completed_at=booking.completed_at,
            )
        )

    job_count = len(jobs)
    return EarningsSummary(
        total_earnings=total_earnings,
        total_revenue=total_revenue,
        platform_fees=platform_fees,
        job_count=job_count,
        average_per_job=total_earnings / job_count if job_count else 0.0,
        window=window,
        jobs=tuple(jobs),
    )
