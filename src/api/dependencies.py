"""FastAPI dependency injection helpers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.lifecycle import JobLifecycle
from src.infrastructure.database import async_session_factory
from src.infrastructure.rate_store import RedisRateTableStore
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    SqlBookingRepository,
    SqlCancelAuthorizer,
    SqlDriverEligibility,
)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_rate_store() -> RedisRateTableStore:
    return RedisRateTableStore(await get_redis())


def get_booking_repository(db: AsyncSession = Depends(get_db)) -> SqlBookingRepository:
    return SqlBookingRepository(db)


def get_driver_eligibility(db: AsyncSession = Depends(get_db)) -> SqlDriverEligibility:
    return SqlDriverEligibility(db)


def get_cancel_authorizer(db: AsyncSession = Depends(get_db)) -> SqlCancelAuthorizer:
    return SqlCancelAuthorizer(db)


def get_lifecycle(
    bookings=Depends(get_booking_repository),
    eligibility=Depends(get_driver_eligibility),
    authorizer=Depends(get_cancel_authorizer),
) -> JobLifecycle:
    return JobLifecycle(
        bookings,
        eligibility,
        authorizer,
        driver_share_ratio=settings.driver_share_ratio,
    )
