"""
FastAPI application factory.

* Registers routes for pricing, bookings, drivers and admin.
* Maps booking-core errors to HTTP responses with a structured body.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, bookings, drivers, pricing
from src.config import settings
from src.domain.errors import (
    AlreadyTerminalError,
    BookingCoreError,
    CancelNotPermittedError,
    DriverNotEligibleError,
    EmptyReasonError,
    InvalidInputError,
    InvalidTransitionError,
    JobAlreadyClaimedError,
    JobNotFoundError,
    NotAssignedDriverError,
)
from src.infrastructure.locks import LockNotAcquiredError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[BookingCoreError], int] = {
    InvalidInputError: 422,
    EmptyReasonError: 422,
    JobNotFoundError: 404,
    AlreadyTerminalError: 409,
    JobAlreadyClaimedError: 409,
    InvalidTransitionError: 409,
    DriverNotEligibleError: 403,
    NotAssignedDriverError: 403,
    CancelNotPermittedError: 403,
}


async def booking_error_handler(request: Request, exc: BookingCoreError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.kind, exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def lock_error_handler(request: Request, exc: LockNotAcquiredError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "kind": "LockNotAcquiredError",
            "detail": str(exc),
            "message": "Another pricing update is in progress. Please retry.",
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Logistics booking API starting")
    yield
    logger.info("Logistics booking API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Logistics Booking API",
        description=(
            "Quotes moves from an operator-configured rate table, lets "
            "drivers claim open jobs exactly once, and tracks each job "
            "through its lifecycle to completion and driver earnings."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(BookingCoreError, booking_error_handler)
    app.add_exception_handler(LockNotAcquiredError, lock_error_handler)

    # Routers
    app.include_router(pricing.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
