"""
Concurrency safety tests.

Demonstrates:
1. Many drivers accepting one job at once: exactly one wins.
2. Racing status changes on one job: exactly one lands, the loser sees
   the job's new status.
3. The in-memory store's compare-and-set and reads hold across threads.
4. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock

import pytest

from src.domain.entities import Booking, BookingExpectation, BookingUpdate
from src.domain.enums import BookingStatus, VehicleType
from src.domain.errors import (
    AlreadyTerminalError,
    InvalidTransitionError,
    JobAlreadyClaimedError,
)
from src.domain.lifecycle import JobLifecycle
from src.infrastructure.locks import DistributedLock, LockNotAcquiredError
from src.infrastructure.memory import InMemoryBookingRepository
from tests.conftest import (
    CUSTOMER_ID,
    DRIVER_A,
    FIXED_NOW,
    ActorAuthorizer,
    StaticEligibility,
    StepClock,
    advance_to,
    make_booking,
)


class YieldingRepository(InMemoryBookingRepository):
    """Hands control back to the loop after every read, widening races."""

    async def get(self, booking_id):
        booking = await super().get(booking_id)
        await asyncio.sleep(0)
        return booking


@pytest.fixture
def racing_lifecycle():
    drivers = {driver_id: {VehicleType.PICKUP} for driver_id in range(101, 121)}
    repo = YieldingRepository()
    lifecycle = JobLifecycle(
        repo, StaticEligibility(drivers), ActorAuthorizer(), clock=StepClock()
    )
    return repo, lifecycle


class TestAcceptRace:
    @pytest.mark.asyncio
    async def test_two_drivers_one_winner(self, racing_lifecycle):
        repo, lifecycle = racing_lifecycle
        booking = await repo.create(make_booking())

        results = await asyncio.gather(
            lifecycle.accept_job(booking.id, 101),
            lifecycle.accept_job(booking.id, 102),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, Booking)]
        losers = [r for r in results if isinstance(r, JobAlreadyClaimedError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert winners[0].assigned_driver_id in (101, 102)

    @pytest.mark.asyncio
    async def test_many_drivers_one_winner(self, racing_lifecycle):
        repo, lifecycle = racing_lifecycle
        booking = await repo.create(make_booking())

        results = await asyncio.gather(
            *(lifecycle.accept_job(booking.id, d) for d in range(101, 121)),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, Booking)]
        assert len(winners) == 1
        assert all(
            isinstance(r, JobAlreadyClaimedError) for r in results if r not in winners
        )

        stored = await repo.get(booking.id)
        assert stored.status == BookingStatus.ACCEPTED
        assert stored.assigned_driver_id == winners[0].assigned_driver_id


class TestStatusRace:
    @pytest.mark.asyncio
    async def test_advance_against_cancel(self, racing_lifecycle):
        repo, lifecycle = racing_lifecycle
        booking = await repo.create(make_booking())
        await advance_to(lifecycle, booking.id, BookingStatus.ACCEPTED, driver_id=101)

        advanced, cancelled = await asyncio.gather(
            lifecycle.advance(booking.id, BookingStatus.DRIVER_EN_ROUTE, 101),
            lifecycle.cancel(booking.id, CUSTOMER_ID, "no longer needed"),
            return_exceptions=True,
        )
        stored = await repo.get(booking.id)

        if isinstance(advanced, Booking):
            assert isinstance(cancelled, InvalidTransitionError)
            assert cancelled.current_status == BookingStatus.DRIVER_EN_ROUTE
            assert stored.status == BookingStatus.DRIVER_EN_ROUTE
        else:
            assert isinstance(advanced, AlreadyTerminalError)
            assert isinstance(cancelled, Booking)
            assert stored.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_duplicate_advance(self, racing_lifecycle):
        repo, lifecycle = racing_lifecycle
        booking = await repo.create(make_booking())
        await advance_to(lifecycle, booking.id, BookingStatus.ACCEPTED, driver_id=101)

        results = await asyncio.gather(
            lifecycle.advance(booking.id, BookingStatus.DRIVER_EN_ROUTE, 101),
            lifecycle.advance(booking.id, BookingStatus.DRIVER_EN_ROUTE, 101),
            return_exceptions=True,
        )
        assert sum(isinstance(r, Booking) for r in results) == 1
        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1

    @pytest.mark.asyncio
    async def test_duplicate_cancel(self, racing_lifecycle):
        repo, lifecycle = racing_lifecycle
        booking = await repo.create(make_booking())

        results = await asyncio.gather(
            lifecycle.cancel(booking.id, CUSTOMER_ID, "changed my mind"),
            lifecycle.cancel(booking.id, CUSTOMER_ID, "changed my mind"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, Booking) for r in results) == 1
        assert sum(isinstance(r, AlreadyTerminalError) for r in results) == 1


class TestInMemoryStoreThreads:
    def test_compare_and_set_across_threads(self):
        repo = InMemoryBookingRepository([make_booking(id=1)])

        def claim(driver_id: int) -> bool:
            return asyncio.run(
                repo.compare_and_set(
                    1,
                    BookingExpectation(status=BookingStatus.PENDING),
                    BookingUpdate(
                        status=BookingStatus.ACCEPTED,
                        at=FIXED_NOW,
                        assigned_driver_id=driver_id,
                    ),
                )
            )

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(claim, range(200, 216)))

        assert results.count(True) == 1
        stored = asyncio.run(repo.get(1))
        assert stored.assigned_driver_id == 200 + results.index(True)

    def test_create_while_listing_across_threads(self):
        repo = InMemoryBookingRepository()

        def create_many(worker: int) -> list[int]:
            async def run():
                return [
                    (await repo.create(make_booking(idempotency_key=f"{worker}-{n}"))).id
                    for n in range(200)
                ]

            return asyncio.run(run())

        def read_many(_: int) -> int:
            async def run():
                seen = 0
                for n in range(200):
                    seen = len(await repo.list_open())
                    await repo.get_by_idempotency_key(f"0-{n}")
                    await repo.list_for_driver(DRIVER_A)
                return seen

            return asyncio.run(run())

        with ThreadPoolExecutor(max_workers=8) as pool:
            writers = [pool.submit(create_many, w) for w in range(4)]
            readers = [pool.submit(read_many, r) for r in range(4)]
            ids = [i for f in writers for i in f.result()]
            for f in readers:
                f.result()

        assert len(set(ids)) == 800
        assert len(asyncio.run(repo.list_open())) == 800

    @pytest.mark.asyncio
    async def test_stale_expectation_rejected(self):
        repo = InMemoryBookingRepository([make_booking(id=1)])
        update = BookingUpdate(
            status=BookingStatus.ACCEPTED, at=FIXED_NOW, assigned_driver_id=DRIVER_A
        )
        assert await repo.compare_and_set(
            1, BookingExpectation(BookingStatus.PENDING), update
        )
        assert not await repo.compare_and_set(
            1, BookingExpectation(BookingStatus.PENDING), update
        )
        assert not await repo.compare_and_set(
            2, BookingExpectation(BookingStatus.PENDING), update
        )

    @pytest.mark.asyncio
    async def test_reads_are_copies(self):
        repo = InMemoryBookingRepository([make_booking(id=1)])
        booking = await repo.get(1)
        booking.status = BookingStatus.COMPLETED
        assert (await repo.get(1)).status == BookingStatus.PENDING


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "pricing:rate_table", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:pricing:rate_table", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "pricing:rate_table", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "pricing:rate_table", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()
        assert mock_redis.eval.call_args.args[-1] == lock.token

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "pricing:rate_table", ttl_seconds=10)
        with pytest.raises(LockNotAcquiredError, match="Could not acquire lock"):
            async with lock:
                pass
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "pricing:rate_table", ttl_seconds=10)
        with pytest.raises(ValueError):
            async with lock:
                raise ValueError("merge failed")
        mock_redis.eval.assert_awaited_once()
