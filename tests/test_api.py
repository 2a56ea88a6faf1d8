"""
Integration tests for the REST API endpoints.

Storage dependencies are overridden with the in-memory booking and rate
table stores, so the routes run the real pricing and job core without
PostgreSQL or Redis.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.infrastructure.memory import InMemoryRateTableStore
from tests.conftest import (
    ADMIN_ID,
    CBD,
    CUSTOMER_ID,
    DRIVER_A,
    DRIVER_B,
    DRIVER_C,
    STRANGER_ID,
    WESTLANDS,
)

TRIP = {
    "load_type": "furniture",
    "distance_km": 10,
    "duration_minutes": 20,
    "pickup_at": "2026-10-21T11:00:00",
}

JOB_STEPS = [
    "driver_en_route",
    "arrived_pickup",
    "loading",
    "in_transit",
    "arrived_destination",
    "unloading",
    "completed",
]


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(repo, eligibility, authorizer):
    """AsyncClient backed by in-memory stores."""
    from src.api.app import create_app
    from src.api.dependencies import (
        get_booking_repository,
        get_cancel_authorizer,
        get_driver_eligibility,
        get_rate_store,
    )

    store = InMemoryRateTableStore()
    app = create_app()
    app.dependency_overrides[get_booking_repository] = lambda: repo
    app.dependency_overrides[get_rate_store] = lambda: store
    app.dependency_overrides[get_driver_eligibility] = lambda: eligibility
    app.dependency_overrides[get_cancel_authorizer] = lambda: authorizer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def create_booking(client: AsyncClient, **overrides) -> dict:
    body = {
        **TRIP,
        "customer_id": CUSTOMER_ID,
        "vehicle_type": "pickup",
        "pickup_lat": CBD.latitude,
        "pickup_lng": CBD.longitude,
        "dropoff_lat": WESTLANDS.latitude,
        "dropoff_lng": WESTLANDS.longitude,
        **overrides,
    }
    resp = await client.post("/api/v1/bookings", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def set_status(client: AsyncClient, booking_id: int, status: str, actor_id=DRIVER_A):
    return await client.put(
        f"/api/v1/drivers/jobs/{booking_id}/status",
        json={"actor_id": actor_id, "status": status},
    )


# ── Pricing ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_estimate_single_vehicle(client: AsyncClient):
    resp = await client.post(
        "/api/v1/pricing/estimate", json={**TRIP, "vehicle_type": "pickup"}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["rate_table_version"] == 1
    assert len(data["estimates"]) == 1
    price = data["estimates"][0]["price"]
    assert price["total_price"] == 1000
    assert price["total_display"] == 1000
    assert price["minimum_applied"] is False


@pytest.mark.asyncio
async def test_estimate_every_vehicle(client: AsyncClient):
    resp = await client.post("/api/v1/pricing/estimate", json=TRIP)
    assert resp.status_code == 200
    vehicles = {e["vehicle_type"] for e in resp.json()["estimates"]}
    assert vehicles == {"pickup", "van", "small_truck", "medium_truck", "large_truck"}


@pytest.mark.asyncio
async def test_helpers_only_when_requested(client: AsyncClient):
    body = {**TRIP, "vehicle_type": "pickup", "helpers_count": 2}
    without = await client.post("/api/v1/pricing/estimate", json=body)
    with_helpers = await client.post(
        "/api/v1/pricing/estimate", json={**body, "requires_helpers": True}
    )
    assert without.json()["estimates"][0]["price"]["helper_charge"] == 0
    assert with_helpers.json()["estimates"][0]["price"]["total_price"] == 1600


@pytest.mark.asyncio
async def test_estimate_invalid_distance(client: AsyncClient):
    resp = await client.post(
        "/api/v1/pricing/estimate",
        json={**TRIP, "vehicle_type": "pickup", "distance_km": -3},
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["kind"] == "InvalidInputError"
    assert body["field"] == "distance_km"


# ── Bookings ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_booking_freezes_price(client: AsyncClient):
    booking = await create_booking(client)
    assert booking["status"] == "pending"
    assert booking["price"]["total_price"] == 1000
    # naive pickup times are local to the pricing schedule
    assert booking["pickup_at"] == "2026-10-21T11:00:00+03:00"

    # a later price change does not touch the booking
    await client.put("/api/v1/admin/pricing", json={"minimum_charge": 5000})
    resp = await client.get(f"/api/v1/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert resp.json()["price"]["total_price"] == 1000


@pytest.mark.asyncio
async def test_idempotency_key(client: AsyncClient):
    first = await create_booking(client, idempotency_key="move-42")
    second = await create_booking(client, idempotency_key="move-42")
    assert first["id"] == second["id"]


@pytest.mark.asyncio
async def test_get_booking_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/bookings/9999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cancel_needs_reason(client: AsyncClient):
    booking = await create_booking(client)
    resp = await client.put(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"actor_id": CUSTOMER_ID, "cancellation_reason": "  "},
    )
    assert resp.status_code == 422
    assert resp.json()["kind"] == "EmptyReasonError"


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient):
    booking = await create_booking(client)
    url = f"/api/v1/bookings/{booking['id']}/cancel"
    body = {"actor_id": CUSTOMER_ID, "cancellation_reason": "Moving date changed"}

    resp = await client.put(url, json=body)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancellation_reason"] == "Moving date changed"

    again = await client.put(url, json=body)
    assert again.status_code == 409
    assert again.json()["kind"] == "AlreadyTerminalError"


@pytest.mark.asyncio
async def test_stranger_cannot_cancel(client: AsyncClient):
    booking = await create_booking(client)
    resp = await client.put(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"actor_id": STRANGER_ID, "cancellation_reason": "prank"},
    )
    assert resp.status_code == 403


# ── Drivers ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_job_once(client: AsyncClient):
    booking = await create_booking(client)
    url = f"/api/v1/drivers/jobs/{booking['id']}/accept"

    first = await client.post(url, json={"driver_id": DRIVER_A})
    assert first.status_code == 200
    assert first.json()["status"] == "accepted"
    assert first.json()["assigned_driver_id"] == DRIVER_A

    second = await client.post(url, json={"driver_id": DRIVER_B})
    assert second.status_code == 409
    assert second.json()["kind"] == "JobAlreadyClaimedError"
    assert second.json()["message"] == "This job was just taken."


@pytest.mark.asyncio
async def test_ineligible_driver(client: AsyncClient):
    booking = await create_booking(client)
    resp = await client.post(
        f"/api/v1/drivers/jobs/{booking['id']}/accept", json={"driver_id": DRIVER_C}
    )
    assert resp.status_code == 403
    assert resp.json()["kind"] == "DriverNotEligibleError"


@pytest.mark.asyncio
async def test_status_must_follow_order(client: AsyncClient):
    booking = await create_booking(client)
    await client.post(
        f"/api/v1/drivers/jobs/{booking['id']}/accept", json={"driver_id": DRIVER_A}
    )

    skipped = await set_status(client, booking["id"], "in_transit")
    assert skipped.status_code == 409
    assert skipped.json()["kind"] == "InvalidTransitionError"
    assert skipped.json()["current_status"] == "accepted"

    wrong_driver = await set_status(client, booking["id"], "driver_en_route", DRIVER_B)
    assert wrong_driver.status_code == 403

    ok = await set_status(client, booking["id"], "driver_en_route")
    assert ok.status_code == 200
    assert ok.json()["status"] == "driver_en_route"


@pytest.mark.asyncio
async def test_complete_job_and_earnings(client: AsyncClient):
    booking = await create_booking(client)
    await client.post(
        f"/api/v1/drivers/jobs/{booking['id']}/accept", json={"driver_id": DRIVER_A}
    )

    current = await client.get(f"/api/v1/drivers/{DRIVER_A}/jobs/current")
    assert current.json()["job"]["id"] == booking["id"]
    assert current.json()["next_status"] == "driver_en_route"

    for status in JOB_STEPS:
        resp = await set_status(client, booking["id"], status)
        assert resp.status_code == 200, resp.text
    assert resp.json()["driver_share"] == 800
    assert resp.json()["platform_fee"] == 200

    current = await client.get(f"/api/v1/drivers/{DRIVER_A}/jobs/current")
    assert current.json()["job"] is None

    earnings = await client.get(f"/api/v1/drivers/{DRIVER_A}/earnings?period=week")
    assert earnings.status_code == 200
    data = earnings.json()
    assert data["total_earnings"] == 800
    assert data["total_revenue"] == 1000
    assert data["platform_fees"] == 200
    assert data["total_jobs"] == 1
    assert data["jobs"][0]["booking_id"] == booking["id"]


@pytest.mark.asyncio
async def test_custom_earnings_needs_dates(client: AsyncClient):
    resp = await client.get(
        f"/api/v1/drivers/{DRIVER_A}/earnings?period=custom&start_date=2026-10-01"
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "end_date"


@pytest.mark.asyncio
async def test_available_jobs_feed(client: AsyncClient):
    near = await create_booking(client)
    far = await create_booking(client, pickup_lat=-0.0917, pickup_lng=34.7680)  # Kisumu
    van = await create_booking(client, vehicle_type="van")
    taken = await create_booking(client)
    await client.post(
        f"/api/v1/drivers/jobs/{taken['id']}/accept", json={"driver_id": DRIVER_A}
    )

    resp = await client.get("/api/v1/drivers/jobs/available?vehicle_types=pickup")
    assert {j["id"] for j in resp.json()} == {near["id"], far["id"]}

    resp = await client.get(
        "/api/v1/drivers/jobs/available",
        params={"lat": WESTLANDS.latitude, "lng": WESTLANDS.longitude, "radius_km": 10},
    )
    jobs = resp.json()
    assert {j["id"] for j in jobs} == {near["id"], van["id"]}
    assert all(j["distance_from_driver"] <= 10 for j in jobs)


# ── Admin ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pricing_update_and_reset(client: AsyncClient):
    resp = await client.get("/api/v1/admin/pricing")
    assert resp.json()["version"] == 1

    resp = await client.put(
        "/api/v1/admin/pricing",
        json={"minimum_charge": 1200, "base_rates": {"pickup": {"per_km": 60}}},
    )
    assert resp.status_code == 200
    assert resp.json()["version"] == 2
    assert resp.json()["config"]["base_rates"]["pickup"]["base"] == 500
    assert resp.json()["config"]["base_rates"]["pickup"]["per_km"] == 60

    quote = await client.post(
        "/api/v1/pricing/estimate", json={**TRIP, "vehicle_type": "pickup", "distance_km": 2}
    )
    assert quote.json()["rate_table_version"] == 2
    assert quote.json()["estimates"][0]["price"]["total_price"] == 1200

    resp = await client.post("/api/v1/admin/pricing/reset")
    assert resp.json()["version"] == 3
    assert resp.json()["config"]["minimum_charge"] == 800


@pytest.mark.asyncio
async def test_pricing_update_rejects_out_of_range(client: AsyncClient):
    resp = await client.put(
        "/api/v1/admin/pricing", json={"load_multipliers": {"fragile": 5}}
    )
    assert resp.status_code == 422
    assert (await client.get("/api/v1/admin/pricing")).json()["version"] == 1


@pytest.mark.asyncio
async def test_pricing_preview_is_not_saved(client: AsyncClient):
    resp = await client.post(
        "/api/v1/admin/pricing/preview",
        json={
            "trip": {**TRIP, "vehicle_type": "pickup"},
            "rate_table": {"base_rates": {"pickup": {"base": 1000}}},
        },
    )
    assert resp.status_code == 200
    assert resp.json()["total_price"] == 1500
    assert (await client.get("/api/v1/admin/pricing")).json()["version"] == 1


@pytest.mark.asyncio
async def test_admin_cancels_in_progress_job(client: AsyncClient):
    booking = await create_booking(client)
    await client.post(
        f"/api/v1/drivers/jobs/{booking['id']}/accept", json={"driver_id": DRIVER_A}
    )
    await set_status(client, booking["id"], "driver_en_route")

    resp = await client.put(
        f"/api/v1/admin/bookings/{booking['id']}/status",
        json={
            "actor_id": ADMIN_ID,
            "status": "cancelled",
            "cancellation_reason": "Customer unreachable",
        },
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert "cancelled" in resp.json()["status_timestamps"]
