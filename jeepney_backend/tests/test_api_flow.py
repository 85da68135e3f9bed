"""
End-to-end API flows and error responses.
"""

import pytest

API = "/v1"


@pytest.mark.asyncio
async def test_health_reports_cache(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["redis"] == "up"


@pytest.mark.asyncio
async def test_book_scan_and_settle(client, line):
    driver_id = line.drivers[0].id

    generated = await client.post(f"{API}/fares/routes/{line.outbound.id}/generate")
    assert generated.status_code == 200
    assert generated.json()["entries_created"] == 289

    quote = await client.get(f"{API}/fares/resolve", params={
        "from_checkpoint": "SM Epza", "to_checkpoint": "SM Dasma"
    })
    assert quote.status_code == 200
    assert quote.json()["amount"] == 50.0
    assert quote.json()["method"] == "exact_entry"

    shift = await client.post(f"{API}/shifts/drivers/{driver_id}/start")
    assert shift.json()["action"] == "started"

    booking = await client.post(f"{API}/trips", json={
        "passenger_id": "p-api",
        "driver_id": driver_id,
        "route_id": line.outbound.id,
        "pickup_location": "SM Epza",
        "destination": "SM Dasmariñas",
    })
    assert booking.status_code == 201
    trip_id = booking.json()["trip_id"]
    assert booking.json()["fare"] == 50.0

    scan = await client.post(f"{API}/checkpoint-scans", json={
        "driver_id": driver_id,
        "checkpoint_name": "SM Dasma",
    })
    assert scan.status_code == 200
    completed = scan.json()["completed_trips"]
    assert [c["trip_id"] for c in completed] == [trip_id]
    assert completed[0]["method"] == "pass_through"

    trip = await client.get(f"{API}/trips/{trip_id}")
    assert trip.json()["status"] == "completed"

    summary = await client.get(f"{API}/earnings/drivers/{driver_id}/summary")
    assert summary.status_code == 200
    assert summary.json()["today"]["trip_count"] == 1

    inbox = await client.get(f"{API}/notifications", params={
        "recipient_type": "PASSENGER", "recipient_id": "p-api"
    })
    assert inbox.json()[0]["type"] == "TRIP_COMPLETED"

    ended = await client.post(f"{API}/shifts/drivers/{driver_id}/end")
    assert ended.json()["action"] == "ended"
    assert ended.json()["shift"]["total_trips"] == 1


@pytest.mark.asyncio
async def test_fare_write_mirrors_through_api(client, line):
    response = await client.put(f"{API}/fares/entries", json={
        "route_id": line.outbound.id,
        "from_checkpoint_id": line.out["Malabon"].id,
        "to_checkpoint_id": line.out["Santiago"].id,
        "fare_amount": 21.0,
    })
    assert response.status_code == 200
    assert response.json()["mirror_status"] == "mirrored"

    mirrored = await client.get(f"{API}/fares/resolve", params={
        "from_checkpoint": str(line.inb["Santiago"].id),
        "to_checkpoint": str(line.inb["Malabon"].id),
    })
    assert mirrored.json()["amount"] == 21.0
    assert mirrored.json()["route_id"] == line.inbound.id


@pytest.mark.asyncio
async def test_explicit_transitions_are_noops_once_closed(client, line):
    booking = await client.post(f"{API}/trips", json={
        "passenger_id": "p-cancel",
        "driver_id": line.drivers[1].id,
        "route_id": line.outbound.id,
        "pickup_location": "SM Epza",
        "destination": "Pabahay",
        "fare": 28.5,
    })
    trip_id = booking.json()["trip_id"]

    cancelled = await client.post(f"{API}/trips/{trip_id}/cancel", json={"reason": "changed plans"})
    assert cancelled.json()["status"] == "cancelled"

    completed = await client.post(f"{API}/trips/{trip_id}/complete")
    assert completed.status_code == 200
    assert completed.json()["status"] == "already_cancelled"
    assert completed.json()["changed"] is False


@pytest.mark.asyncio
async def test_conflicts_and_locations_endpoints(client, line):
    for driver in line.drivers[:2]:
        response = await client.post(f"{API}/checkpoint-scans", json={
            "driver_id": driver.id,
            "checkpoint_id": line.out["Santiago"].id,
        })
        assert response.status_code == 200

    report = await client.get(f"{API}/checkpoints/{line.out['Santiago'].id}/conflicts")
    assert report.status_code == 200
    assert report.json()["has_conflict"] is True
    assert [d["estimated_departure_offset_minutes"] for d in report.json()["ordered_drivers"]] == [0, 5]

    locations = await client.get(f"{API}/routes/{line.outbound.id}/driver-locations")
    assert len(locations.json()["drivers"]) == 2


# --- Error responses ---

@pytest.mark.asyncio
async def test_unknown_route_error_format(client, line):
    response = await client.get(f"{API}/fares/resolve", params={
        "route_id": 9999, "from_checkpoint": "SM Epza", "to_checkpoint": "Malabon"
    })
    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "ERR_NOT_FOUND_001"
    assert "message" in body
    assert body["details"]["resource"] == "Route"


@pytest.mark.asyncio
async def test_duplicate_booking_conflict(client, line):
    payload = {
        "passenger_id": "p-dup",
        "driver_id": line.drivers[0].id,
        "route_id": line.outbound.id,
        "pickup_location": "SM Epza",
        "destination": "Malabon",
    }
    assert (await client.post(f"{API}/trips", json=payload)).status_code == 201

    response = await client.post(f"{API}/trips", json=payload)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_001"


@pytest.mark.asyncio
async def test_fare_below_base_rejected(client, line):
    response = await client.put(f"{API}/fares/entries", json={
        "route_id": line.outbound.id,
        "from_checkpoint_id": line.out["Malabon"].id,
        "to_checkpoint_id": line.out["Santiago"].id,
        "fare_amount": 5.0,
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_FARE_002"


@pytest.mark.asyncio
async def test_scan_without_checkpoint_is_invalid(client, line):
    response = await client.post(f"{API}/checkpoint-scans", json={"driver_id": line.drivers[0].id})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_idempotent_ledger_post(client, line):
    payload = {
        "driver_id": line.drivers[2].id,
        "final_fare": 30.0,
        "payment_method": "gcash",
        "idempotency_key": "gcash-ref-1",
    }
    first = await client.post(f"{API}/earnings", json=payload)
    retry = await client.post(f"{API}/earnings", json=payload)
    assert first.status_code == 201
    assert retry.json()["id"] == first.json()["id"]

    page = await client.get(f"{API}/earnings/drivers/{line.drivers[2].id}/transactions")
    assert page.json()["total"] == 1
