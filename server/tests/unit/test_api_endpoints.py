"""Integration tests for API endpoints."""

from datetime import date
from uuid import uuid4

import pytest
import pytest_asyncio

TOUR_DATA = {
    "name": "Canal Cruise",
    "slug": "canal-cruise",
    "description": "Two hours on the inner canals",
    "max_participants": 10,
    "guests_per_guide": 4,
    "base_price": "40.00",
}


@pytest_asyncio.fixture
async def api_tour(test_client, auth_headers, api_tuesday):
    """Tour created through the API, running at 09:00 on weekdays."""
    response = await test_client.post("/v1/tour/create", json=TOUR_DATA, headers=auth_headers)
    assert response.status_code == 200
    tour = response.json()

    response = await test_client.post(
        "/v1/availability/window/create",
        json={
            "tour_id": tour["id"],
            "name": "Season",
            "start_date": date.today().isoformat(),
            "days_of_week": [1, 2, 3, 4, 5],
        },
        headers=auth_headers,
    )
    assert response.status_code == 200

    response = await test_client.post(
        "/v1/availability/departure-time/create",
        json={"tour_id": tour["id"], "time": "09:00", "label": "Morning"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    return tour


@pytest_asyncio.fixture
async def api_customer(test_client, auth_headers):
    response = await test_client.post(
        "/v1/customer/create",
        json={"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    return response.json()


async def _create_booking(client, headers, tour, customer, day, adults=2):
    return await client.post(
        "/v1/booking/create",
        json={
            "customer_id": customer["id"],
            "tour_id": tour["id"],
            "booking_date": day.isoformat(),
            "booking_time": "09:00",
            "adult_count": adults,
        },
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_tour_endpoint(test_client, auth_headers):
    """Test the tour creation endpoint."""
    response = await test_client.post("/v1/tour/create", json=TOUR_DATA, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == TOUR_DATA["name"]
    assert data["slug"] == TOUR_DATA["slug"]
    assert data["status"] == "active"
    assert "id" in data


@pytest.mark.asyncio
async def test_create_tour_missing_auth(test_client):
    """Test tour creation without authentication."""
    response = await test_client.post("/v1/tour/create", json=TOUR_DATA)

    assert response.status_code == 401
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_create_tour_invalid_data(test_client, auth_headers):
    """Test tour creation with invalid data."""
    response = await test_client.post(
        "/v1/tour/create",
        json={**TOUR_DATA, "name": ""},
        headers=auth_headers,
    )

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert [v["path"] for v in data["violations"]] == ["name"]


@pytest.mark.asyncio
async def test_duplicate_tour_slug_is_a_problem(test_client, auth_headers):
    await test_client.post("/v1/tour/create", json=TOUR_DATA, headers=auth_headers)
    response = await test_client.post("/v1/tour/create", json=TOUR_DATA, headers=auth_headers)

    assert response.status_code == 400
    data = response.json()
    assert data["title"] == "Validation Error"
    assert data["detail"] == "Tour with slug 'canal-cruise' already exists"


@pytest.mark.asyncio
async def test_unknown_customer_is_not_found(test_client, auth_headers):
    response = await test_client.post(
        "/v1/customer/get", json={"customer_id": str(uuid4())}, headers=auth_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_check_slot(test_client, auth_headers, api_tour, api_tuesday):
    body = {"tour_id": api_tour["id"], "date": api_tuesday.isoformat(), "time": "09:00", "requested_spots": 2}
    response = await test_client.post("/v1/availability/check-slot", json=body, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "available": True,
        "spots_remaining": 10,
        "max_capacity": 10,
        "booked_count": 0,
        "reason": None,
        "message": None,
    }

    response = await test_client.post(
        "/v1/availability/check-slot",
        json={**body, "requested_spots": 11},
        headers=auth_headers,
    )
    data = response.json()
    assert data["available"] is False
    assert data["reason"] == "insufficient_capacity"
    assert data["message"] == "Not enough spots. Only 10 spots remaining."


@pytest.mark.asyncio
async def test_check_slot_rejects_malformed_time(test_client, auth_headers, api_tour, api_tuesday):
    body = {"tour_id": api_tour["id"], "date": api_tuesday.isoformat(), "time": "9am"}
    response = await test_client.post("/v1/availability/check-slot", json=body, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Time must be in HH:MM format (e.g., '09:00')"


@pytest.mark.asyncio
async def test_booking_lifecycle(test_client, auth_headers, api_tour, api_customer, api_tuesday):
    response = await _create_booking(test_client, auth_headers, api_tour, api_customer, api_tuesday)
    assert response.status_code == 200
    booking = response.json()
    assert booking["reference_number"].startswith("BK-")
    assert booking["status"] == "pending"
    assert booking["total_participants"] == 2
    assert booking["total"] == "80.00"
    assert booking["customer"]["last_name"] == "Hopper"

    response = await test_client.post(
        "/v1/availability/check-slot",
        json={"tour_id": api_tour["id"], "date": api_tuesday.isoformat(), "time": "09:00", "requested_spots": 0},
        headers=auth_headers,
    )
    assert response.json()["booked_count"] == 2

    response = await test_client.post(
        "/v1/booking/confirm", json={"booking_id": booking["id"]}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    assert response.json()["confirmed_at"] is not None

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking["id"], "reason": "Customer request"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Customer request"

    response = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Booking is already cancelled"


@pytest.mark.asyncio
async def test_booking_on_a_closed_day(test_client, auth_headers, api_tour, api_customer, api_tuesday):
    # Saturday of the same week
    saturday = date.fromordinal(api_tuesday.toordinal() + 4)
    response = await _create_booking(test_client, auth_headers, api_tour, api_customer, saturday)

    assert response.status_code == 400
    assert response.json()["detail"] == "Tour does not operate on this date"


@pytest.mark.asyncio
async def test_bookings_are_scoped_to_the_organization(
    test_client, auth_headers, api_tour, api_customer, api_tuesday, other_auth_headers
):
    booking = (await _create_booking(test_client, auth_headers, api_tour, api_customer, api_tuesday)).json()

    response = await test_client.post(
        "/v1/booking/get", json={"booking_id": booking["id"]}, headers=other_auth_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_confirm_endpoint(test_client, auth_headers, api_tour, api_customer, api_tuesday):
    booking = (await _create_booking(test_client, auth_headers, api_tour, api_customer, api_tuesday)).json()
    missing = str(uuid4())

    response = await test_client.post(
        "/v1/booking/bulk/confirm",
        json={"booking_ids": [booking["id"], missing]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {
        "succeeded_ids": [booking["id"]],
        "errors": [{"id": missing, "error": "Booking not found"}],
    }


@pytest.mark.asyncio
async def test_stats_summary_endpoint(test_client, auth_headers, api_tour, api_customer, api_tuesday):
    await _create_booking(test_client, auth_headers, api_tour, api_customer, api_tuesday, adults=3)

    response = await test_client.post("/v1/booking/stats/summary", json={}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["pending"] == 1
    assert data["total_participants"] == 3
    assert data["total_revenue"] == "120.00"


@pytest.mark.asyncio
async def test_heatmap_endpoint(test_client, auth_headers, api_tour, api_customer, api_tuesday):
    await _create_booking(test_client, auth_headers, api_tour, api_customer, api_tuesday)

    response = await test_client.post(
        "/v1/availability/heatmap",
        json={
            "start_date": api_tuesday.isoformat(),
            "end_date": api_tuesday.isoformat(),
            "tour_ids": [api_tour["id"]],
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    [entry] = response.json()["entries"]
    assert entry["time"] == "09:00"
    assert entry["booked_count"] == 2
    assert entry["utilization_percent"] == 20


@pytest.mark.asyncio
async def test_heatmap_range_is_validated(test_client, auth_headers):
    response = await test_client.post(
        "/v1/availability/heatmap",
        json={"start_date": "2030-01-10", "end_date": "2030-01-01"},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert "violations" in response.json()


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_problem_documents_are_in_the_schema(test_client):
    response = await test_client.get("/openapi.json")

    assert response.status_code == 200
    schema = response.json()
    assert "Problem" in schema["components"]["schemas"]
    assert "404" in schema["paths"]["/v1/booking/get"]["post"]["responses"]
