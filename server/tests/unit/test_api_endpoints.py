"""Integration tests for API endpoints."""

import uuid
from datetime import datetime, timedelta

import jwt
import pytest
from conftest import next_week_at

from petcare.core.config import settings


async def _create_venue(test_client, admin_headers, hotel_capacity=None):
    response = await test_client.post(
        "/v1/venue/create",
        json={"name": "Happy Paws", "address": "Seoul", "hotel_capacity": hotel_capacity},
        headers=admin_headers,
    )
    assert response.status_code == 200
    venue = response.json()

    response = await test_client.post(
        "/v1/venue/doctor/add",
        json={"venue_id": venue["id"], "name": "Dr. Han"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    return venue, response.json()


def _hospital_payload(venue, doctor, hour=10):
    return {
        "venue_id": venue["id"],
        "doctor_id": doctor["id"],
        "appointment_at": next_week_at(hour).isoformat(),
        "reserver_name": "Jiwoo",
        "primary_phone": "010-1234-5678",
        "pet_name": "Coco",
    }


def _hotel_payload(venue, nights=2):
    check_in = next_week_at(10).date()
    return {
        "venue_id": venue["id"],
        "check_in": check_in.isoformat(),
        "check_out": (check_in + timedelta(days=nights)).isoformat(),
        "reserver_name": "Jiwoo",
        "primary_phone": "010-1234-5678",
        "pet_name": "Bori",
    }


@pytest.mark.asyncio
async def test_missing_auth_is_rejected(test_client):
    response = await test_client.get("/v1/notification")

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(test_client):
    response = await test_client.get(
        "/v1/notification", headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_venue_creation_requires_admin(test_client, auth_headers):
    response = await test_client.post("/v1/venue/create", json={"name": "Nope"}, headers=auth_headers)

    assert response.status_code == 403
    assert response.json()["required_permissions"] == ["ADMIN"]


@pytest.mark.asyncio
async def test_venue_catalog(test_client, members, auth_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers, hotel_capacity=3)

    response = await test_client.post("/v1/venue/get", json={"venue_id": venue["id"]}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["hotel_capacity"] == 3

    response = await test_client.post("/v1/venue/doctors", json={"venue_id": venue["id"]}, headers=auth_headers)
    assert [d["id"] for d in response.json()] == [doctor["id"]]

    response = await test_client.post("/v1/venue/get", json={"venue_id": str(uuid.uuid4())}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reserve_hospital_and_slot_conflict(test_client, members, auth_headers, other_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers)
    payload = _hospital_payload(venue, doctor)

    response = await test_client.post("/v1/reservation/hospital/reserve", json=payload, headers=auth_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["kind"] == "HOSPITAL"
    assert data["status"] == "PENDING"
    assert data["member_id"] == "member-1"
    assert data["doctor_id"] == doctor["id"]

    response = await test_client.post("/v1/reservation/hospital/reserve", json=payload, headers=other_headers)
    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    conflict = response.json()
    assert conflict["code"] == "SLOT_CONFLICT"
    assert conflict["retryable"] is True

    response = await test_client.post(
        "/v1/venue/unavailable-times",
        json={"doctor_id": doctor["id"], "day": next_week_at(10).date().isoformat()},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert len(response.json()["times"]) == 1


@pytest.mark.asyncio
async def test_reserve_off_grid_time_is_a_validation_error(test_client, members, auth_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers)
    payload = _hospital_payload(venue, doctor, hour=13)

    response = await test_client.post("/v1/reservation/hospital/reserve", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_reserve_with_malformed_body_lists_violations(test_client, auth_headers):
    response = await test_client.post(
        "/v1/reservation/hotel/reserve",
        json={"venue_id": "x", "check_in": "2030-01-05", "check_out": "2030-01-03"},
        headers=auth_headers,
    )

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert "violations" in data


@pytest.mark.asyncio
async def test_reservation_lifecycle_over_http(test_client, members, auth_headers, other_headers, admin_headers):
    venue, _ = await _create_venue(test_client, admin_headers)
    response = await test_client.post("/v1/reservation/hotel/reserve", json=_hotel_payload(venue), headers=auth_headers)
    assert response.status_code == 201
    ref = {"kind": "HOTEL", "reservation_id": response.json()["id"]}

    response = await test_client.post("/v1/reservation/confirm", json=ref, headers=auth_headers)
    assert response.status_code == 403

    response = await test_client.post("/v1/reservation/confirm", json=ref, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await test_client.post("/v1/reservation/confirm", json=ref, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"

    # Other members cannot see or cancel the stay
    response = await test_client.post("/v1/reservation/get", json=ref, headers=other_headers)
    assert response.status_code == 404
    response = await test_client.post("/v1/reservation/cancel", json=ref, headers=other_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND_OR_NOT_OWNER"

    response = await test_client.post("/v1/reservation/cancel", json=ref, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"

    response = await test_client.post("/v1/reservation/get", json=ref, headers=auth_headers)
    assert response.json()["status"] == "CANCELED"


@pytest.mark.asyncio
async def test_no_show_count_is_self_service(test_client, members, auth_headers, admin_headers):
    response = await test_client.post("/v1/reservation/no-show-count", json={}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"member_id": "member-1", "count": 0}

    response = await test_client.post(
        "/v1/reservation/no-show-count", json={"member_id": "member-2"}, headers=auth_headers
    )
    assert response.status_code == 403

    response = await test_client.post(
        "/v1/reservation/no-show-count", json={"member_id": "member-2"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["member_id"] == "member-2"


@pytest.mark.asyncio
async def test_notification_inbox(test_client, members, auth_headers, other_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers)
    await test_client.post(
        "/v1/reservation/hospital/reserve", json=_hospital_payload(venue, doctor, hour=10), headers=auth_headers
    )
    await test_client.post(
        "/v1/reservation/hospital/reserve", json=_hospital_payload(venue, doctor, hour=11), headers=auth_headers
    )

    response = await test_client.get("/v1/notification/unread-count", headers=auth_headers)
    assert response.json() == {"count": 2}

    response = await test_client.get("/v1/notification", params={"size": 1}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["meta"]["total"] == 2
    assert len(data["items"]) == 1
    newest = data["items"][0]
    assert newest["type"] == "RESERVATION_HOSPITAL"

    response = await test_client.patch(f"/v1/notification/{newest['id']}/mark-read", headers=other_headers)
    assert response.status_code == 404

    response = await test_client.patch(f"/v1/notification/{newest['id']}/mark-read", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    response = await test_client.get("/v1/notification", params={"unread_only": True}, headers=auth_headers)
    assert response.json()["meta"]["total"] == 1

    response = await test_client.post("/v1/notification/mark-all-read", headers=auth_headers)
    assert response.json() == {"updated": 1}

    response = await test_client.delete(f"/v1/notification/{newest['id']}", headers=auth_headers)
    assert response.status_code == 204

    response = await test_client.get("/v1/notification", headers=auth_headers)
    assert response.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_keyword_subscriptions_and_post_hook(test_client, members, auth_headers, other_headers):
    response = await test_client.post(
        "/v1/keyword/subscribe", json={"keyword": "vaccine", "scope": "qna"}, headers=auth_headers
    )
    assert response.status_code == 201
    subscription = response.json()
    assert subscription["keyword"] == "vaccine"

    response = await test_client.post(
        "/v1/keyword/subscribe", json={"keyword": "vaccine", "scope": "qna"}, headers=auth_headers
    )
    assert response.status_code == 409

    response = await test_client.post(
        "/v1/content/post-published",
        json={"post_id": "post-5", "author_id": "member-2", "category": "qna", "text": "first vaccine shot?"},
        headers=other_headers,
    )
    assert response.status_code == 200
    assert response.json() == {"notified": ["member-1"]}

    response = await test_client.get("/v1/keyword", headers=auth_headers)
    assert [s["id"] for s in response.json()] == [subscription["id"]]

    response = await test_client.delete(f"/v1/keyword/{subscription['id']}", headers=other_headers)
    assert response.status_code == 404

    response = await test_client.delete(f"/v1/keyword/{subscription['id']}", headers=auth_headers)
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_comment_and_like_hooks(test_client, members, auth_headers):
    response = await test_client.post(
        "/v1/content/comment-created",
        json={"comment_id": "c-1", "post_id": "p-1", "post_author_id": "member-2", "commenter_id": "member-1"},
        headers=auth_headers,
    )
    assert response.json() == {"notified": ["member-2"]}

    response = await test_client.post(
        "/v1/content/like-created",
        json={
            "target_type": "COMMENT",
            "target_id": "c-1",
            "post_id": "p-1",
            "content_author_id": "member-1",
            "liker_id": "member-1",
        },
        headers=auth_headers,
    )
    assert response.json() == {"notified": []}

    response = await test_client.post(
        "/v1/content/like-created",
        json={
            "target_type": "KEYWORD",
            "target_id": "c-1",
            "post_id": "p-1",
            "content_author_id": "member-2",
            "liker_id": "member-1",
        },
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    response = await test_client.post("/v1/health/ping", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_expired_token_is_rejected(test_client):
    token = jwt.encode(
        {"sub": "member-1", "exp": datetime.utcnow() - timedelta(minutes=1)},
        settings.bearer_token_secret,
        algorithm="HS256",
    )
    response = await test_client.get("/v1/keyword", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_closed_times_block_booking(test_client, members, auth_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers)
    day = next_week_at(10).date().isoformat()
    closing = {"venue_id": venue["id"], "doctor_id": doctor["id"], "day": day, "times": ["10:00", "15:30"]}

    response = await test_client.post("/v1/venue/closed-times", json=closing, headers=auth_headers)
    assert response.status_code == 403

    response = await test_client.post("/v1/venue/closed-times", json=closing, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["times"] == [f"{day}T10:00:00", f"{day}T15:30:00"]

    response = await test_client.post(
        "/v1/reservation/hospital/reserve", json=_hospital_payload(venue, doctor, hour=10), headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "SLOT_CLOSED"
    assert response.json()["retryable"] is False

    response = await test_client.post(
        "/v1/venue/unavailable-times", json={"doctor_id": doctor["id"], "day": day}, headers=auth_headers
    )
    assert response.json()["times"] == [f"{day}T10:00:00", f"{day}T15:30:00"]


@pytest.mark.asyncio
async def test_reservation_listings(test_client, members, auth_headers, other_headers, admin_headers):
    venue, doctor = await _create_venue(test_client, admin_headers)
    response = await test_client.post(
        "/v1/reservation/hospital/reserve", json=_hospital_payload(venue, doctor, hour=10), headers=auth_headers
    )
    visit = response.json()
    response = await test_client.post("/v1/reservation/hotel/reserve", json=_hotel_payload(venue), headers=auth_headers)
    stay = response.json()
    await test_client.post(
        "/v1/reservation/hospital/reserve", json=_hospital_payload(venue, doctor, hour=11), headers=other_headers
    )

    response = await test_client.post("/v1/reservation/list", json={}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["meta"]["total"] == 2
    # The stay's check-in afternoon comes after the morning appointment
    assert [r["id"] for r in data["items"]] == [stay["id"], visit["id"]]

    response = await test_client.post("/v1/reservation/list", json={"kind": "HOSPITAL"}, headers=auth_headers)
    assert [r["id"] for r in response.json()["items"]] == [visit["id"]]

    response = await test_client.post(
        "/v1/reservation/admin/list", json={"venue_id": venue["id"]}, headers=auth_headers
    )
    assert response.status_code == 403

    response = await test_client.post(
        "/v1/reservation/admin/list",
        json={"venue_id": venue["id"], "doctor_id": doctor["id"], "size": 1},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["meta"] == {"page": 0, "size": 1, "total": 2}
    assert data["items"][0]["member_id"] == "member-2"
