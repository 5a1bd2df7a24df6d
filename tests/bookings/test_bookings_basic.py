from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bookings_service.clock import get_clock
from bookings_service.database import Base, engine
from bookings_service.main import app
from bookings_service.notifications import get_notifier
from bookings_service.rooms import CatalogRoom, InMemoryRoomCatalog, get_room_catalog

SECRET_KEY = "super-secret-smart-meeting-room-key"
ALGORITHM = "HS256"

client = TestClient(app)

catalog = InMemoryRoomCatalog(
    [
        CatalogRoom(id=1, name="R1", location="Building A", capacity=8, status="active"),
        CatalogRoom(id=2, name="R2", location="Building A", capacity=4, status="active"),
        CatalogRoom(id=3, name="Old Room", location="Building B", capacity=6, status="maintenance"),
    ]
)


@pytest.fixture(autouse=True)
def reset_db(clock, notifier):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_room_catalog] = lambda: catalog
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def make_token(user_id: int, username: str, role: str) -> str:
    payload = {
        "sub": username,
        "role": role,
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def auth(user_id: int = 1, username: str = "user1", role: str = "regular") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, username, role)}"}


def booking_body(start: str, end: str, priority: str = "normal", room_id: int = 1, day: str = "2025-06-01"):
    return {
        "room_id": room_id,
        "title": "Design review",
        "priority": priority,
        "booking_date": day,
        "start_time": start,
        "end_time": end,
    }


def test_regular_user_can_create_booking():
    res = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    assert res.status_code == 201
    data = res.json()
    assert data["booked_by"] == 1
    assert data["room_id"] == 1
    assert data["status"] == "scheduled"
    assert data["priority"] == "normal"
    assert data["cancellation_reason"] is None


def test_create_requires_auth():
    res = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"))
    assert res.status_code in (401, 403)


def test_overlap_at_same_priority_returns_409_with_override_rule():
    res1 = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    assert res1.status_code == 201

    res2 = client.post(
        "/api/v1/bookings",
        json=booking_body("10:30:00", "11:30:00"),
        headers=auth(2, "user2"),
    )
    assert res2.status_code == 409
    body = res2.json()
    assert body["service"] == "bookings"
    assert "higher priority" in body["detail"]


def test_high_priority_overrides_normal_booking():
    res1 = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    original_id = res1.json()["id"]

    res2 = client.post(
        "/api/v1/bookings",
        json=booking_body("10:30:00", "11:30:00", priority="high"),
        headers=auth(2, "user2"),
    )
    assert res2.status_code == 201

    res_original = client.get(f"/api/v1/bookings/{original_id}", headers=auth())
    assert res_original.json()["status"] == "scheduled"


def test_unknown_priority_is_rejected():
    res = client.post(
        "/api/v1/bookings",
        json=booking_body("10:00:00", "11:00:00", priority="urgent"),
        headers=auth(),
    )
    assert res.status_code == 422


def test_create_booking_with_invalid_time_fails():
    res = client.post("/api/v1/bookings", json=booking_body("11:00:00", "10:00:00"), headers=auth())
    assert res.status_code == 400
    assert "end_time must be after start_time" in res.json()["detail"]


def test_booking_in_the_past_fails():
    res = client.post(
        "/api/v1/bookings",
        json=booking_body("10:00:00", "11:00:00", day="2025-05-29"),
        headers=auth(),
    )
    assert res.status_code == 400


def test_unknown_room_returns_404_and_maintenance_room_400():
    res_unknown = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00", room_id=42), headers=auth()
    )
    assert res_unknown.status_code == 404

    res_maintenance = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00", room_id=3), headers=auth()
    )
    assert res_maintenance.status_code == 400


def test_auditor_cannot_create_or_cancel_bookings():
    headers_aud = auth(10, "aud1", "auditor")

    res_create = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=headers_aud)
    assert res_create.status_code == 403

    res = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    booking_id = res.json()["id"]

    res_cancel = client.post(
        f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "nope"}, headers=headers_aud
    )
    assert res_cancel.status_code == 403


def test_owner_can_cancel_and_slot_is_freed(notifier):
    res_create = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    booking_id = res_create.json()["id"]

    res_cancel = client.post(
        f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "conflict"}, headers=auth()
    )
    assert res_cancel.status_code == 204

    res_get = client.get(f"/api/v1/bookings/{booking_id}", headers=auth())
    assert res_get.json()["status"] == "cancelled"
    assert res_get.json()["cancellation_reason"] == "conflict"

    res_new = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth(2, "user2")
    )
    assert res_new.status_code == 201
    assert (booking_id, "cancelled") in notifier.events


def test_cancel_twice_returns_409():
    booking_id = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth()
    ).json()["id"]

    first = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "conflict"}, headers=auth())
    assert first.status_code == 204

    second = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "again"}, headers=auth())
    assert second.status_code == 409


def test_cancel_unknown_booking_returns_404():
    res = client.post("/api/v1/bookings/999/cancel", json={"reason": "conflict"}, headers=auth())
    assert res.status_code == 404


def test_regular_user_cannot_cancel_others_booking():
    booking_id = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth()
    ).json()["id"]

    res = client.post(
        f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "mine"}, headers=auth(2, "user2")
    )
    assert res.status_code == 403

    res_admin = client.post(
        f"/api/v1/bookings/{booking_id}/cancel",
        json={"reason": "room closed"},
        headers=auth(999, "admin1", "admin"),
    )
    assert res_admin.status_code == 204


def test_audit_trail_endpoint():
    booking_id = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth()
    ).json()["id"]
    client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "conflict"}, headers=auth())

    res = client.get(f"/api/v1/bookings/{booking_id}/audit", headers=auth(10, "aud1", "auditor"))
    assert res.status_code == 200
    entries = res.json()
    assert [e["action"] for e in entries] == ["created", "cancelled"]
    assert entries[1]["details"] == {"reason": "conflict"}
    assert entries[0]["created_at"] <= entries[1]["created_at"]

    res_other = client.get(f"/api/v1/bookings/{booking_id}/audit", headers=auth(2, "user2"))
    assert res_other.status_code == 403


def test_occupied_slots_are_sorted_and_skip_cancelled():
    headers = auth()
    late = client.post("/api/v1/bookings", json=booking_body("14:00:00", "15:00:00"), headers=headers).json()
    early = client.post("/api/v1/bookings", json=booking_body("09:00:00", "10:00:00"), headers=headers).json()
    dropped = client.post("/api/v1/bookings", json=booking_body("11:00:00", "12:00:00"), headers=headers).json()
    client.post(f"/api/v1/bookings/{dropped['id']}/cancel", json={"reason": "conflict"}, headers=headers)

    res = client.get(
        "/api/v1/bookings/occupied",
        params={"room_id": 1, "date": "2025-06-01"},
        headers=auth(0, "rooms_service", "service_account"),
    )
    assert res.status_code == 200
    assert [b["id"] for b in res.json()] == [early["id"], late["id"]]


def test_availability_lists_free_gaps():
    client.post("/api/v1/bookings", json=booking_body("09:00:00", "10:00:00"), headers=auth())

    res = client.get(
        "/api/v1/bookings/availability",
        params={"room_id": 1, "date": "2025-06-01"},
        headers=auth(),
    )
    assert res.status_code == 200
    body = res.json()
    assert len(body["occupied"]) == 1
    assert body["free"] == [
        {"start_time": "08:00:00", "end_time": "09:00:00"},
        {"start_time": "10:00:00", "end_time": "20:00:00"},
    ]


def test_list_my_bookings_filters_by_user():
    res1 = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    assert res1.status_code == 201
    res2 = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00", room_id=2), headers=auth(2, "user2")
    )
    assert res2.status_code == 201

    res_me = client.get("/api/v1/bookings/me", headers=auth())
    assert res_me.status_code == 200
    bookings_me = res_me.json()
    assert len(bookings_me) == 1
    assert all(b["booked_by"] == 1 for b in bookings_me)


def test_list_my_bookings_upcoming_and_past():
    keep = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth()).json()
    drop = client.post("/api/v1/bookings", json=booking_body("12:00:00", "13:00:00"), headers=auth()).json()
    client.post(f"/api/v1/bookings/{drop['id']}/cancel", json={"reason": "conflict"}, headers=auth())

    upcoming = client.get("/api/v1/bookings/me", params={"when": "upcoming"}, headers=auth()).json()
    past = client.get("/api/v1/bookings/me", params={"when": "past"}, headers=auth()).json()

    assert [b["id"] for b in upcoming] == [keep["id"]]
    assert [b["id"] for b in past] == [drop["id"]]


def test_other_users_booking_is_hidden_from_regular_user():
    booking_id = client.post(
        "/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth()
    ).json()["id"]

    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(2, "user2")).status_code == 403
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(10, "aud1", "auditor")).status_code == 200


def test_storage_failure_returns_503_with_generic_message(monkeypatch):
    def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("connection reset"))

    monkeypatch.setattr(Session, "commit", failing_commit)

    res = client.post("/api/v1/bookings", json=booking_body("10:00:00", "11:00:00"), headers=auth())
    assert res.status_code == 503
    body = res.json()
    assert body["service"] == "bookings"
    assert body["detail"] == "Could not save your changes, please try again"
    assert "connection reset" not in res.text

    monkeypatch.undo()
    res_occupied = client.get(
        "/api/v1/bookings/occupied", params={"room_id": 1, "date": "2025-06-01"}, headers=auth()
    )
    assert res_occupied.json() == []
