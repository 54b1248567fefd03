from datetime import timedelta

from bson import ObjectId

from conftest import auth_headers, make_booking, make_coach, make_user
from database import utcnow


def slot(days=3, hour_offset=0):
    start = (utcnow() + timedelta(days=days)).replace(minute=0, second=0, microsecond=0)
    return start + timedelta(hours=hour_offset)


def book(client, coach_id, when, duration=60, headers=None):
    return client.post(
        "/api/bookings",
        json={"coachId": coach_id, "dateTime": when.isoformat(), "duration": duration, "notes": "Promotion prep"},
        headers=headers or auth_headers(),
    )


def test_create_booking_with_payment(client, db):
    coach_id = make_coach(db, hourlyRate=150)
    res = book(client, coach_id, slot(), duration=30)
    assert res.status_code == 201
    body = res.json()
    booking, payment = body["booking"], body["payment"]
    assert booking["status"] == "pending"
    assert booking["userId"] == "client@careercoach.io"
    assert booking["totalAmount"] == 7500
    assert booking["paymentId"] == payment["id"]
    assert payment["bookingId"] == booking["id"]
    assert payment["status"] == "pending"
    assert payment["platformFee"] == 750
    assert payment["coachEarnings"] == 6750


def test_booking_requires_session(client, db):
    coach_id = make_coach(db)
    res = client.post("/api/bookings", json={"coachId": coach_id, "dateTime": slot().isoformat(), "duration": 60})
    assert res.status_code == 401


def test_booking_validation(client, db):
    coach_id = make_coach(db)
    assert book(client, coach_id, slot(), duration=45).status_code == 400
    assert book(client, coach_id, slot(days=-1)).status_code == 400
    assert book(client, "bad-id", slot()).status_code == 400
    assert book(client, str(ObjectId()), slot()).status_code == 404


def test_overlapping_booking_is_rejected(client, db):
    coach_id = make_coach(db)
    start = slot()
    assert book(client, coach_id, start).status_code == 201
    assert book(client, coach_id, start).status_code == 409
    assert book(client, coach_id, start + timedelta(minutes=30), duration=30).status_code == 409
    assert book(client, coach_id, start + timedelta(hours=1)).status_code == 201


def test_stored_booking_without_duration_still_blocks_its_slot(client, db):
    coach_id = make_coach(db)
    booking_id = make_booking(db, coach_id, starts_in=timedelta(days=3))
    db["booking"].update_one({"_id": ObjectId(booking_id)}, {"$set": {"duration": None}})
    start = db["booking"].find_one({"_id": ObjectId(booking_id)})["dateTime"]
    assert book(client, coach_id, start).status_code == 409
    assert book(client, coach_id, start + timedelta(minutes=30), duration=30).status_code == 409
    assert book(client, coach_id, start + timedelta(hours=1)).status_code == 201


def test_cancelled_booking_frees_the_slot(client, db):
    coach_id = make_coach(db)
    start = slot()
    booking_id = book(client, coach_id, start).json()["booking"]["id"]
    res = client.patch(f"/api/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=auth_headers())
    assert res.status_code == 200
    assert book(client, coach_id, start).status_code == 201


def test_user_bookings(client, db):
    coach_id = make_coach(db)
    make_booking(db, coach_id, status="confirmed")
    make_booking(db, coach_id, status="completed", starts_in=timedelta(days=-3))
    make_booking(db, coach_id, user_email="other@mail.com")

    res = client.get("/api/bookings/user", headers=auth_headers())
    assert res.status_code == 200
    body = res.json()
    assert body["totalCompleted"] == 1
    assert len(body["bookings"]) == 1
    assert body["bookings"][0]["coach"]["name"] == "Sarah Johnson"


def test_user_bookings_requires_session(client):
    assert client.get("/api/bookings/user").status_code == 401


def test_user_bookings_drops_malformed_records(client, db, caplog):
    coach_id = make_coach(db)
    make_booking(db, coach_id)
    bad_id = make_booking(db, str(ObjectId()))
    db["booking"].insert_one({"userId": "client@careercoach.io", "coachId": coach_id, "status": "pending",
                              "dateTime": slot(), "duration": 45, "totalAmount": 1})

    with caplog.at_level("WARNING", logger="careercoach.api"):
        body = client.get("/api/bookings/user", headers=auth_headers()).json()
    assert len(body["bookings"]) == 1
    assert bad_id in caplog.text


def test_user_bookings_fallback(down_client):
    res = down_client.get("/api/bookings/user", headers=auth_headers())
    assert res.status_code == 200
    assert res.headers["X-Degraded-Mode"] == "database-unavailable"
    assert res.json()["totalCompleted"] == 3


def coach_session(db, email="sarah@mail.com"):
    user_id = make_user(db, email=email, role="coach", name="Sarah Johnson")
    coach_id = make_coach(db, userId=user_id)
    return coach_id, auth_headers(user_id=user_id, email=email, name="Sarah Johnson", role="coach")


def test_coach_bookings(client, db):
    coach_id, headers = coach_session(db)
    make_user(db, email="client@careercoach.io")
    make_booking(db, coach_id)

    res = client.get("/api/bookings/coach", headers=headers)
    assert res.status_code == 200
    bookings = res.json()["bookings"]
    assert len(bookings) == 1
    assert bookings[0]["client"]["name"] == "Casey Client"
    assert bookings[0]["client"]["email"] == "client@careercoach.io"


def test_coach_bookings_needs_profile(client):
    assert client.get("/api/bookings/coach", headers=auth_headers(role="coach")).status_code == 404
    assert client.get("/api/bookings/coach", headers=auth_headers()).status_code == 403


def test_booked_slots(client, db):
    coach_id = make_coach(db)
    make_booking(db, coach_id, status="confirmed")
    make_booking(db, coach_id, status="cancelled", starts_in=timedelta(days=4))
    make_booking(db, coach_id, status="pending", starts_in=timedelta(days=-1))

    res = client.get("/api/bookings/slots", params={"coachId": coach_id}, headers=auth_headers())
    assert res.status_code == 200
    slots = res.json()["bookedSlots"]
    assert len(slots) == 1
    assert slots[0]["duration"] == 60


def test_coach_moves_booking_through_lifecycle(client, db):
    coach_id, headers = coach_session(db)
    booking_id = make_booking(db, coach_id)
    url = f"/api/bookings/{booking_id}/status"

    res = client.patch(url, json={"status": "confirmed", "videoLink": "https://meet.google.com/abc"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["videoLink"] == "https://meet.google.com/abc"
    assert client.patch(url, json={"status": "completed"}, headers=headers).json()["status"] == "completed"
    assert client.patch(url, json={"status": "completed"}, headers=headers).status_code == 200
    assert client.patch(url, json={"status": "cancelled"}, headers=headers).status_code == 409


def test_status_change_permissions(client, db):
    coach_id = make_coach(db)
    booking_id = make_booking(db, coach_id)
    url = f"/api/bookings/{booking_id}/status"

    assert client.patch(url, json={"status": "confirmed"}, headers=auth_headers()).status_code == 403
    assert client.patch(url, json={"status": "cancelled"}, headers=auth_headers(email="other@mail.com")).status_code == 403
    _, other_coach = coach_session(db, email="other.coach@mail.com")
    assert client.patch(url, json={"status": "confirmed"}, headers=other_coach).status_code == 403
    assert client.patch(url, json={"status": "completed"}, headers=auth_headers(role="admin")).status_code == 409
    assert client.patch(url, json={"status": "confirmed"}, headers=auth_headers(role="admin")).status_code == 200


def corporate_account(db, admin_id, employees):
    db["corporateaccount"].insert_one({"adminUserId": admin_id, "companyName": "Acme", "isActive": True,
                                       "employees": employees, "credits": {"total": 10, "used": 0, "remaining": 10}})


def test_corporate_bookings_list_employees_only(client, db):
    corporate_account(db, "admin-1", ["dana@acme.io", "eli@acme.io"])
    make_user(db, email="dana@acme.io", name="Dana Park")
    coach_id = make_coach(db)
    make_booking(db, coach_id, user_email="dana@acme.io", starts_in=timedelta(days=1))
    make_booking(db, coach_id, user_email="eli@acme.io", starts_in=timedelta(days=2), status="confirmed")
    make_booking(db, coach_id, user_email="outsider@mail.com", starts_in=timedelta(days=3))

    res = client.get("/api/bookings/corporate", headers=auth_headers(user_id="admin-1", role="admin"))
    assert res.status_code == 200
    body = res.json()
    assert [b["employee"]["email"] for b in body["bookings"]] == ["eli@acme.io", "dana@acme.io"]
    assert body["bookings"][1]["employee"]["name"] == "Dana Park"
    assert body["bookings"][0]["employee"]["name"] == "Unknown Employee"
    assert body["bookings"][0]["coach"]["name"] == "Sarah Johnson"
    assert body["pagination"]["totalBookings"] == 2


def test_corporate_bookings_pagination(client, db):
    corporate_account(db, "admin-1", ["dana@acme.io"])
    coach_id = make_coach(db)
    for day in range(1, 4):
        make_booking(db, coach_id, user_email="dana@acme.io", starts_in=timedelta(days=day))

    res = client.get("/api/bookings/corporate", params={"page": 2, "limit": 2},
                     headers=auth_headers(user_id="admin-1", role="admin"))
    body = res.json()
    assert len(body["bookings"]) == 1
    assert body["pagination"] == {
        "currentPage": 2,
        "totalPages": 2,
        "totalBookings": 3,
        "hasNextPage": False,
        "hasPrevPage": True,
    }


def test_corporate_bookings_access(client):
    assert client.get("/api/bookings/corporate", headers=auth_headers(role="admin")).status_code == 404
    assert client.get("/api/bookings/corporate", headers=auth_headers(role="client")).status_code == 403


def test_corporate_bookings_fallback(down_client):
    res = down_client.get("/api/bookings/corporate", headers=auth_headers(role="admin"))
    assert res.status_code == 200
    assert res.headers["X-Degraded-Mode"] == "database-unavailable"
    assert res.json()["bookings"][0]["employee"]["email"] == "john.doe@techcorp.io"
