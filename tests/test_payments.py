from datetime import timedelta

from bson import ObjectId

from billing import derive_payment
from conftest import auth_headers, make_booking, make_coach, make_user
from database import create_document, utcnow


def coach_session(db):
    user_id = make_user(db, email="sarah@mail.com", role="coach", name="Sarah Johnson")
    coach_id = make_coach(db, userId=user_id)
    return coach_id, auth_headers(user_id=user_id, email="sarah@mail.com", role="coach")


def make_payment(db, coach_id, amount=15000, status="completed", processed_at=None, booking_id=None,
                 user_email="client@careercoach.io"):
    payment = derive_payment({
        "bookingId": booking_id or str(ObjectId()),
        "coachId": coach_id,
        "userId": user_email,
        "amount": amount,
        "status": status,
        "paymentMethod": "stripe",
        "processedAt": processed_at,
    }, now=utcnow().replace(microsecond=0))
    return create_document(db, "payment", payment)


def test_coach_earnings(client, db):
    coach_id, headers = coach_session(db)
    make_user(db, email="client@careercoach.io")
    make_payment(db, coach_id, amount=15000)
    make_payment(db, coach_id, amount=7500)
    make_payment(db, coach_id, amount=9999, status="pending")
    make_payment(db, coach_id, amount=20000, processed_at=utcnow().replace(microsecond=0) - timedelta(days=400))

    res = client.get("/api/payments/coach", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["totalEarnings"] == 13500 + 6750 + 18000
    assert sum(m["earnings"] for m in body["monthlyEarnings"]) == 13500 + 6750
    assert len(body["recentPayments"]) == 3
    assert body["recentPayments"][0]["clientName"] == "Casey Client"


def test_coach_earnings_requires_coach(client):
    assert client.get("/api/payments/coach", headers=auth_headers()).status_code == 403
    assert client.get("/api/payments/coach", headers=auth_headers(role="coach")).status_code == 404


def test_coach_earnings_fallback(down_client):
    res = down_client.get("/api/payments/coach", headers=auth_headers(role="coach"))
    assert res.status_code == 200
    assert res.headers["X-Degraded-Mode"] == "database-unavailable"
    assert res.json()["totalEarnings"] == 245000


def test_admin_completes_payment_and_confirms_booking(client, db):
    coach_id = make_coach(db)
    booking_id = make_booking(db, coach_id)
    payment_id = make_payment(db, coach_id, status="pending", booking_id=booking_id)

    res = client.patch(f"/api/payments/{payment_id}", json={"status": "completed", "externalReference": "ch_123"},
                       headers=auth_headers(role="admin"))
    assert res.status_code == 200
    payment = res.json()
    assert payment["status"] == "completed"
    assert payment["processedAt"] is not None
    assert payment["externalReference"] == "ch_123"
    booking = db["booking"].find_one({"_id": ObjectId(booking_id)})
    assert booking["status"] == "confirmed"
    assert booking["paymentId"] == payment_id


def test_amount_edit_recomputes_derived_fields(client, db):
    coach_id = make_coach(db)
    payment_id = make_payment(db, coach_id, status="pending")
    res = client.patch(f"/api/payments/{payment_id}", json={"amount": 12345}, headers=auth_headers(role="admin"))
    assert res.status_code == 200
    assert res.json()["platformFee"] == 1235
    assert res.json()["coachEarnings"] == 11110


def test_amount_edit_rejected_on_completed_payment(client, db):
    coach_id = make_coach(db)
    payment_id = make_payment(db, coach_id, status="completed")
    res = client.patch(f"/api/payments/{payment_id}", json={"amount": 100}, headers=auth_headers(role="admin"))
    assert res.status_code == 409
    assert db["payment"].find_one({"_id": ObjectId(payment_id)})["amount"] == 15000


def test_payment_update_requires_admin(client, db):
    coach_id = make_coach(db)
    payment_id = make_payment(db, coach_id, status="pending")
    res = client.patch(f"/api/payments/{payment_id}", json={"status": "completed"}, headers=auth_headers(role="coach"))
    assert res.status_code == 403
    assert client.patch(f"/api/payments/{ObjectId()}", json={}, headers=auth_headers(role="admin")).status_code == 404
