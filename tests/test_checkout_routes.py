from urllib.parse import parse_qs, urlparse

from sqlalchemy import func, select

from thaiboxinghub.model.db import Booking, Customer, EventTicket, Ticket

from .conftest import book, db_run


def _get(model, ident):
    return db_run(lambda db: db.get(model, ident))


def _tickets_of(booking_id):
    async def go(db):
        return await db.scalar(
            select(func.count()).select_from(Ticket)
            .where(Ticket.booking_id == booking_id)
        )
    return db_run(go)


def test_guest_booking_prices_server_side(client, event_setup):
    resp = book(client, event_setup, lines=[
        {"ticketId": event_setup["standard_id"], "quantity": 2},
        {"ticketId": event_setup["ringside_id"], "quantity": 1},
    ])
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    # discounted standard 1200 x 2 + ringside 2500
    assert body["totalAmount"] == 4900.0

    booking = _get(Booking, body["bookingId"])
    assert booking.payment_status == "PENDING"
    assert booking.event_title_snapshot == "Rajadamnern Fight Night"
    assert booking.venue_name_snapshot == "Rajadamnern Stadium"
    assert booking.region_name_snapshot == "Bangkok"
    assert {i["seatType"] for i in booking.booking_items_json} == {
        "Standard", "Ringside",
    }
    assert _tickets_of(booking.id) == 3
    assert _get(EventTicket, event_setup["ringside_id"]).sold_count == 1


def test_guest_booking_capacity(client, event_setup):
    line = {"ticketId": event_setup["ringside_id"], "quantity": 2}
    assert book(client, event_setup, lines=[line]).status_code == 200

    resp = book(client, event_setup, lines=[
        {"ticketId": event_setup["ringside_id"], "quantity": 1},
    ])
    assert resp.status_code == 400
    assert resp.json()["error"] == {
        "code": "BAD_REQUEST", "message": "Only 0 seats left for Ringside",
    }


def test_guest_booking_reuses_customer(client, event_setup):
    first = book(client, event_setup).json()
    second = book(client, event_setup).json()
    assert first["customerId"] == second["customerId"]


def test_guest_booking_rejects_bad_input(client, event_setup):
    resp = book(client, event_setup, lines=[
        {"ticketId": "nope", "quantity": 1},
    ])
    assert resp.status_code == 400
    resp = book(client, event_setup, email="not-an-email")
    assert resp.status_code == 422
    resp = client.post("/api/bookings", json={
        "eventId": "missing",
        "contactInfo": {"fullName": "A", "email": "a@example.com"},
        "tickets": [{"ticketId": "x", "quantity": 1}],
    })
    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Event not found"


def _external(client, event_id, **extra):
    body = {
        "externalReservationId": "EXT-1001",
        "eventId": event_id,
        "name": "Jane Doe",
        "email": "jane@example.com",
        "mobile": "0811111111",
        "eventName": "Rajadamnern Fight Night",
        "eventDate": "2025-05-03T19:00:00",
        "tickets": [{"type": "Ringside", "qty": 2}],
        "totalAmount": 5000,
    }
    body.update(extra)
    return client.post("/api/external-booking", json=body,
                       headers={"origin": "https://hub.test"})


def test_external_booking_chillpay(client, event_setup):
    resp = _external(client, event_setup["event_id"],
                     returnUrl="https://partner.test/done")
    assert resp.status_code == 200
    body = resp.json()
    assert body["externalId"] == "EXT-1001"
    pay = urlparse(body["paymentUrl"])
    assert pay.netloc == "hub.test"
    assert pay.path == "/checkout/credit-card"
    assert parse_qs(pay.query)["bookingId"] == [body["bookingId"]]
    assert body["paymentData"]["returnUrl"].startswith(
        "https://hub.test/api/checkout/chillpay/callback?externalReturnUrl="
    )

    booking = _get(Booking, body["bookingId"])
    assert booking.payment_order_no == "EXT-1001"
    assert booking.total_amount == 5000
    assert booking.customer_phone_snapshot == "0811111111"
    assert booking.booking_items_json == [{"type": "Ringside", "qty": 2}]
    assert _get(Customer, booking.customer_id).email == "jane@example.com"


def test_external_booking_modernpay_then_callback(client, event_setup):
    body = _external(client, event_setup["event_id"],
                     paymentMethod="ModernPay").json()
    assert "paymentUrl" not in body
    callback = body["paymentData"]["callbackUrl"]
    target = urlparse(callback)
    assert parse_qs(target.query)["source"] == ["modernpay"]

    resp = client.post(f"{target.path}?{target.query}", json={
        "status": "success", "transactionId": "MP-77", "bankCode": "SCB",
    })
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    booking = _get(Booking, body["bookingId"])
    assert booking.payment_status == "COMPLETED"
    assert booking.payment_transaction_id == "MP-77"
    assert booking.payment_method == "modernpay"


def test_external_booking_validation(client, event_setup):
    resp = _external(client, event_setup["event_id"], totalAmount=None)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required fields"
    resp = _external(client, "missing-event")
    assert resp.status_code == 404


def test_provider_callback_errors(client, event_setup):
    url = "/api/checkout/payment-callback"
    assert client.post(url, json={}).status_code == 400
    resp = client.post(url, params={"source": "other", "bookingId": "b"},
                       json={})
    assert resp.json()["error"] == "Unknown payment source: other"
    resp = client.post(url, params={"source": "modernpay", "bookingId": "b"},
                       content=b"not json",
                       headers={"content-type": "application/json"})
    assert resp.status_code == 400
    resp = client.post(url, params={"source": "modernpay", "bookingId": "b"},
                       json={"status": "success"})
    assert resp.status_code == 404


def test_provider_redirect_respects_completed(client, event_setup):
    booking_id = book(client, event_setup).json()["bookingId"]
    client.post("/api/checkout/payment-callback",
                params={"source": "modernpay", "bookingId": booking_id},
                json={"status": "0"})
    resp = client.get("/api/checkout/payment-callback",
                      params={"bookingId": booking_id, "status": "failed"},
                      follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("/checkout/payment-failed?")
    assert _get(Booking, booking_id).payment_status == "COMPLETED"
