import json
from urllib.parse import parse_qs, urlparse

import httpx

from thaiboxinghub.model.db import Booking, Customer
from thaiboxinghub.payments.paypal import PayPalClient, capture_details

from .conftest import book, db_run

TOKEN = httpx.Response(200, json={"access_token": "A21AA-token"})


def _order(req):
    body = json.loads(req.content)
    unit = body["purchase_units"][0]
    return httpx.Response(201, json={
        "id": "5O190127TN364715T",
        "status": "CREATED",
        "echo": unit,
        "links": [
            {"rel": "self", "href": "https://api.paypal.test/v2/x"},
            {"rel": "approve", "href": "https://paypal.test/checkoutnow?token=5O1"},
        ],
    })


def _capture(booking_id, status="COMPLETED"):
    return httpx.Response(201, json={
        "id": "5O190127TN364715T",
        "status": status,
        "purchase_units": [{
            "reference_id": booking_id,
            "payments": {"captures": [{"id": "3C679366HH908993F"}]},
        }],
    })


def _initiate(client, booking_id, amount=2400):
    return client.post("/api/checkout/paypal", json={
        "bookingId": booking_id, "amount": amount, "email": "new@example.com",
        "phone": "0899999999", "customerName": "Somchai J.",
        "eventTitle": "Rajadamnern Fight Night",
    })


def test_capture_details_and_approval_url():
    capture = _capture("b1").json()
    assert capture_details(capture) == ("b1", "3C679366HH908993F")
    assert capture_details({}) == (None, None)
    assert PayPalClient.approval_url(
        {"links": [{"rel": "approve", "href": "u"}]}
    ) == "u"


def test_initiate_creates_order(client, gateway, paypal_config, event_setup):
    gateway.routes["/v1/oauth2/token"] = TOKEN
    gateway.routes["/v2/checkout/orders"] = _order
    booking_id = book(client, event_setup).json()["bookingId"]

    resp = _initiate(client, booking_id)
    assert resp.status_code == 200
    assert resp.json() == {
        "paymentUrl": "https://paypal.test/checkoutnow?token=5O1"
    }

    token_req, order_req = gateway.requests
    assert token_req.headers["authorization"].startswith("Basic ")
    assert order_req.headers["authorization"] == "Bearer A21AA-token"
    unit = json.loads(order_req.content)["purchase_units"][0]
    assert unit["reference_id"] == booking_id
    assert unit["amount"] == {"currency_code": "THB", "value": "2400.00"}

    booking = db_run(lambda db: db.get(Booking, booking_id))
    assert booking.payment_status == "PROCESSING"
    assert unit["custom_id"] == booking.payment_order_no
    assert booking.payment_order_no.startswith("PP")
    assert booking.customer_email_snapshot == "new@example.com"
    customer = db_run(lambda db: db.get(Customer, booking.customer_id))
    assert customer.name == "Somchai J."


def test_initiate_token_failure(client, gateway, paypal_config, event_setup):
    gateway.routes["/v1/oauth2/token"] = httpx.Response(401, json={})
    booking_id = book(client, event_setup).json()["bookingId"]
    resp = _initiate(client, booking_id)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to process payment request"


def test_initiate_unknown_booking(client, gateway, paypal_config):
    assert _initiate(client, "missing").status_code == 404


def test_initiate_without_config(client, event_setup):
    booking_id = book(client, event_setup).json()["bookingId"]
    assert _initiate(client, booking_id).status_code == 500


def test_callback_captures_and_completes(client, gateway, paypal_config,
                                         event_setup):
    booking_id = book(client, event_setup).json()["bookingId"]
    gateway.routes["/v1/oauth2/token"] = TOKEN
    gateway.routes["/capture"] = _capture(booking_id)

    resp = client.get("/api/checkout/paypal/callback",
                      params={"token": "5O190127TN364715T"},
                      follow_redirects=False)
    assert resp.status_code == 302
    query = parse_qs(urlparse(resp.headers["location"]).query)
    assert query["status"] == ["success"]
    assert query["paymentMethod"] == ["paypal"]
    assert query["bookingId"] == [booking_id]

    booking = db_run(lambda db: db.get(Booking, booking_id))
    assert booking.payment_status == "COMPLETED"
    assert booking.payment_transaction_id == "3C679366HH908993F"
    assert booking.payment_method == "paypal"


def test_callback_not_completed(client, gateway, paypal_config, event_setup):
    booking_id = book(client, event_setup).json()["bookingId"]
    gateway.routes["/v1/oauth2/token"] = TOKEN
    gateway.routes["/capture"] = _capture(booking_id, status="DECLINED")
    resp = client.get("/api/checkout/paypal/callback",
                      params={"token": "T"}, follow_redirects=False)
    assert parse_qs(urlparse(resp.headers["location"]).query)["status"] == [
        "failed"
    ]
    booking = db_run(lambda db: db.get(Booking, booking_id))
    assert booking.payment_status == "FAILED"


def test_callback_errors(client, gateway, paypal_config):
    resp = client.get("/api/checkout/paypal/callback", follow_redirects=False)
    assert parse_qs(urlparse(resp.headers["location"]).query)["status"] == [
        "error"
    ]
    gateway.routes["/v1/oauth2/token"] = TOKEN
    gateway.routes["/capture"] = httpx.Response(422, json={})
    resp = client.get("/api/checkout/paypal/callback",
                      params={"token": "T"}, follow_redirects=False)
    query = parse_qs(urlparse(resp.headers["location"]).query)
    assert query["status"] == ["error"]
    assert query["message"] == ["Payment processing failed"]


def test_initiate_charges_booking_total(client, gateway, paypal_config,
                                        event_setup):
    gateway.routes["/v1/oauth2/token"] = TOKEN
    gateway.routes["/v2/checkout/orders"] = _order
    booking_id = book(client, event_setup).json()["bookingId"]

    resp = _initiate(client, booking_id, amount=1)
    assert resp.status_code == 200
    unit = json.loads(gateway.requests[1].content)["purchase_units"][0]
    assert unit["amount"]["value"] == "2400.00"
