import asyncio
import os
import tempfile
from datetime import datetime, timedelta

_TMP = tempfile.mkdtemp(prefix="thaiboxinghub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/test.db"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "supasecret"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from thaiboxinghub import config  # noqa: E402
from thaiboxinghub.deps import SessionAsync, engine  # noqa: E402
from thaiboxinghub.model.db import (  # noqa: E402
    Base, Event, EventTicket, Region, Venue,
)


async def _reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def db_run(fn):
    """Run ``await fn(session)`` on a fresh session and return its result."""
    async def go():
        async with SessionAsync() as db:
            return await fn(db)
    return asyncio.run(go())


@pytest.fixture(autouse=True)
def fresh_db():
    asyncio.run(_reset_schema())
    yield


@pytest.fixture
def client():
    from thaiboxinghub.server import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin(client):
    resp = client.post(
        "/admin/login",
        data={"username": "admin", "password": "supasecret", "next": "/admin"},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    return client


class GatewayStub:
    """Records outgoing requests and answers them from ``routes``.

    ``routes`` maps a URL path suffix to an httpx.Response or a callable
    taking the request.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, answer in self.routes.items():
            if request.url.path.endswith(suffix):
                return answer(request) if callable(answer) else answer
        return httpx.Response(404, json={"error": "no stub"})


@pytest.fixture
def gateway(client):
    stub = GatewayStub()
    client.app.state.http = httpx.AsyncClient(
        transport=httpx.MockTransport(stub)
    )
    return stub


@pytest.fixture
def chillpay_config(monkeypatch):
    monkeypatch.setattr(config, "CHILLPAY_MERCHANT_CODE", "M030000")
    monkeypatch.setattr(config, "CHILLPAY_API_KEY", "api-key-123")
    monkeypatch.setattr(config, "CHILLPAY_MD5_SECRET", "md5-secret-xyz")
    monkeypatch.setattr(
        config, "CHILLPAY_API_ENDPOINT",
        "https://sandbox.chillpay.test/api/v2/Payment/",
    )


@pytest.fixture
def paypal_config(monkeypatch):
    monkeypatch.setattr(config, "PAYPAL_CLIENT_ID", "client-id")
    monkeypatch.setattr(config, "PAYPAL_SECRET", "client-secret")
    monkeypatch.setattr(config, "PAYPAL_API_URL", "https://api.paypal.test")


@pytest.fixture
def event_setup():
    """A region, a venue and an event two weeks out with two seat types."""
    async def make(db):
        region = Region(name="Bangkok", slug="bangkok")
        db.add(region)
        await db.flush()
        venue = Venue(name="Rajadamnern Stadium", address="1 Ratchadamnoen",
                      region_id=region.id)
        db.add(venue)
        await db.flush()
        when = (datetime.now() + timedelta(days=14)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        event = Event(
            title="Rajadamnern Fight Night", date=when,
            start_time=when.replace(hour=19), venue_id=venue.id,
            region_id=region.id,
        )
        db.add(event)
        await db.flush()
        ringside = EventTicket(event_id=event.id, seat_type="Ringside",
                               price=2500.0, capacity=2)
        standard = EventTicket(event_id=event.id, seat_type="Standard",
                               price=1500.0, discounted_price=1200.0,
                               capacity=100)
        db.add_all([ringside, standard])
        await db.commit()
        return {
            "region_id": region.id,
            "venue_id": venue.id,
            "event_id": event.id,
            "ringside_id": ringside.id,
            "standard_id": standard.id,
        }
    return db_run(make)


def book(client, event_setup, lines=None, email="somchai@example.com"):
    lines = lines or [{"ticketId": event_setup["standard_id"], "quantity": 2}]
    resp = client.post("/api/bookings", json={
        "eventId": event_setup["event_id"],
        "contactInfo": {
            "fullName": "Somchai Jaidee",
            "email": email,
            "phone": "0812345678",
        },
        "tickets": lines,
    })
    return resp
