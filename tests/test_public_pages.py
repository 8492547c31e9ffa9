from datetime import date, datetime, timedelta

from thaiboxinghub import config
from thaiboxinghub.model.db import (
    Event, EventTemplate, EventTemplateTicket, Post, TrainingCourse,
)

from .conftest import db_run


def test_home_and_event_list(client, event_setup):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Rajadamnern Fight Night" in resp.text

    resp = client.get("/events")
    assert resp.status_code == 200
    assert f"/events/{event_setup['event_id']}" in resp.text


def test_event_page_shows_prices_and_notice(client, event_setup):
    resp = client.get(f"/events/{event_setup['event_id']}",
                      params={"payment": "success"})
    assert resp.status_code == 200
    assert "฿2,500.00" in resp.text
    assert "฿1,200.00" in resp.text
    assert "Payment received" in resp.text


def test_missing_pages_are_404(client):
    resp = client.get("/events/missing")
    assert resp.status_code == 404
    assert "Event not found" in resp.text
    assert client.get("/region/atlantis").status_code == 404
    assert client.get("/courses/missing").status_code == 404
    assert client.get("/blog/missing").status_code == 404


def test_region_page(client, event_setup):
    resp = client.get("/region/bangkok")
    assert resp.status_code == 200
    assert "Rajadamnern Fight Night" in resp.text


def _courses(event_setup, active=(True, True, False)):
    async def make(db):
        for n, is_active in enumerate(active):
            db.add(TrainingCourse(
                title=f"Course {n}", slug=f"course-{n}", price=1000 + n,
                region_id=event_setup["region_id"], is_active=is_active,
            ))
        await db.commit()
    db_run(make)


def test_courses_pages(client, event_setup):
    _courses(event_setup)
    resp = client.get("/courses")
    assert resp.status_code == 200
    assert "Course 0" in resp.text
    assert "Course 2" not in resp.text
    assert client.get("/courses/course-1").status_code == 200
    # inactive courses are hidden
    assert client.get("/courses/course-2").status_code == 404


def test_blog_shows_published_only(client):
    async def make(db):
        db.add(Post(title="Live Post", slug="live-post", content="hello",
                    status="PUBLISHED", published_at=datetime.now()))
        db.add(Post(title="Draft Post", slug="draft-post", content="wip"))
        await db.commit()
    db_run(make)

    resp = client.get("/blog")
    assert "Live Post" in resp.text
    assert "Draft Post" not in resp.text
    assert client.get("/blog/live-post").status_code == 200
    assert client.get("/blog/draft-post").status_code == 404


def test_confirmation_pages(client):
    resp = client.get("/checkout/confirmation", params={
        "status": "success", "bookingId": "b-42", "paymentMethod": "paypal",
    })
    assert "Payment successful" in resp.text
    assert "b-42" in resp.text
    assert "Paid with PayPal" in resp.text

    resp = client.get("/checkout/confirmation", params={"status": "weird"})
    assert "Something went wrong" in resp.text
    assert "Payment failed" in client.get("/checkout/payment-failed").text
    assert "Payment successful" in client.get(
        "/checkout/payment-success"
    ).text


def test_credit_card_page_offers_paypal_when_configured(client,
                                                        paypal_config):
    resp = client.get("/checkout/credit-card",
                      params={"bookingId": "b1", "amount": 1500})
    assert resp.status_code == 200
    assert "฿1,500.00" in resp.text
    assert "Pay with PayPal" in resp.text


def test_credit_card_page_without_paypal(client):
    resp = client.get("/checkout/credit-card", params={"bookingId": "b1"})
    assert "Pay with PayPal" not in resp.text


def _template(event_setup):
    async def make(db):
        t = EventTemplate(
            template_name="Daily", venue_id=event_setup["venue_id"],
            region_id=event_setup["region_id"], recurrence_type="weekly",
            recurring_days_of_week=[0, 1, 2, 3, 4, 5, 6],
            default_start_time="18:00", is_active=True,
        )
        db.add(t)
        await db.flush()
        db.add(EventTemplateTicket(event_template_id=t.id, seat_type="GA",
                                   default_price=500, default_capacity=10))
        await db.commit()
    db_run(make)


def test_cron_requires_secret(client, monkeypatch):
    resp = client.get("/api/cron/generate-events")
    assert resp.status_code == 500
    assert resp.json()["success"] is False

    monkeypatch.setattr(config, "CRON_SECRET", "s3cret")
    assert client.get("/api/cron/generate-events").status_code == 401
    resp = client.get("/api/cron/generate-events",
                      headers={"Authorization": "Bearer wrong"})
    assert resp.status_code == 401


def test_cron_generates_events(client, event_setup, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", "s3cret")
    _template(event_setup)
    auth = {"Authorization": "Bearer s3cret"}

    resp = client.get("/api/cron/generate-events", params={"days": 2},
                      headers=auth)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["generatedCount"] == 3
    assert body["templates"] == 1
    assert body["message"] == (
        "Successfully generated 3 events from 1 templates"
    )

    async def first_generated(db):
        from sqlalchemy import select
        return await db.scalar(
            select(Event).where(Event.template_id.is_not(None))
            .order_by(Event.date)
        )
    ev = db_run(first_generated)
    assert ev.date.date() == date.today()
    assert ev.start_time == datetime.combine(date.today(),
                                             datetime.min.time()) + \
        timedelta(hours=18)

    again = client.get("/api/cron/generate-events", params={"days": 2},
                       headers=auth).json()
    assert again["generatedCount"] == 0
