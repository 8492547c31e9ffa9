from datetime import date, datetime
from types import SimpleNamespace

from sqlalchemy import func, select

from thaiboxinghub.model.db import (
    Event, EventTemplate, EventTemplateTicket, EventTicket,
)
from thaiboxinghub.recurring import (
    calculate_event_dates, combine_date_and_time, format_date,
    format_event_title, format_time, generate_from_templates,
    generate_upcoming_events,
)

from .conftest import db_run


def _template(**kw):
    base = dict(
        recurrence_type="none", recurring_days_of_week=None,
        day_of_month=None, default_start_time="19:00",
        default_end_time=None, start_date=None, end_date=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_weekly_uses_sunday_zero():
    # 2025-05-01 is a Thursday; 2 = Tuesday, 5 = Friday
    t = _template(recurrence_type="weekly", recurring_days_of_week=[2, 5])
    got = calculate_event_dates(date(2025, 5, 1), date(2025, 5, 14), t)
    assert [o["date"].date() for o in got] == [
        date(2025, 5, 2), date(2025, 5, 6), date(2025, 5, 9),
        date(2025, 5, 13),
    ]
    assert got[0]["start_time"] == datetime(2025, 5, 2, 19, 0)
    assert got[0]["end_time"] is None


def test_monthly_skips_missing_days():
    t = _template(recurrence_type="monthly", day_of_month=[31])
    got = calculate_event_dates(date(2025, 4, 1), date(2025, 6, 30), t)
    assert [o["date"].date() for o in got] == [date(2025, 5, 31)]


def test_template_validity_window_narrows_range():
    t = _template(
        recurrence_type="weekly", recurring_days_of_week=[0, 1, 2, 3, 4, 5, 6],
        start_date=datetime(2025, 5, 10), end_date=datetime(2025, 5, 12),
    )
    got = calculate_event_dates(date(2025, 5, 1), date(2025, 5, 31), t)
    assert [o["date"].day for o in got] == [10, 11, 12]


def test_window_outside_range_gives_nothing():
    t = _template(recurrence_type="weekly", recurring_days_of_week=[1],
                  end_date=datetime(2025, 4, 1))
    assert calculate_event_dates(date(2025, 5, 1), date(2025, 5, 31), t) == []


def test_none_recurrence_uses_custom_dates():
    t = _template(default_start_time=None)
    got = calculate_event_dates(
        date(2025, 5, 1), date(2025, 5, 31), t,
        custom_dates=["2025-05-20", date(2025, 5, 3), "2025-05-20"],
    )
    assert [o["date"].day for o in got] == [3, 20]
    assert got[0]["start_time"] is None


def test_title_and_time_formatting():
    assert format_date(date(2025, 5, 3)) == "May 3, 2025"
    assert format_time(datetime(2025, 5, 3, 20, 30)) == "8:30 PM"
    assert format_time(datetime(2025, 5, 3, 0, 5)) == "12:05 AM"
    assert format_event_title(
        "{venue} - {date} {time}", venue="Patong Stadium",
        date="May 3, 2025", time="8:30 PM",
    ) == "Patong Stadium - May 3, 2025 8:30 PM"
    assert format_event_title(None, venue="Patong") == "Patong Event"
    assert combine_date_and_time(date(2025, 5, 3), "25:99") is None
    assert combine_date_and_time(date(2025, 5, 3), "") is None


def _seed_template(event_setup, **kw):
    async def make(db):
        t = EventTemplate(
            template_name="Weekly Fights",
            venue_id=event_setup["venue_id"],
            region_id=event_setup["region_id"],
            default_title_format="{venue} - {date}",
            recurrence_type=kw.get("recurrence_type", "weekly"),
            recurring_days_of_week=kw.get("days", [0, 1, 2, 3, 4, 5, 6]),
            default_start_time=kw.get("start", "19:00"),
            is_active=True,
        )
        db.add(t)
        await db.flush()
        db.add(EventTemplateTicket(
            event_template_id=t.id, seat_type="Ringside",
            default_price=2000.0, default_capacity=50,
        ))
        await db.commit()
        return t.id
    return db_run(make)


def _count(model, *where):
    async def go(db):
        stmt = select(func.count()).select_from(model)
        for cond in where:
            stmt = stmt.where(cond)
        return await db.scalar(stmt)
    return db_run(go)


def test_preview_does_not_insert(event_setup):
    tid = _seed_template(event_setup)
    planned = db_run(lambda db: generate_from_templates(
        db, date(2025, 5, 1), date(2025, 5, 3), preview_only=True,
    ))
    assert len(planned) == 3
    assert planned[0]["event"]["title"] == "Rajadamnern Stadium - May 1, 2025"
    assert planned[0]["event"]["templateId"] == tid
    assert planned[0]["tickets"][0]["seatType"] == "Ringside"
    assert _count(Event, Event.template_id == tid) == 0


def test_generate_inserts_events_and_tickets(event_setup):
    tid = _seed_template(event_setup)
    planned = db_run(lambda db: generate_from_templates(
        db, date(2025, 5, 1), date(2025, 5, 3),
    ))
    assert all(item["event"]["id"] for item in planned)
    assert _count(Event, Event.template_id == tid) == 3
    ids = [item["event"]["id"] for item in planned]
    assert _count(EventTicket, EventTicket.event_id.in_(ids)) == 3


def test_cron_skips_existing_and_missing_start_times(event_setup):
    tid = _seed_template(event_setup)
    _seed_template(event_setup, start=None)

    first = db_run(lambda db: generate_upcoming_events(db, 6))
    # today .. today + 6 for the template with a start time only
    assert first == {"generatedCount": 7, "templates": 2}
    assert _count(Event, Event.template_id == tid) == 7

    again = db_run(lambda db: generate_upcoming_events(db, 6))
    assert again["generatedCount"] == 0
