"""Event generation from recurring templates.

A template recurs ``weekly`` on a set of weekdays (0 = Sunday), ``monthly``
on a set of days of the month, or not at all (``none``), in which case the
caller supplies the dates. Dates are naive and venue-local throughout.
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .helpers import parse_date
from .model.db import Event, EventTemplate, EventTicket

log = logging.getLogger(__name__)

DEFAULT_TITLE_FORMAT = "{venue} Event"


def combine_date_and_time(day: date, hhmm: Optional[str]) -> Optional[datetime]:
    if not hhmm:
        return None
    parts = hhmm.split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        return datetime.combine(day, time(hours, minutes))
    except ValueError:
        return None


def format_date(day: date) -> str:
    # "May 3, 2025"
    return f"{day:%B} {day.day}, {day.year}"


def format_time(moment: datetime) -> str:
    # "8:30 PM"
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d} {'AM' if moment.hour < 12 else 'PM'}"


def format_event_title(fmt: Optional[str], venue: Optional[str] = None,
                       date: Optional[str] = None,
                       time: Optional[str] = None) -> str:
    result = fmt or DEFAULT_TITLE_FORMAT
    for key, value in (("venue", venue), ("date", date), ("time", time)):
        if value:
            result = result.replace("{" + key + "}", value)
    return result


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def _sunday_based(day: date) -> int:
    # python: Monday = 0; templates: Sunday = 0
    return (day.weekday() + 1) % 7


def _weekly(start: date, end: date, weekdays: Iterable[int]) -> list[date]:
    wanted = {int(d) for d in weekdays or ()}
    out = []
    day = start
    while day <= end:
        if _sunday_based(day) in wanted:
            out.append(day)
        day += timedelta(days=1)
    return out


def _monthly(start: date, end: date, days: Iterable[int]) -> list[date]:
    wanted = sorted({int(d) for d in days or ()})
    out = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        last = calendar.monthrange(year, month)[1]
        for d in wanted:
            # no clamping: the 31st does not happen in April
            if d > last:
                continue
            day = date(year, month, d)
            if start <= day <= end:
                out.append(day)
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return out


def calculate_event_dates(start, end, template,
                          custom_dates: Optional[list] = None) -> list[dict]:
    """Occurrences of ``template`` within [start, end], both inclusive."""
    start, end = _as_date(start), _as_date(end)
    t_start = _as_date(template.start_date)
    t_end = _as_date(template.end_date)
    if t_start and t_start > start:
        start = t_start
    if t_end and t_end < end:
        end = t_end
    if start > end:
        return []

    kind = template.recurrence_type or "none"
    if kind == "weekly":
        days = _weekly(start, end, template.recurring_days_of_week)
    elif kind == "monthly":
        dom = template.day_of_month
        if isinstance(dom, int):
            dom = [dom]
        days = _monthly(start, end, dom)
    else:
        days = sorted({_as_date(d) for d in custom_dates or ()})

    return [
        {
            "date": datetime.combine(day, time()),
            "start_time": combine_date_and_time(
                day, template.default_start_time
            ),
            "end_time": combine_date_and_time(day, template.default_end_time),
        }
        for day in days
    ]


async def event_exists(db: AsyncSession, template_id: str, when: datetime,
                       venue_id: Optional[str]) -> bool:
    stmt = select(Event.id).where(
        Event.template_id == template_id, Event.date == when
    )
    if venue_id is None:
        stmt = stmt.where(Event.venue_id.is_(None))
    else:
        stmt = stmt.where(Event.venue_id == venue_id)
    return (await db.scalar(stmt.limit(1))) is not None


async def generate_from_templates(
    db: AsyncSession,
    start,
    end,
    template_ids: Optional[list[str]] = None,
    preview_only: bool = False,
    custom_dates: Optional[list] = None,
    skip_existing: bool = False,
    fallback_start: Optional[str] = "00:00",
) -> list[dict]:
    """Plan (and unless preview_only, insert) events for the templates.

    Without template_ids every active template is used. A date whose start
    time cannot be determined falls back to ``fallback_start``, or is
    skipped when that is None.
    """
    stmt = select(EventTemplate).options(
        selectinload(EventTemplate.venue),
        selectinload(EventTemplate.region),
        selectinload(EventTemplate.tickets),
    )
    if template_ids:
        stmt = stmt.where(EventTemplate.id.in_(template_ids))
    else:
        stmt = stmt.where(EventTemplate.is_active.is_(True))
    templates = list((await db.execute(stmt)).scalars())

    planned = []
    for template in templates:
        venue_name = template.venue.name if template.venue else None
        dates = calculate_event_dates(start, end, template, custom_dates)
        log.info("template %r: %d candidate dates",
                 template.template_name, len(dates))
        for occ in dates:
            start_time = occ["start_time"]
            if start_time is None:
                start_time = combine_date_and_time(
                    occ["date"].date(), fallback_start
                )
            if start_time is None:
                log.info("skipping %s for %r: no start time",
                         occ["date"].date(), template.template_name)
                continue
            if skip_existing and await event_exists(
                db, template.id, occ["date"], template.venue_id
            ):
                continue
            planned.append({
                "event": {
                    "title": format_event_title(
                        template.default_title_format,
                        venue=venue_name or "Venue",
                        date=format_date(occ["date"]),
                        time=format_time(start_time),
                    ),
                    "description": template.default_description,
                    "date": occ["date"],
                    "startTime": start_time,
                    "endTime": occ["end_time"],
                    "venueId": template.venue_id,
                    "regionId": template.region_id,
                    "templateId": template.id,
                    "status": "SCHEDULED",
                    "usesDefaultPoster": True,
                },
                "tickets": [
                    {
                        "seatType": t.seat_type,
                        "price": t.default_price,
                        "capacity": t.default_capacity,
                        "description": t.default_description,
                        "soldCount": 0,
                    }
                    for t in template.tickets
                ],
                "venueName": venue_name,
                "regionName": template.region.name if template.region else None,
                "templateName": template.template_name,
            })

    if not preview_only and planned:
        for item in planned:
            ev = item["event"]
            event = Event(
                title=ev["title"],
                description=ev["description"],
                date=ev["date"],
                start_time=ev["startTime"],
                end_time=ev["endTime"],
                venue_id=ev["venueId"],
                region_id=ev["regionId"],
                template_id=ev["templateId"],
                status=ev["status"],
                uses_default_poster=True,
            )
            db.add(event)
            await db.flush()
            for t in item["tickets"]:
                db.add(EventTicket(
                    event_id=event.id,
                    seat_type=t["seatType"],
                    price=t["price"],
                    capacity=t["capacity"],
                    description=t["description"],
                    sold_count=0,
                ))
            item["event"]["id"] = event.id
        await db.commit()
        log.info("generated %d events from %d templates",
                 len(planned), len(templates))
    return planned


async def generate_upcoming_events(db: AsyncSession,
                                   look_ahead_days: int = 30) -> dict:
    """Cron entry point: fill the next ``look_ahead_days`` from today."""
    today = date.today()
    end = today + timedelta(days=look_ahead_days)
    active = await db.scalar(
        select(func.count(EventTemplate.id))
        .where(EventTemplate.is_active.is_(True))
    )
    log.info("cron: %d active templates, next %d days",
             active or 0, look_ahead_days)
    planned = []
    if active:
        planned = await generate_from_templates(
            db, today, end, skip_existing=True, fallback_start=None,
        )
    return {"generatedCount": len(planned), "templates": int(active or 0)}
