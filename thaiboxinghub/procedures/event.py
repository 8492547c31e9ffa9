import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..errors import BadRequest, Conflict, NotFound
from ..model.db import Event, EventTicket, Region, Venue
from ..recurring import generate_from_templates
from ._listing import (
    IdIn, ListParams, apply_changes, columns_from, contains, delete_row,
    paginate,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "title": Event.title,
    "date": Event.date,
    "venue": Venue.name,
    "region": Region.name,
    "updatedAt": Event.updated_at,
}


class EventListParams(ListParams):
    sortField: Optional[str] = "updatedAt"


class TicketTypeIn(BaseModel):
    id: Optional[str] = None
    seatType: str = Field(min_length=1)
    price: float = Field(gt=0)
    capacity: int = Field(gt=0)
    description: Optional[str] = None
    discountedPrice: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)


class EventIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: datetime
    startTime: datetime
    endTime: Optional[datetime] = None
    venueId: Optional[str] = None
    regionId: Optional[str] = None
    status: str = "SCHEDULED"
    thumbnailUrl: Optional[str] = None
    imageUrl: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    usesDefaultPoster: bool = True
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None
    tickets: Optional[list[TicketTypeIn]] = None

    @model_validator(mode="after")
    def _times(self):
        if self.endTime is not None and self.endTime < self.startTime:
            raise ValueError("endTime must not be before startTime")
        return self


class EventUpdate(EventIn):
    id: str


class GenerateIn(BaseModel):
    startDate: date
    endDate: date
    templateIds: Optional[list[str]] = None
    previewOnly: bool = False
    customDates: Optional[list[date]] = None

    @model_validator(mode="after")
    def _range(self):
        if self.endDate < self.startDate:
            raise ValueError("endDate must not be before startDate")
        return self


def event_dict(event: Event, with_tickets: bool = False) -> dict:
    out = event.to_dict()
    out["venue"] = event.venue.to_dict() if event.venue else None
    out["region"] = event.region.to_dict() if event.region else None
    if with_tickets:
        out["ticketTypes"] = [t.to_dict() for t in event.ticket_types]
    return out


async def upcoming(db: AsyncSession, limit: int = 3,
                   region_id: Optional[str] = None) -> list[Event]:
    today = datetime.combine(date.today(), datetime.min.time())
    stmt = (
        select(Event)
        .options(selectinload(Event.venue), selectinload(Event.region))
        .where(Event.date >= today)
    )
    if region_id:
        stmt = stmt.where(Event.region_id == region_id)
    result = await db.execute(stmt.order_by(Event.date.asc()).limit(limit))
    return list(result.scalars())


async def list_events(db: AsyncSession, params: ListParams) -> dict:
    stmt = (
        select(Event)
        .outerjoin(Venue, Venue.id == Event.venue_id)
        .outerjoin(Region, Region.id == Event.region_id)
        .options(selectinload(Event.venue), selectinload(Event.region))
    )
    cond = contains(Event.title, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    return await paginate(db, stmt, params, SORT_COLUMNS, "updatedAt")


async def get_event(db: AsyncSession, event_id: str) -> Event:
    event = await db.scalar(
        select(Event)
        .options(
            selectinload(Event.venue),
            selectinload(Event.region),
            selectinload(Event.ticket_types),
        )
        .where(Event.id == event_id)
    )
    if event is None:
        raise NotFound("Event")
    return event


async def all_ids(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(Event.id).order_by(Event.updated_at.desc())
    )
    return list(result.scalars())


async def _check_refs(db: AsyncSession, data: EventIn) -> None:
    if data.venueId and await db.get(Venue, data.venueId) is None:
        raise BadRequest("Unknown venue")
    if data.regionId and await db.get(Region, data.regionId) is None:
        raise BadRequest("Unknown region")


def _ticket_row(event_id: str, t: TicketTypeIn) -> EventTicket:
    return EventTicket(
        event_id=event_id,
        seat_type=t.seatType.strip(),
        price=t.price,
        capacity=t.capacity,
        description=t.description,
        discounted_price=t.discountedPrice,
        cost=t.cost,
        sold_count=0,
    )


async def create_event(db: AsyncSession, data: EventIn) -> Event:
    await _check_refs(db, data)
    event = Event(**columns_from(Event, data.model_dump(exclude={"tickets"})))
    db.add(event)
    await db.flush()
    for t in data.tickets or ():
        db.add(_ticket_row(event.id, t))
    await db.commit()
    log.info("created event %s with %d ticket types",
             event.id, len(data.tickets or ()))
    return event


async def update_event(db: AsyncSession, data: EventUpdate) -> Event:
    """Update an event. A given ticket list is synced: rows with a known id
    are updated, new rows inserted, missing rows deleted.
    """
    event = await db.get(Event, data.id)
    if event is None:
        raise NotFound("Event")
    await _check_refs(db, data)
    apply_changes(event, columns_from(
        Event, data.model_dump(exclude={"id", "tickets"})
    ))
    if data.tickets is not None:
        existing = {
            t.id: t for t in (await db.execute(
                select(EventTicket).where(EventTicket.event_id == event.id)
            )).scalars()
        }
        keep = set()
        for t in data.tickets:
            row = existing.get(t.id) if t.id else None
            if row is None:
                db.add(_ticket_row(event.id, t))
                continue
            keep.add(row.id)
            row.seat_type = t.seatType.strip()
            row.price = t.price
            row.capacity = t.capacity
            row.description = t.description
            row.discounted_price = t.discountedPrice
            row.cost = t.cost
        stale = [tid for tid in existing if tid not in keep]
    else:
        stale = []
    try:
        # issued tickets restrict the delete
        if stale:
            await db.execute(
                delete(EventTicket).where(EventTicket.id.in_(stale))
            )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Ticket types with sold tickets cannot be removed")
    return event


async def generate(db: AsyncSession, data: GenerateIn) -> list[dict]:
    return await generate_from_templates(
        db,
        data.startDate,
        data.endDate,
        template_ids=data.templateIds,
        preview_only=data.previewOnly,
        custom_dates=data.customDates,
    )


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/event", tags=["event"])


@router.get("/getUpcoming")
async def rpc_get_upcoming(limit: int = Query(3, ge=1, le=10),
                           db: AsyncSession = Depends(get_db)):
    return [event_dict(e) for e in await upcoming(db, limit)]


@router.get("/list")
async def rpc_list(params: EventListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    page = await list_events(db, params)
    return {
        "items": [event_dict(e) for e in page["items"]],
        "totalCount": page["meta"]["totalCount"],
        "pageCount": page["meta"]["pageCount"],
        "currentPage": page["meta"]["page"],
    }


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return event_dict(await get_event(db, id), with_tickets=True)


@router.get("/getAllIds")
async def rpc_get_all_ids(db: AsyncSession = Depends(get_db)):
    return await all_ids(db)


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: EventIn, db: AsyncSession = Depends(get_db)):
    return {"id": (await create_event(db, data)).id}


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: EventUpdate, db: AsyncSession = Depends(get_db)):
    return {"id": (await update_event(db, data)).id}


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Event, data.id)
    return {"success": True}


@router.post("/generateEventsFromTemplates",
             dependencies=[Depends(require_admin)])
async def rpc_generate(data: GenerateIn, db: AsyncSession = Depends(get_db)):
    return await generate(db, data)
