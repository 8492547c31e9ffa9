import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import NotFound
from ..model.db import (
    Booking, Customer, Event, EventTicket, Region, Ticket, Venue,
)
from ._listing import ListParams, get_or_404, paginate

log = logging.getLogger(__name__)

TicketStatus = Literal["ACTIVE", "USED", "CANCELLED"]

SORT_COLUMNS = {
    "createdAt": Ticket.created_at,
    "status": Ticket.status,
    "eventTitle": Event.title,
    "customerName": Customer.name,
}


class TicketListParams(ListParams):
    sortField: Optional[str] = "createdAt"
    status: Optional[TicketStatus] = None
    eventId: Optional[str] = None


class TicketStatusIn(BaseModel):
    id: str
    status: TicketStatus


def _joined():
    return (
        select(Ticket, Booking, Customer, Event, EventTicket, Venue, Region)
        .outerjoin(Booking, Booking.id == Ticket.booking_id)
        .outerjoin(Customer, Customer.id == Booking.customer_id)
        .outerjoin(Event, Event.id == Ticket.event_id)
        .outerjoin(EventTicket, EventTicket.id == Ticket.event_detail_id)
        .outerjoin(Venue, Venue.id == Event.venue_id)
        .outerjoin(Region, Region.id == Event.region_id)
    )


def _pick(row, *fields) -> Optional[dict]:
    if row is None:
        return None
    data = row.to_dict()
    return {f: data[f] for f in fields}


def ticket_row_dict(row, detailed: bool = False) -> dict:
    ticket, booking, customer, event, event_ticket, venue, region = row
    out = _pick(ticket, "id", "status", "createdAt", "updatedAt",
                "eventId", "bookingId")
    booking_fields = ["id", "totalAmount", "paymentStatus"]
    event_fields = ["id", "title", "date"]
    ticket_fields = ["id", "seatType", "price"]
    venue_fields = ["id", "name"]
    if detailed:
        booking_fields.append("createdAt")
        event_fields += ["startTime", "endTime"]
        ticket_fields.append("description")
        venue_fields.append("address")
    out["booking"] = _pick(booking, *booking_fields)
    out["customer"] = _pick(customer, "id", "name", "email", "phone")
    out["event"] = _pick(event, *event_fields)
    out["eventTicket"] = _pick(event_ticket, *ticket_fields)
    out["venue"] = _pick(venue, *venue_fields)
    out["region"] = _pick(region, "id", "name")
    return out


async def list_tickets(db: AsyncSession, params: TicketListParams) -> dict:
    stmt = _joined()
    if params.query and params.query.strip():
        needle = f"%{params.query.strip().lower()}%"
        stmt = stmt.where(or_(
            func.lower(Customer.name).like(needle),
            func.lower(Event.title).like(needle),
            func.lower(Ticket.id).like(needle),
        ))
    if params.status:
        stmt = stmt.where(Ticket.status == params.status)
    if params.eventId:
        stmt = stmt.where(Ticket.event_id == params.eventId)
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt",
                          scalars=False)


async def get_ticket(db: AsyncSession, ticket_id: str) -> dict:
    row = (await db.execute(
        _joined().where(Ticket.id == ticket_id).limit(1)
    )).first()
    if row is None:
        raise NotFound("Ticket")
    return ticket_row_dict(row, detailed=True)


async def update_status(db: AsyncSession, data: TicketStatusIn) -> Ticket:
    ticket = await get_or_404(db, Ticket, data.id)
    ticket.status = data.status
    await db.commit()
    log.info("ticket %s -> %s", ticket.id, ticket.status)
    return ticket


async def stats(db: AsyncSession) -> dict:
    result = await db.execute(
        select(Ticket.status, func.count()).group_by(Ticket.status)
    )
    by_status = {status: int(count) for status, count in result.all()}
    return {"totalTickets": sum(by_status.values()), "byStatus": by_status}


async def for_event(db: AsyncSession, event_id: str,
                    status: Optional[str] = None) -> list[dict]:
    stmt = (
        select(Ticket, Customer, EventTicket)
        .outerjoin(Booking, Booking.id == Ticket.booking_id)
        .outerjoin(Customer, Customer.id == Booking.customer_id)
        .outerjoin(EventTicket, EventTicket.id == Ticket.event_detail_id)
        .where(Ticket.event_id == event_id)
    )
    if status:
        stmt = stmt.where(Ticket.status == status)
    result = await db.execute(stmt.order_by(Ticket.created_at.desc()))
    return [
        {
            "id": ticket.id,
            "status": ticket.status,
            "createdAt": ticket.created_at,
            "customer": _pick(customer, "id", "name", "email", "phone"),
            "eventTicket": _pick(event_ticket, "seatType", "price"),
        }
        for ticket, customer, event_ticket in result.all()
    ]


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(
    prefix="/api/rpc/ticket", tags=["ticket"],
    dependencies=[Depends(require_admin)],
)


@router.get("/list")
async def rpc_list(params: TicketListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    page = await list_tickets(db, params)
    return {
        "items": [ticket_row_dict(r) for r in page["items"]],
        "totalCount": page["meta"]["totalCount"],
        "pageCount": page["meta"]["pageCount"],
        "currentPage": page["meta"]["page"],
    }


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return await get_ticket(db, id)


@router.post("/updateStatus")
async def rpc_update_status(data: TicketStatusIn,
                            db: AsyncSession = Depends(get_db)):
    return (await update_status(db, data)).to_dict()


@router.get("/getStats")
async def rpc_get_stats(db: AsyncSession = Depends(get_db)):
    return await stats(db)


@router.get("/getByEventId")
async def rpc_get_by_event_id(eventId: str,
                              status: Optional[TicketStatus] = None,
                              db: AsyncSession = Depends(get_db)):
    return await for_event(db, eventId, status)
