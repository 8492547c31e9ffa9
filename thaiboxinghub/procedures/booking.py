import logging
from typing import Any, Literal, Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..errors import BadRequest, NotFound
from ..helpers import is_valid_email, new_id, parse_datetime
from ..model.db import (
    PAYMENT_PENDING, Booking, Event, EventTicket, Ticket,
)
from . import customer as customers
from ._listing import ListParams, contains, get_or_404, paginate

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": Booking.created_at,
    "totalAmount": Booking.total_amount,
    "paymentStatus": Booking.payment_status,
    "customerName": Booking.customer_name_snapshot,
    "eventTitle": Booking.event_title_snapshot,
}


class BookingListParams(ListParams):
    paymentStatus: Optional[
        Literal["PENDING", "PROCESSING", "COMPLETED", "FAILED", "CANCELLED"]
    ] = None


class ContactIn(BaseModel):
    fullName: str = Field(min_length=1)
    email: str
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        if not is_valid_email(v):
            raise ValueError("email must be a valid email address")
        return v.strip()


class TicketLineIn(BaseModel):
    ticketId: str
    quantity: int = Field(gt=0)


class BookingIn(BaseModel):
    eventId: str
    contactInfo: ContactIn
    tickets: list[TicketLineIn] = Field(min_length=1)


class ExternalBookingIn(BaseModel):
    """Reservation pushed by a partner site. Field names follow theirs."""

    externalReservationId: Optional[str] = None
    preReservationId: Optional[str] = None
    eventId: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    phone: Optional[str] = None
    eventName: Optional[str] = None
    eventDate: Optional[str] = None
    tickets: Optional[Any] = None
    totalAmount: Optional[float] = None
    returnUrl: Optional[str] = None
    notifyUrl: Optional[str] = None
    paymentMethod: Optional[str] = None
    venueName: Optional[str] = None
    regionName: Optional[str] = None
    venue: Optional[dict] = None
    region: Optional[dict] = None


async def reserve_seats(db: AsyncSession, ticket_id: str,
                        quantity: int) -> bool:
    """Add quantity to soldCount unless that would pass the capacity."""
    sold = func.coalesce(EventTicket.sold_count, 0)
    result = await db.execute(
        update(EventTicket)
        .where(EventTicket.id == ticket_id,
               sold + quantity <= EventTicket.capacity)
        .values(sold_count=sold + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def create_booking(db: AsyncSession, data: BookingIn) -> Booking:
    """Guest booking for an event.

    Every line must name a ticket type of the event with enough seats left.
    One ACTIVE ticket row is issued per seat and the total is computed here,
    never taken from the client.
    """
    event = await db.scalar(
        select(Event)
        .options(
            selectinload(Event.venue),
            selectinload(Event.region),
            selectinload(Event.ticket_types),
        )
        .where(Event.id == data.eventId)
    )
    if event is None:
        raise NotFound("Event")

    types = {t.id: t for t in event.ticket_types}
    wanted: dict[str, int] = {}
    for line in data.tickets:
        if line.ticketId not in types:
            raise BadRequest(f"Unknown ticket type {line.ticketId}")
        wanted[line.ticketId] = wanted.get(line.ticketId, 0) + line.quantity

    items, total = [], 0.0
    for ticket_id, quantity in wanted.items():
        ticket_type = types[ticket_id]
        left = ticket_type.capacity - (ticket_type.sold_count or 0)
        if quantity > left:
            raise BadRequest(
                f"Only {max(left, 0)} seats left for {ticket_type.seat_type}"
            )
        price = ticket_type.discounted_price or ticket_type.price
        total += price * quantity
        items.append({
            "ticketId": ticket_id,
            "seatType": ticket_type.seat_type,
            "price": price,
            "quantity": quantity,
        })

    contact = data.contactInfo
    customer = await customers.find_or_create(
        db, contact.fullName, contact.email, contact.phone, refresh=True
    )
    booking = Booking(
        customer_id=customer.id,
        event_id=event.id,
        total_amount=round(total, 2),
        payment_status=PAYMENT_PENDING,
        customer_name_snapshot=customer.name,
        customer_email_snapshot=customer.email,
        customer_phone_snapshot=customer.phone,
        event_title_snapshot=event.title,
        event_date_snapshot=event.date,
        venue_name_snapshot=event.venue.name if event.venue else None,
        region_name_snapshot=event.region.name if event.region else None,
        booking_items_json=items,
    )
    db.add(booking)
    await db.flush()
    for item in items:
        # a concurrent booking may have taken the seats since the check above
        if not await reserve_seats(db, item["ticketId"], item["quantity"]):
            await db.rollback()
            raise BadRequest(f"Not enough seats left for {item['seatType']}")
        for _ in range(item["quantity"]):
            db.add(Ticket(
                event_id=event.id,
                event_detail_id=item["ticketId"],
                booking_id=booking.id,
                status="ACTIVE",
            ))
    await db.commit()
    log.info("booking %s: event %s, %d seats, total %.2f",
             booking.id, event.id, sum(wanted.values()), booking.total_amount)
    return booking


async def create_external_booking(db: AsyncSession, data: ExternalBookingIn,
                                  base_url: str) -> dict:
    """Store a partner reservation as a PENDING booking and hand back what
    the partner needs to take the payment.
    """
    if not (data.eventId and data.name and data.email and data.totalAmount):
        raise BadRequest(
            "eventId, name, email, and totalAmount are required"
        )
    if await db.get(Event, data.eventId) is None:
        raise NotFound("Event")
    reservation_id = (
        data.externalReservationId or data.preReservationId or new_id()
    )
    phone = data.mobile or data.phone or None
    log.info("external booking %s: event %s, amount %s, method %s",
             reservation_id, data.eventId, data.totalAmount,
             data.paymentMethod or "not specified")

    customer = await customers.find_or_create(
        db, data.name, data.email, phone, refresh=True
    )
    booking = Booking(
        customer_id=customer.id,
        event_id=data.eventId,
        total_amount=data.totalAmount,
        payment_status=PAYMENT_PENDING,
        payment_order_no=reservation_id,
        customer_name_snapshot=data.name,
        customer_email_snapshot=data.email,
        customer_phone_snapshot=phone,
        event_title_snapshot=data.eventName,
        event_date_snapshot=parse_datetime(data.eventDate),
        venue_name_snapshot=(
            data.venueName or (data.venue or {}).get("name")
        ),
        region_name_snapshot=(
            data.regionName or (data.region or {}).get("name")
        ),
        booking_items_json=data.tickets,
    )
    db.add(booking)
    await db.commit()

    payment_data = {
        "bookingId": booking.id,
        "amount": data.totalAmount,
        "customerName": data.name,
        "customerEmail": data.email,
        "customerPhone": phone or "",
        "description": f"Tickets for {data.eventName or 'Event'}",
    }
    out = {
        "success": True,
        "message": "Booking created successfully",
        "bookingId": booking.id,
        "externalId": reservation_id,
    }
    if (data.paymentMethod or "chillpay").lower() == "modernpay":
        payment_data["callbackUrl"] = (
            f"{base_url}/api/checkout/payment-callback?"
            + urlencode({"source": "modernpay", "bookingId": booking.id})
        )
        out["paymentData"] = payment_data
        return out

    if data.returnUrl:
        payment_data["returnUrl"] = (
            f"{base_url}/api/checkout/chillpay/callback?externalReturnUrl="
            + quote(data.returnUrl, safe="")
        )
    else:
        payment_data["returnUrl"] = f"{base_url}/checkout/confirmation"
    if data.notifyUrl:
        payment_data["notifyUrl"] = (
            f"{base_url}/api/checkout/chillpay/webhook?externalNotifyUrl="
            + quote(data.notifyUrl, safe="")
        )
    out["paymentUrl"] = f"{base_url}/checkout/credit-card?" + urlencode({
        "bookingId": booking.id,
        "amount": data.totalAmount,
        "customerName": data.name,
        "email": data.email,
        "phone": phone or "",
        "eventTitle": data.eventName or "",
    })
    out["paymentData"] = payment_data
    return out


async def list_bookings(db: AsyncSession, params: BookingListParams) -> dict:
    stmt = select(Booking)
    cond = contains(Booking.customer_name_snapshot, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    if params.paymentStatus:
        stmt = stmt.where(Booking.payment_status == params.paymentStatus)
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt")


async def get_booking(db: AsyncSession, booking_id: str) -> dict:
    booking = await get_or_404(db, Booking, booking_id, "Booking")
    out = booking.to_dict()
    tickets = await db.execute(
        select(Ticket, EventTicket)
        .outerjoin(EventTicket, EventTicket.id == Ticket.event_detail_id)
        .where(Ticket.booking_id == booking.id)
        .order_by(Ticket.created_at)
    )
    out["tickets"] = [
        {
            "id": ticket.id,
            "status": ticket.status,
            "seatType": ticket_type.seat_type if ticket_type else None,
        }
        for ticket, ticket_type in tickets.all()
    ]
    return out


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/booking", tags=["booking"])


@router.post("/create")
async def rpc_create(data: BookingIn, db: AsyncSession = Depends(get_db)):
    booking = await create_booking(db, data)
    return {
        "bookingId": booking.id,
        "customerId": booking.customer_id,
        "totalAmount": booking.total_amount,
    }


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: BookingListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    page = await list_bookings(db, params)
    return {
        "items": [b.to_dict() for b in page["items"]],
        "meta": page["meta"],
    }


@router.get("/getById", dependencies=[Depends(require_admin)])
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return await get_booking(db, id)
