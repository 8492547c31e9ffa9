import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, ORJSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..deps import get_db, templates
from ..errors import NotFound
from ..helpers import ct_equal
from ..procedures import course, event, fighter, post, product, region, venue
from ..procedures._listing import page_window
from ..recurring import generate_upcoming_events

log = logging.getLogger(__name__)

router = APIRouter(include_in_schema=False)

CONFIRMATION_MESSAGES = {
    "success": ("Payment successful",
                "Thank you! Your booking is confirmed. "
                "A receipt will be sent to your e-mail."),
    "failed": ("Payment failed",
               "The payment did not go through. Your booking was not "
               "charged, please try again."),
    "cancelled": ("Payment cancelled", "The payment was cancelled."),
    "error": ("Something went wrong",
              "We could not confirm your payment. Please contact us with "
              "your booking id."),
}


def _not_found(request: Request, what: str):
    return templates.TemplateResponse(
        "public/not_found.html",
        {"request": request, "what": what},
        status_code=404,
    )


@router.get("/", response_class=HTMLResponse)
async def index(request: Request, db: AsyncSession = Depends(get_db)):
    return templates.TemplateResponse(
        "public/index.html",
        {
            "request": request,
            "events": await event.upcoming(db, limit=6),
            "fighters": await fighter.get_featured(db, limit=3),
            "venues": await venue.get_featured(db, limit=4),
            "products": await product.get_featured(db, limit=4),
        }
    )


@router.get("/events", response_class=HTMLResponse)
async def events_page(request: Request, page: int = Query(1, ge=1),
                      db: AsyncSession = Depends(get_db)):
    params = event.EventListParams(
        page=page, limit=12, sortField="date", sortDirection="asc"
    )
    result = await event.list_events(db, params)
    meta = result["meta"]
    return templates.TemplateResponse(
        "public/events.html",
        {
            "request": request,
            "events": result["items"],
            "meta": meta,
            "pages": page_window(meta["page"], meta["pageCount"]),
        }
    )


@router.get("/events/{event_id}", response_class=HTMLResponse)
async def event_page(request: Request, event_id: str,
                     payment: Optional[str] = None,
                     db: AsyncSession = Depends(get_db)):
    try:
        ev = await event.get_event(db, event_id)
    except NotFound:
        return _not_found(request, "Event")
    return templates.TemplateResponse(
        "public/event.html",
        {
            "request": request,
            "event": ev,
            "tickets": sorted(ev.ticket_types, key=lambda t: t.price),
            "payment": payment,
        }
    )


@router.get("/region/{slug}", response_class=HTMLResponse)
async def region_page(request: Request, slug: str,
                      db: AsyncSession = Depends(get_db)):
    try:
        reg = await region.get_by_slug(db, slug)
    except NotFound:
        return _not_found(request, "Region")
    courses = await course.list_active(db, region_id=reg.id, limit=6)
    return templates.TemplateResponse(
        "public/region.html",
        {
            "request": request,
            "region": reg,
            "events": await event.upcoming(db, limit=6, region_id=reg.id),
            "venues": await venue.get_featured(db, limit=6, region_id=reg.id),
            "courses": courses["items"],
        }
    )


@router.get("/courses", response_class=HTMLResponse)
async def courses_page(request: Request, cursor: Optional[str] = None,
                       db: AsyncSession = Depends(get_db)):
    result = await course.list_active(db, limit=12, cursor=cursor)
    return templates.TemplateResponse(
        "public/courses.html",
        {
            "request": request,
            "courses": result["items"],
            "next_cursor": result["nextCursor"],
        }
    )


@router.get("/courses/{slug}", response_class=HTMLResponse)
async def course_page(request: Request, slug: str,
                      db: AsyncSession = Depends(get_db)):
    try:
        item = await course.get_by_slug(db, slug)
    except NotFound:
        return _not_found(request, "Course")
    if not item.is_active:
        return _not_found(request, "Course")
    return templates.TemplateResponse(
        "public/course.html", {"request": request, "course": item}
    )


@router.get("/blog", response_class=HTMLResponse)
async def blog_page(request: Request, db: AsyncSession = Depends(get_db)):
    return templates.TemplateResponse(
        "public/blog.html",
        {"request": request, "posts": await post.published(db)}
    )


@router.get("/blog/{slug}", response_class=HTMLResponse)
async def post_page(request: Request, slug: str,
                    db: AsyncSession = Depends(get_db)):
    try:
        item = await post.get_published(db, slug)
    except NotFound:
        return _not_found(request, "Post")
    return templates.TemplateResponse(
        "public/post.html", {"request": request, "post": item}
    )


@router.get("/products", response_class=HTMLResponse)
async def products_page(request: Request, db: AsyncSession = Depends(get_db)):
    return templates.TemplateResponse(
        "public/products.html",
        {"request": request, "products": await product.list_all(db)}
    )


# ----------------------------
# Checkout pages
# ----------------------------
@router.get("/checkout/confirmation", response_class=HTMLResponse)
async def confirmation_page(request: Request, status: str = "error",
                            bookingId: str = "", paymentMethod: str = "",
                            message: Optional[str] = None):
    title, text = CONFIRMATION_MESSAGES.get(
        status, CONFIRMATION_MESSAGES["error"]
    )
    return templates.TemplateResponse(
        "public/confirmation.html",
        {
            "request": request,
            "status": status if status in CONFIRMATION_MESSAGES else "error",
            "title": title,
            "text": text,
            "detail": message,
            "booking_id": bookingId,
            "payment_method": paymentMethod,
        }
    )


@router.get("/checkout/payment-success", response_class=HTMLResponse)
async def payment_success(request: Request, bookingId: str = ""):
    title, text = CONFIRMATION_MESSAGES["success"]
    return templates.TemplateResponse(
        "public/confirmation.html",
        {
            "request": request, "status": "success", "title": title,
            "text": text, "detail": None, "booking_id": bookingId,
            "payment_method": "",
        }
    )


@router.get("/checkout/payment-failed", response_class=HTMLResponse)
async def payment_failed(request: Request, bookingId: str = ""):
    title, text = CONFIRMATION_MESSAGES["failed"]
    return templates.TemplateResponse(
        "public/confirmation.html",
        {
            "request": request, "status": "failed", "title": title,
            "text": text, "detail": None, "booking_id": bookingId,
            "payment_method": "",
        }
    )


@router.get("/checkout/credit-card", response_class=HTMLResponse)
async def credit_card_page(request: Request, bookingId: str = "",
                           amount: float = 0.0, customerName: str = "",
                           email: str = "", phone: str = "",
                           eventTitle: str = ""):
    return templates.TemplateResponse(
        "public/credit_card.html",
        {
            "request": request,
            "booking_id": bookingId,
            "amount": amount,
            "customer_name": customerName,
            "email": email,
            "phone": phone,
            "event_title": eventTitle,
            "paypal": config.paypal_configured(),
        }
    )


# ----------------------------
# Cron
# ----------------------------
@router.get("/api/cron/generate-events")
async def cron_generate_events(request: Request,
                               days: int = Query(30, ge=1, le=365),
                               db: AsyncSession = Depends(get_db)):
    if not config.CRON_SECRET:
        log.error("cron called but CRON_SECRET is not configured")
        return ORJSONResponse(
            {"success": False, "error": "Cron secret is not configured"},
            status_code=500,
        )
    auth = request.headers.get("authorization") or ""
    if not ct_equal(auth, f"Bearer {config.CRON_SECRET}"):
        return ORJSONResponse(
            {"success": False, "error": "Unauthorized"}, status_code=401
        )
    result = await generate_upcoming_events(db, look_ahead_days=days)
    return {
        "success": True,
        "message": (
            f"Successfully generated {result['generatedCount']} events "
            f"from {result['templates']} templates"
        ),
        **result,
    }
