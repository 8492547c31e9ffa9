import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_303_SEE_OTHER

from .. import config
from ..deps import get_db, is_admin, templates
from ..errors import ProcedureError
from ..forms import (
    FormErrors, FormField, form_values, parse_form, resolve_options,
    submitted_values, validate, validation_messages,
)
from ..helpers import ct_equal, is_local_path, parse_date, split_list
from ..model.db import (
    ENROLLMENT_STATUSES, PAYMENT_STATUSES, POST_STATUSES, RECURRENCE_TYPES,
    TICKET_STATUSES, Booking, Category, CourseEnrollment, Event,
    EventTemplate, Fighter, Instructor, Post, Product, Region, Ticket,
    TrainingCourse, Venue,
)
from ..procedures import (
    booking, category, course, enrollment, event, event_template, fighter,
    instructor, post, product, region, reports, ticket, venue,
)
from ..procedures._listing import (
    ListParams, contains, delete_row, get_or_404, page_window, paginate,
    toggle,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", include_in_schema=False)


# ----------------------------
# Resource table
# ----------------------------
@dataclass
class Col:
    label: str
    get: Callable[[Any], Any]
    sort: Optional[str] = None


@dataclass
class AdminResource:
    slug: str
    title: str
    model: type
    columns: list[Col]
    list_fn: Callable[[AsyncSession, Any], Awaitable[dict]]
    params_cls: type = ListParams
    fields: list[FormField] = field(default_factory=list)
    create: Optional[tuple[type, Callable]] = None
    update: Optional[tuple[type, Callable]] = None
    delete_fn: Optional[Callable] = None
    load_fn: Optional[Callable] = None
    detail_fn: Optional[Callable] = None
    toggles: list[tuple[str, str]] = field(default_factory=list)
    # (query param, label, choices)
    filters: list[tuple[str, str, tuple]] = field(default_factory=list)
    statuses: tuple = ()
    status_fn: Optional[Callable] = None
    row_id: Callable[[Any], str] = lambda row: row.id
    deletable: bool = True

    @property
    def editable(self) -> bool:
        return self.update is not None


def _simple_list(model, search_column, sort_columns, default):
    async def run(db: AsyncSession, params: ListParams) -> dict:
        stmt = select(model)
        cond = contains(search_column, params.query)
        if cond is not None:
            stmt = stmt.where(cond)
        return await paginate(db, stmt, params, sort_columns, default)
    return run


async def _region_options(db):
    return [(r.id, r.name) for r in await region.all_regions(db)]


async def _venue_options(db):
    return [(v.id, v.name) for v in await venue.all_venues(db)]


async def _instructor_options(db):
    return [(i.id, i.name) for i in await instructor.list_instructors(db)]


async def _category_options(db):
    return [(c.id, c.name) for c in await category.all_categories(db)]


def _choices(values):
    return [(v, v) for v in values]


def _yes(value) -> str:
    return "Yes" if value else "No"


SEO_FIELDS = [
    FormField("metaTitle", "Meta title"),
    FormField("metaDescription", "Meta description", "textarea"),
    FormField("keywords", "Keywords", "list"),
]


async def _load_event(db, ident):
    data = event.event_dict(await event.get_event(db, ident), with_tickets=True)
    data["tickets"] = data.pop("ticketTypes")
    return data


async def _load_template(db, ident):
    return event_template.template_dict(
        await event_template.get_template(db, ident), with_tickets=True
    )


async def _ticket_status(db, ident, status):
    await ticket.update_status(
        db, ticket.TicketStatusIn(id=ident, status=status)
    )


async def _enrollment_status(db, ident, status):
    await enrollment.update_status(
        db, enrollment.EnrollmentStatusIn(id=ident, status=status)
    )


class _EnrollmentParams(ListParams):
    status: Optional[str] = None


RESOURCES: dict[str, AdminResource] = {r.slug: r for r in (
    AdminResource(
        "regions", "Regions", Region,
        columns=[
            Col("Name", lambda r: r.name, "name"),
            Col("Slug", lambda r: r.slug, "slug"),
            Col("Updated", lambda r: r.updated_at, "updatedAt"),
        ],
        list_fn=region.list_regions,
        fields=[
            FormField("name", "Name", required=True),
            FormField("slug", "Slug", help="Defaults to the name"),
            FormField("description", "Description", "textarea"),
            FormField("imageUrls", "Image URLs", "list"),
            FormField("primaryImageIndex", "Primary image index", "int"),
            *SEO_FIELDS,
        ],
        create=(region.RegionIn, region.create_region),
        update=(region.RegionUpdate, region.update_region),
        delete_fn=region.delete_region,
    ),
    AdminResource(
        "venues", "Venues", Venue,
        columns=[
            Col("Name", lambda v: v.name, "name"),
            Col("Region", lambda v: v.region.name if v.region else ""),
            Col("Address", lambda v: v.address, "address"),
            Col("Capacity", lambda v: v.capacity, "capacity"),
            Col("Featured", lambda v: _yes(v.is_featured)),
        ],
        list_fn=venue.list_venues,
        fields=[
            FormField("name", "Name", required=True),
            FormField("address", "Address", required=True),
            FormField("regionId", "Region", "select", required=True,
                      options=_region_options),
            FormField("capacity", "Capacity", "int"),
            FormField("latitude", "Latitude", "number"),
            FormField("longitude", "Longitude", "number"),
            FormField("thumbnailUrl", "Thumbnail URL"),
            FormField("imageUrls", "Image URLs", "list"),
            FormField("googleMapsUrl", "Google Maps URL"),
            FormField("remarks", "Remarks", "textarea"),
            FormField("isFeatured", "Featured", "checkbox"),
            *SEO_FIELDS,
        ],
        create=(venue.VenueIn, venue.create_venue),
        update=(venue.VenueUpdate, venue.update_venue),
        delete_fn=venue.delete_venue,
        detail_fn=venue.get_venue,
        toggles=[("is_featured", "Featured")],
    ),
    AdminResource(
        "fighters", "Fighters", Fighter,
        columns=[
            Col("Name", lambda f: f.name, "name"),
            Col("Nickname", lambda f: f.nickname),
            Col("Weight class", lambda f: f.weight_class, "weightClass"),
            Col("Country", lambda f: f.country, "country"),
            Col("Featured", lambda f: _yes(f.is_featured)),
        ],
        list_fn=fighter.list_fighters,
        fields=[
            FormField("name", "Name", required=True),
            FormField("nickname", "Nickname"),
            FormField("weightClass", "Weight class"),
            FormField("record", "Record", help="e.g. 25-3-1"),
            FormField("country", "Country"),
            FormField("imageUrl", "Image URL"),
            FormField("isFeatured", "Featured", "checkbox"),
        ],
        create=(fighter.FighterIn, fighter.create_fighter),
        update=(fighter.FighterUpdate, fighter.update_fighter),
        toggles=[("is_featured", "Featured")],
    ),
    AdminResource(
        "instructors", "Instructors", Instructor,
        columns=[
            Col("Name", lambda i: i.name, "name"),
            Col("Expertise", lambda i: ", ".join(i.expertise or ())),
            Col("Created", lambda i: i.created_at, "createdAt"),
        ],
        list_fn=_simple_list(
            Instructor, Instructor.name,
            {"name": Instructor.name, "createdAt": Instructor.created_at},
            "name",
        ),
        fields=[
            FormField("name", "Name", required=True),
            FormField("bio", "Bio", "textarea"),
            FormField("imageUrl", "Image URL"),
            FormField("expertise", "Expertise", "list"),
        ],
        create=(instructor.InstructorIn, instructor.create_instructor),
        update=(instructor.InstructorUpdate, instructor.update_instructor),
    ),
    AdminResource(
        "courses", "Training courses", TrainingCourse,
        columns=[
            Col("Title", lambda c: c.title, "title"),
            Col("Region", lambda c: c.region.name if c.region else ""),
            Col("Price", lambda c: c.price, "price"),
            Col("Active", lambda c: _yes(c.is_active), "isActive"),
            Col("Featured", lambda c: _yes(c.is_featured)),
        ],
        list_fn=course.list_courses,
        fields=[
            FormField("title", "Title", required=True),
            FormField("description", "Description", "textarea"),
            FormField("skillLevel", "Skill level", "select",
                      options=_choices(
                          ("Beginner", "Intermediate", "Advanced",
                           "All Levels")
                      )),
            FormField("duration", "Duration", help="e.g. 4 weeks"),
            FormField("scheduleDetails", "Schedule", "textarea"),
            FormField("price", "Price (THB)", "number", required=True),
            FormField("capacity", "Capacity", "int"),
            FormField("regionId", "Region", "select", required=True,
                      options=_region_options),
            FormField("venueId", "Venue", "select", options=_venue_options),
            FormField("instructorId", "Instructor", "select",
                      options=_instructor_options),
            FormField("imageUrls", "Image URLs", "list"),
            FormField("primaryImageIndex", "Primary image index", "int"),
            FormField("isActive", "Active", "checkbox"),
            FormField("isFeatured", "Featured", "checkbox"),
            *SEO_FIELDS,
        ],
        create=(course.CourseIn, course.create_course),
        update=(course.CourseUpdate, course.update_course),
        toggles=[("is_active", "Active"), ("is_featured", "Featured")],
    ),
    AdminResource(
        "categories", "Categories", Category,
        columns=[
            Col("Name", lambda c: c.name, "name"),
            Col("Slug", lambda c: c.slug),
            Col("Created", lambda c: c.created_at, "createdAt"),
        ],
        list_fn=_simple_list(
            Category, Category.name, category.SORT_COLUMNS, "name"
        ),
        fields=[
            FormField("name", "Name", required=True),
            FormField("slug", "Slug", help="Defaults to the name"),
            FormField("description", "Description", "textarea"),
        ],
        create=(category.CategoryIn, category.create_category),
        update=(category.CategoryUpdate, category.update_category),
    ),
    AdminResource(
        "products", "Products", Product,
        columns=[
            Col("Name", lambda p: p.name, "name"),
            Col("Price", lambda p: p.price, "price"),
            Col("Featured", lambda p: _yes(p.is_featured)),
            Col("Updated", lambda p: p.updated_at, "updatedAt"),
        ],
        list_fn=product.list_products,
        fields=[
            FormField("name", "Name", required=True),
            FormField("description", "Description", "textarea"),
            FormField("price", "Price", "number", required=True),
            FormField("categoryId", "Category", "select",
                      options=_category_options),
            FormField("thumbnailUrl", "Thumbnail URL"),
            FormField("imageUrls", "Image URLs", "list"),
            FormField("isFeatured", "Featured", "checkbox"),
        ],
        create=(product.ProductIn, product.create_product),
        update=(product.ProductUpdate, product.update_product),
        toggles=[("is_featured", "Featured")],
    ),
    AdminResource(
        "posts", "Blog posts", Post,
        columns=[
            Col("Title", lambda p: p.title, "title"),
            Col("Slug", lambda p: p.slug),
            Col("Status", lambda p: p.status, "status"),
            Col("Published", lambda p: p.published_at, "publishedAt"),
            Col("Featured", lambda p: _yes(p.is_featured)),
        ],
        list_fn=post.list_posts,
        params_cls=post.PostListParams,
        fields=[
            FormField("title", "Title", required=True),
            FormField("slug", "Slug", help="Defaults to the title"),
            FormField("content", "Content", "textarea", required=True),
            FormField("excerpt", "Excerpt", "textarea"),
            FormField("featuredImageUrl", "Featured image URL"),
            FormField("status", "Status", "select", required=True,
                      options=_choices(POST_STATUSES)),
            FormField("regionId", "Region", "select",
                      options=_region_options),
            FormField("isFeatured", "Featured", "checkbox"),
            *SEO_FIELDS,
        ],
        create=(post.PostIn, post.create_post),
        update=(post.PostUpdate, post.update_post),
        toggles=[("is_featured", "Featured")],
        filters=[("status", "Status", ("ALL",) + POST_STATUSES)],
    ),
    AdminResource(
        "events", "Events", Event,
        columns=[
            Col("Title", lambda e: e.title, "title"),
            Col("Date", lambda e: e.date, "date"),
            Col("Venue", lambda e: e.venue.name if e.venue else "", "venue"),
            Col("Region", lambda e: e.region.name if e.region else "",
                "region"),
            Col("Updated", lambda e: e.updated_at, "updatedAt"),
        ],
        list_fn=event.list_events,
        params_cls=event.EventListParams,
        fields=[
            FormField("title", "Title", required=True),
            FormField("description", "Description", "textarea"),
            FormField("date", "Date", "datetime", required=True),
            FormField("startTime", "Starts", "datetime", required=True),
            FormField("endTime", "Ends", "datetime"),
            FormField("venueId", "Venue", "select", options=_venue_options),
            FormField("regionId", "Region", "select",
                      options=_region_options),
            FormField("status", "Status", "select", required=True,
                      options=_choices(
                          ("SCHEDULED", "CANCELLED", "COMPLETED")
                      )),
            FormField("thumbnailUrl", "Thumbnail URL"),
            FormField("imageUrl", "Poster URL"),
            FormField("imageUrls", "Image URLs", "list"),
            FormField("usesDefaultPoster", "Use default poster", "checkbox"),
            FormField(
                "tickets", "Ticket types", "lines",
                line_keys=("seatType", "price", "capacity", "description"),
                help="One per line: seatType|price|capacity|description",
            ),
            *SEO_FIELDS,
        ],
        create=(event.EventIn, event.create_event),
        update=(event.EventUpdate, event.update_event),
        load_fn=_load_event,
        detail_fn=_load_event,
    ),
    AdminResource(
        "event-templates", "Event templates", EventTemplate,
        columns=[
            Col("Name", lambda t: t.template_name, "templateName"),
            Col("Venue", lambda t: t.venue.name if t.venue else "",
                "venueName"),
            Col("Region", lambda t: t.region.name if t.region else "",
                "regionName"),
            Col("Recurrence", lambda t: t.recurrence_type),
            Col("Active", lambda t: _yes(t.is_active), "isActive"),
            Col("Created", lambda t: t.created_at, "createdAt"),
        ],
        list_fn=event_template.list_templates,
        params_cls=event_template.TemplateListParams,
        fields=[
            FormField("templateName", "Template name", required=True),
            FormField("venueId", "Venue", "select", required=True,
                      options=_venue_options),
            FormField("regionId", "Region", "select", required=True,
                      options=_region_options),
            FormField("defaultTitleFormat", "Title format",
                      help="Placeholders: {venue} {date} {time}"),
            FormField("defaultDescription", "Description", "textarea"),
            FormField("recurrenceType", "Recurrence", "select",
                      required=True, options=_choices(RECURRENCE_TYPES)),
            FormField("recurringDaysOfWeek", "Weekdays", "list",
                      help="0 = Sunday .. 6 = Saturday, e.g. 2, 5"),
            FormField("dayOfMonth", "Days of month", "list",
                      help="1..31, e.g. 1, 15"),
            FormField("defaultStartTime", "Start time", required=True,
                      help="HH:MM"),
            FormField("defaultEndTime", "End time", help="HH:MM"),
            FormField("startDate", "Valid from", "date"),
            FormField("endDate", "Valid until", "date"),
            FormField("isActive", "Active", "checkbox"),
            FormField(
                "templateTickets", "Ticket types", "lines",
                line_keys=(
                    "seatType", "defaultPrice", "defaultCapacity",
                    "defaultDescription",
                ),
                help="One per line: seatType|price|capacity|description",
            ),
        ],
        create=(event_template.TemplateIn, event_template.create_template),
        update=(event_template.TemplateUpdate,
                event_template.update_template),
        load_fn=_load_template,
        detail_fn=_load_template,
        toggles=[("is_active", "Active")],
        filters=[("isActive", "Active", ("", "true", "false"))],
    ),
    AdminResource(
        "tickets", "Tickets", Ticket,
        columns=[
            Col("Ticket", lambda r: r[0].id[:8]),
            Col("Customer", lambda r: r[2].name if r[2] else "",
                "customerName"),
            Col("Event", lambda r: r[3].title if r[3] else "", "eventTitle"),
            Col("Seat", lambda r: r[4].seat_type if r[4] else ""),
            Col("Status", lambda r: r[0].status, "status"),
            Col("Created", lambda r: r[0].created_at, "createdAt"),
        ],
        list_fn=ticket.list_tickets,
        params_cls=ticket.TicketListParams,
        detail_fn=ticket.get_ticket,
        filters=[("status", "Status", ("",) + TICKET_STATUSES)],
        statuses=TICKET_STATUSES,
        status_fn=_ticket_status,
        row_id=lambda r: r[0].id,
        deletable=False,
    ),
    AdminResource(
        "enrollments", "Course enrollments", CourseEnrollment,
        columns=[
            Col("Customer", lambda e: e.customer_name_snapshot,
                "customerName"),
            Col("Course", lambda e: e.course_title_snapshot, "courseTitle"),
            Col("Paid", lambda e: e.price_paid),
            Col("Status", lambda e: e.status, "status"),
            Col("Enrolled", lambda e: e.enrollment_date, "enrollmentDate"),
        ],
        list_fn=lambda db, p: enrollment.list_enrollments(db, p, p.status),
        params_cls=_EnrollmentParams,
        filters=[("status", "Status", ("",) + ENROLLMENT_STATUSES)],
        statuses=ENROLLMENT_STATUSES,
        status_fn=_enrollment_status,
        deletable=False,
    ),
    AdminResource(
        "bookings", "Bookings", Booking,
        columns=[
            Col("Customer", lambda b: b.customer_name_snapshot,
                "customerName"),
            Col("Event", lambda b: b.event_title_snapshot, "eventTitle"),
            Col("Amount", lambda b: b.total_amount, "totalAmount"),
            Col("Status", lambda b: b.payment_status, "paymentStatus"),
            Col("Created", lambda b: b.created_at, "createdAt"),
        ],
        list_fn=booking.list_bookings,
        params_cls=booking.BookingListParams,
        detail_fn=booking.get_booking,
        filters=[("paymentStatus", "Payment", ("",) + PAYMENT_STATUSES)],
        deletable=False,
    ),
)}

templates.env.globals["admin_nav"] = [
    (res.slug, res.title) for res in RESOURCES.values()
]


# ----------------------------
# Helpers
# ----------------------------
def _login_redirect(request: Request) -> Optional[RedirectResponse]:
    if is_admin(request):
        return None
    dest = request.url.path
    return RedirectResponse(url=f"/admin/login?next={dest}", status_code=307)


def _list_params(res: AdminResource, query) -> Any:
    raw = {k: v for k, v in query.items()
           if k in res.params_cls.model_fields and v != ""}
    try:
        return res.params_cls(**raw)
    except ValidationError:
        return res.params_cls()


def _list_url(res: AdminResource, params, **changes) -> str:
    state = params.model_dump(exclude_none=True)
    state.update(changes)
    return f"/admin/{res.slug}?{urlencode(state)}"


def _back_to_list(res: AdminResource, error: Optional[str] = None):
    url = f"/admin/{res.slug}"
    if error:
        url += "?" + urlencode({"error": error})
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, float):
        return f"{value:,.2f}"
    return value


async def _render_form(request: Request, db: AsyncSession,
                       res: AdminResource, values: dict,
                       ident: Optional[str] = None,
                       errors: Optional[list[str]] = None,
                       status_code: int = 200):
    return templates.TemplateResponse(
        "admin/form.html",
        {
            "request": request,
            "res": res,
            "ident": ident,
            "values": values,
            "options": await resolve_options(db, res.fields),
            "errors": errors or [],
        },
        status_code=status_code,
    )


# ----------------------------
# Login / logout
# ----------------------------
@router.get("/login", response_class=HTMLResponse)
async def admin_login_get(request: Request, next: str | None = "/admin"):
    return templates.TemplateResponse(
        "login.html",
        {"request": request, "next": next, "error": None}
    )


@router.post("/login", response_class=HTMLResponse)
async def admin_login_post(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    next: str = Form("/admin"),
):
    ok_user = ct_equal(username.strip(), config.ADMIN_USERNAME)
    ok_pass = ct_equal(password, config.ADMIN_PASSWORD)
    if ok_user and ok_pass:
        request.session["admin_user"] = username.strip()
        dest = next if is_local_path(next) else "/admin"
        return RedirectResponse(url=dest, status_code=HTTP_303_SEE_OTHER)
    log.warning("failed admin login for %r", username)
    return templates.TemplateResponse(
        "login.html",
        {"request": request, "next": next, "error": "Invalid credentials."},
        status_code=401,
    )


@router.get("/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)


# ----------------------------
# Dashboard, reports, tools
# ----------------------------
@router.get("", response_class=HTMLResponse)
async def admin_dashboard(request: Request,
                          db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    counts = []
    for res in RESOURCES.values():
        n = await db.scalar(select(func.count()).select_from(res.model))
        counts.append((res, int(n or 0)))
    by_status = {
        status: (int(n), float(total or 0))
        for status, n, total in (await db.execute(
            select(
                Booking.payment_status,
                func.count(),
                func.sum(Booking.total_amount),
            ).group_by(Booking.payment_status)
        )).all()
    }
    return templates.TemplateResponse(
        "admin/dashboard.html",
        {
            "request": request,
            "counts": counts,
            "by_status": by_status,
            "statuses": PAYMENT_STATUSES,
        }
    )


@router.get("/reports", response_class=HTMLResponse)
async def admin_reports(request: Request, days: int = 30, type: str = "ALL",
                        db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    days = max(1, min(days, 3650))
    if type not in ("ALL", "EVENT", "COURSE"):
        type = "ALL"
    return templates.TemplateResponse(
        "admin/reports.html",
        {
            "request": request,
            "days": days,
            "type": type,
            "stats": await reports.revenue_stats(db, days),
            "top": await reports.top_customers(db, days),
            "rows": await reports.unified_bookings(db, days, type),
            "daily": await reports.booking_analytics(db, days),
        }
    )


@router.get("/posts/fix-slugs", response_class=HTMLResponse)
async def admin_fix_slugs(request: Request,
                          db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    return templates.TemplateResponse(
        "admin/fix_slugs.html",
        {"request": request, "posts": await post.invalid_slugs(db)}
    )


@router.post("/posts/{ident}/fix-slug")
async def admin_fix_slug(request: Request, ident: str,
                         db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    await post.fix_slug(db, ident)
    return RedirectResponse(url="/admin/posts/fix-slugs",
                            status_code=HTTP_303_SEE_OTHER)


@router.get("/event-templates/generate", response_class=HTMLResponse)
async def admin_generate_get(request: Request,
                             db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    return templates.TemplateResponse(
        "admin/generate.html",
        {
            "request": request,
            "templates": await event_template.all_templates(db),
            "form": {},
            "planned": None,
            "errors": [],
        }
    )


@router.post("/event-templates/generate", response_class=HTMLResponse)
async def admin_generate_post(request: Request,
                              db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    form = await request.form()
    preview = form.get("action") != "generate"
    errors, planned = [], None
    try:
        data = event.GenerateIn(
            startDate=parse_date(form.get("startDate")),
            endDate=parse_date(form.get("endDate")),
            templateIds=form.getlist("templateIds") or None,
            previewOnly=preview,
            customDates=[
                parse_date(d) for d in split_list(form.get("customDates"))
            ] or None,
        )
        planned = await event.generate(db, data)
    except ValidationError as e:
        errors = validation_messages(e)
    except ValueError as e:
        errors = [str(e)]
    return templates.TemplateResponse(
        "admin/generate.html",
        {
            "request": request,
            "templates": await event_template.all_templates(db),
            "form": {
                "startDate": form.get("startDate") or "",
                "endDate": form.get("endDate") or "",
                "templateIds": form.getlist("templateIds"),
                "customDates": form.get("customDates") or "",
            },
            "planned": planned,
            "generated": not preview and planned is not None,
            "errors": errors,
        },
        status_code=400 if errors else 200,
    )


# ----------------------------
# Generic CRUD
# ----------------------------
@router.get("/{slug}", response_class=HTMLResponse)
async def admin_list(request: Request, slug: str,
                     db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None:
        return HTMLResponse("Not found", status_code=404)

    params = _list_params(res, request.query_params)
    page = await res.list_fn(db, params)
    meta = page["meta"]
    current_sort = params.sortField
    headers = []
    for col in res.columns:
        url = None
        direction = None
        if col.sort:
            direction = (
                params.sortDirection if current_sort == col.sort else None
            )
            flip = "asc" if direction == "desc" else "desc"
            url = _list_url(res, params, sortField=col.sort,
                            sortDirection=flip, page=1)
        headers.append({"label": col.label, "url": url, "dir": direction})

    rows = []
    for item in page["items"]:
        target = item[0] if isinstance(item, tuple) else item
        rows.append({
            "id": res.row_id(item),
            "cells": [_cell(col.get(item)) for col in res.columns],
            "toggles": [
                (attr, label, getattr(target, attr))
                for attr, label in res.toggles
            ],
        })

    return templates.TemplateResponse(
        "admin/list.html",
        {
            "request": request,
            "res": res,
            "params": params,
            "headers": headers,
            "rows": rows,
            "meta": meta,
            "pages": [
                (n, _list_url(res, params, page=n))
                for n in page_window(meta["page"], meta["pageCount"])
            ],
            "prev_url": (
                _list_url(res, params, page=meta["page"] - 1)
                if meta["page"] > 1 else None
            ),
            "next_url": (
                _list_url(res, params, page=meta["page"] + 1)
                if meta["page"] < meta["pageCount"] else None
            ),
            "page_sizes": config.PAGE_SIZES,
            "filters": [
                (name, label, choices, getattr(params, name, None))
                for name, label, choices in res.filters
            ],
            "error": request.query_params.get("error"),
        }
    )


@router.get("/{slug}/create", response_class=HTMLResponse)
async def admin_create_get(request: Request, slug: str,
                           db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or res.create is None:
        return HTMLResponse("Not found", status_code=404)
    defaults = {f.name: "" for f in res.fields}
    defaults.update({
        f.name: f.name in ("isActive", "usesDefaultPoster")
        for f in res.fields if f.kind == "checkbox"
    })
    return await _render_form(request, db, res, defaults)


@router.post("/{slug}/create", response_class=HTMLResponse)
async def admin_create_post(request: Request, slug: str,
                            db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or res.create is None:
        return HTMLResponse("Not found", status_code=404)
    form = await request.form()
    model, create = res.create
    try:
        data = validate(model, parse_form(res.fields, form))
        await create(db, data)
    except FormErrors as e:
        return await _render_form(
            request, db, res, submitted_values(res.fields, form),
            errors=e.messages, status_code=400,
        )
    except ProcedureError as e:
        await db.rollback()
        return await _render_form(
            request, db, res, submitted_values(res.fields, form),
            errors=[e.message], status_code=400,
        )
    return _back_to_list(res)


@router.get("/{slug}/{ident}/edit", response_class=HTMLResponse)
async def admin_edit_get(request: Request, slug: str, ident: str,
                         db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or not res.editable:
        return HTMLResponse("Not found", status_code=404)
    if res.load_fn is not None:
        data = await res.load_fn(db, ident)
    else:
        data = (await get_or_404(db, res.model, ident)).to_dict()
    return await _render_form(
        request, db, res, form_values(res.fields, data), ident=ident
    )


@router.post("/{slug}/{ident}/edit", response_class=HTMLResponse)
async def admin_edit_post(request: Request, slug: str, ident: str,
                          db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or not res.editable:
        return HTMLResponse("Not found", status_code=404)
    form = await request.form()
    model, update = res.update
    try:
        values = parse_form(res.fields, form)
        values["id"] = ident
        await update(db, validate(model, values))
    except FormErrors as e:
        return await _render_form(
            request, db, res, submitted_values(res.fields, form),
            ident=ident, errors=e.messages, status_code=400,
        )
    except ProcedureError as e:
        await db.rollback()
        return await _render_form(
            request, db, res, submitted_values(res.fields, form),
            ident=ident, errors=[e.message], status_code=400,
        )
    return _back_to_list(res)


@router.post("/{slug}/{ident}/delete")
async def admin_delete(request: Request, slug: str, ident: str,
                       db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or not res.deletable:
        return HTMLResponse("Not found", status_code=404)
    try:
        if res.delete_fn is not None:
            await res.delete_fn(db, ident)
        else:
            await delete_row(db, res.model, ident)
    except ProcedureError as e:
        return _back_to_list(res, error=e.message)
    log.info("admin deleted %s %s", slug, ident)
    return _back_to_list(res)


@router.post("/{slug}/{ident}/toggle")
async def admin_toggle(request: Request, slug: str, ident: str,
                       field: str = Form(...),
                       db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or field not in dict(res.toggles):
        return HTMLResponse("Not found", status_code=404)
    try:
        await toggle(db, res.model, ident, field)
    except ProcedureError as e:
        return _back_to_list(res, error=e.message)
    return _back_to_list(res)


@router.post("/{slug}/{ident}/status")
async def admin_status(request: Request, slug: str, ident: str,
                       status: str = Form(...),
                       db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None or res.status_fn is None or status not in res.statuses:
        return HTMLResponse("Not found", status_code=404)
    try:
        await res.status_fn(db, ident, status)
    except ProcedureError as e:
        return _back_to_list(res, error=e.message)
    return RedirectResponse(url=f"/admin/{slug}/{ident}",
                            status_code=HTTP_303_SEE_OTHER)


@router.get("/{slug}/{ident}", response_class=HTMLResponse)
async def admin_detail(request: Request, slug: str, ident: str,
                       db: AsyncSession = Depends(get_db)):
    denied = _login_redirect(request)
    if denied:
        return denied
    res = RESOURCES.get(slug)
    if res is None:
        return HTMLResponse("Not found", status_code=404)
    if res.detail_fn is not None:
        data = await res.detail_fn(db, ident)
    else:
        data = (await get_or_404(db, res.model, ident)).to_dict()

    ids = list((await db.execute(
        select(res.model.id).order_by(res.model.created_at, res.model.id)
    )).scalars())
    pos = ids.index(ident) if ident in ids else -1
    return templates.TemplateResponse(
        "admin/detail.html",
        {
            "request": request,
            "res": res,
            "ident": ident,
            "data": data,
            "prev_id": ids[pos - 1] if pos > 0 else None,
            "next_id": ids[pos + 1] if 0 <= pos < len(ids) - 1 else None,
            "position": pos + 1,
            "total": len(ids),
        }
    )
