import logging
import re
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..errors import BadRequest, NotFound
from ..model.db import EventTemplate, EventTemplateTicket, Region, Venue
from ._listing import (
    IdIn, ListParams, apply_changes, columns_from, contains, delete_row,
    paginate,
)

log = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

SORT_COLUMNS = {
    "templateName": EventTemplate.template_name,
    "venueName": Venue.name,
    "regionName": Region.name,
    "isActive": EventTemplate.is_active,
    "createdAt": EventTemplate.created_at,
}


class TemplateListParams(ListParams):
    venueId: Optional[str] = None
    regionId: Optional[str] = None
    isActive: Optional[bool] = None


class TemplateTicketIn(BaseModel):
    id: Optional[str] = None
    seatType: str = Field(min_length=1)
    defaultPrice: float = Field(gt=0)
    defaultCapacity: int = Field(gt=0)
    defaultDescription: Optional[str] = None


class TemplateIn(BaseModel):
    templateName: str = Field(min_length=1)
    venueId: str
    regionId: str
    defaultTitleFormat: Optional[str] = None
    defaultDescription: Optional[str] = None
    recurrenceType: Literal["none", "weekly", "monthly"] = "none"
    recurringDaysOfWeek: list[int] = Field(default_factory=list)
    dayOfMonth: list[int] = Field(default_factory=list)
    defaultStartTime: str
    defaultEndTime: Optional[str] = None
    isActive: bool = True
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    templateTickets: list[TemplateTicketIn] = Field(min_length=1)

    @field_validator("defaultStartTime", "defaultEndTime")
    @classmethod
    def _hhmm(cls, v):
        if v in (None, ""):
            return None
        if not _HHMM.match(v):
            raise ValueError("time must be HH:MM (24h)")
        return v

    @field_validator("recurringDaysOfWeek")
    @classmethod
    def _weekdays(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("weekdays are 0 (Sunday) to 6 (Saturday)")
        return sorted(set(v))

    @field_validator("dayOfMonth")
    @classmethod
    def _month_days(cls, v):
        if any(d < 1 or d > 31 for d in v):
            raise ValueError("days of month are 1 to 31")
        return sorted(set(v))

    @model_validator(mode="after")
    def _recurrence(self):
        if self.defaultStartTime is None:
            raise ValueError("defaultStartTime is required")
        if self.recurrenceType == "weekly" and not self.recurringDaysOfWeek:
            raise ValueError("weekly templates need at least one weekday")
        if self.recurrenceType == "monthly" and not self.dayOfMonth:
            raise ValueError("monthly templates need at least one day")
        if (self.startDate and self.endDate
                and self.endDate < self.startDate):
            raise ValueError("endDate must not be before startDate")
        return self


class TemplateUpdate(TemplateIn):
    id: str


class ToggleActiveIn(BaseModel):
    id: str
    isActive: bool


_WITH_RELATIONS = (
    selectinload(EventTemplate.venue),
    selectinload(EventTemplate.region),
)


def template_dict(template: EventTemplate, with_tickets: bool = False) -> dict:
    out = template.to_dict()
    out["venue"] = template.venue.to_dict() if template.venue else None
    out["region"] = template.region.to_dict() if template.region else None
    if with_tickets:
        out["templateTickets"] = [t.to_dict() for t in template.tickets]
    return out


async def list_templates(db: AsyncSession,
                         params: TemplateListParams) -> dict:
    stmt = (
        select(EventTemplate)
        .outerjoin(Venue, Venue.id == EventTemplate.venue_id)
        .outerjoin(Region, Region.id == EventTemplate.region_id)
        .options(*_WITH_RELATIONS)
    )
    cond = contains(EventTemplate.template_name, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    if params.venueId:
        stmt = stmt.where(EventTemplate.venue_id == params.venueId)
    if params.regionId:
        stmt = stmt.where(EventTemplate.region_id == params.regionId)
    if params.isActive is not None:
        stmt = stmt.where(EventTemplate.is_active.is_(params.isActive))
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt")


async def get_template(db: AsyncSession, template_id: str) -> EventTemplate:
    template = await db.scalar(
        select(EventTemplate)
        .options(*_WITH_RELATIONS, selectinload(EventTemplate.tickets))
        .where(EventTemplate.id == template_id)
        .execution_options(populate_existing=True)
    )
    if template is None:
        raise NotFound("Event template")
    return template


async def all_templates(db: AsyncSession) -> list[EventTemplate]:
    result = await db.execute(
        select(EventTemplate).order_by(EventTemplate.template_name)
    )
    return list(result.scalars())


async def _check_refs(db: AsyncSession, data: TemplateIn) -> None:
    if await db.get(Venue, data.venueId) is None:
        raise BadRequest("Unknown venue")
    if await db.get(Region, data.regionId) is None:
        raise BadRequest("Unknown region")


def _template_values(data: TemplateIn) -> dict:
    return columns_from(
        EventTemplate, data.model_dump(exclude={"id", "templateTickets"})
    )


def _ticket_row(template_id: str, t: TemplateTicketIn) -> EventTemplateTicket:
    return EventTemplateTicket(
        event_template_id=template_id,
        seat_type=t.seatType.strip(),
        default_price=t.defaultPrice,
        default_capacity=t.defaultCapacity,
        default_description=t.defaultDescription,
    )


async def create_template(db: AsyncSession, data: TemplateIn) -> EventTemplate:
    await _check_refs(db, data)
    template = EventTemplate(**_template_values(data))
    db.add(template)
    await db.flush()
    for t in data.templateTickets:
        db.add(_ticket_row(template.id, t))
    await db.commit()
    log.info("created event template %s (%s)",
             template.id, template.template_name)
    return template


async def update_template(db: AsyncSession,
                          data: TemplateUpdate) -> EventTemplate:
    """Update a template and sync its ticket types by id."""
    template = await db.get(EventTemplate, data.id)
    if template is None:
        raise NotFound("Event template")
    await _check_refs(db, data)
    apply_changes(template, _template_values(data))

    existing = {
        t.id: t for t in (await db.execute(
            select(EventTemplateTicket)
            .where(EventTemplateTicket.event_template_id == template.id)
        )).scalars()
    }
    keep = set()
    for t in data.templateTickets:
        row = existing.get(t.id) if t.id else None
        if row is None:
            db.add(_ticket_row(template.id, t))
            continue
        keep.add(row.id)
        row.seat_type = t.seatType.strip()
        row.default_price = t.defaultPrice
        row.default_capacity = t.defaultCapacity
        row.default_description = t.defaultDescription
    stale = [tid for tid in existing if tid not in keep]
    if stale:
        await db.execute(
            delete(EventTemplateTicket)
            .where(EventTemplateTicket.id.in_(stale))
        )
    await db.commit()
    log.info("updated event template %s (%d stale tickets removed)",
             template.id, len(stale))
    return template


async def set_active(db: AsyncSession, data: ToggleActiveIn) -> EventTemplate:
    template = await db.get(EventTemplate, data.id)
    if template is None:
        raise NotFound("Event template")
    template.is_active = data.isActive
    await db.commit()
    return template


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/eventTemplate", tags=["eventTemplate"])


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: TemplateListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    page = await list_templates(db, params)
    meta = page["meta"]
    return {
        "items": [template_dict(t) for t in page["items"]],
        "meta": {
            "totalItems": meta["totalCount"],
            "totalPages": meta["pageCount"],
            "currentPage": meta["page"],
            "pageSize": meta["limit"],
        },
    }


@router.get("/getById", dependencies=[Depends(require_admin)])
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return template_dict(await get_template(db, id), with_tickets=True)


@router.get("/getAllIds", dependencies=[Depends(require_admin)])
async def rpc_get_all_ids(db: AsyncSession = Depends(get_db)):
    return [
        {"id": t.id, "templateName": t.template_name}
        for t in await all_templates(db)
    ]


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: TemplateIn, db: AsyncSession = Depends(get_db)):
    return {"id": (await create_template(db, data)).id}


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: TemplateUpdate, db: AsyncSession = Depends(get_db)):
    return {"id": (await update_template(db, data)).id}


@router.post("/toggleActive", dependencies=[Depends(require_admin)])
async def rpc_toggle_active(data: ToggleActiveIn,
                            db: AsyncSession = Depends(get_db)):
    template = await set_active(db, data)
    return {"id": template.id, "isActive": template.is_active}


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, EventTemplate, data.id, "Event template")
    return {"success": True}
