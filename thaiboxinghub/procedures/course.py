import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..errors import BadRequest, NotFound
from ..helpers import slugify
from ..model.db import Instructor, Region, TrainingCourse, Venue
from ._listing import (
    IdIn, ListParams, apply_changes, columns_from, contains, delete_row,
    get_or_404, paginate, partial_changes, toggle, unique_slug,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "title": TrainingCourse.title,
    "price": TrainingCourse.price,
    "isActive": TrainingCourse.is_active,
    "createdAt": TrainingCourse.created_at,
    "updatedAt": TrainingCourse.updated_at,
}

_WITH_RELATIONS = (
    selectinload(TrainingCourse.region),
    selectinload(TrainingCourse.instructor),
    selectinload(TrainingCourse.venue),
)


class CourseIn(BaseModel):
    title: str = Field(min_length=3)
    description: Optional[str] = None
    skillLevel: Optional[str] = None
    duration: Optional[str] = None
    scheduleDetails: Optional[str] = None
    price: float = Field(gt=0)
    capacity: Optional[int] = Field(None, gt=0)
    venueId: Optional[str] = None
    regionId: str
    instructorId: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    primaryImageIndex: Optional[int] = 0
    isActive: bool = True
    isFeatured: bool = False
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None


class CourseUpdate(BaseModel):
    id: str
    title: Optional[str] = Field(None, min_length=3)
    description: Optional[str] = None
    skillLevel: Optional[str] = None
    duration: Optional[str] = None
    scheduleDetails: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, gt=0)
    venueId: Optional[str] = None
    regionId: Optional[str] = None
    instructorId: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    primaryImageIndex: Optional[int] = None
    isActive: Optional[bool] = None
    isFeatured: Optional[bool] = None
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None


def course_dict(course: TrainingCourse) -> dict:
    out = course.to_dict()
    out["region"] = (
        {"name": course.region.name, "slug": course.region.slug}
        if course.region else None
    )
    out["instructor"] = (
        {"id": course.instructor.id, "name": course.instructor.name,
         "imageUrl": course.instructor.image_url}
        if course.instructor else None
    )
    out["venue"] = {"name": course.venue.name} if course.venue else None
    return out


async def _check_refs(db: AsyncSession, region_id=None, venue_id=None,
                      instructor_id=None) -> None:
    if region_id and await db.get(Region, region_id) is None:
        raise BadRequest("Unknown region")
    if venue_id and await db.get(Venue, venue_id) is None:
        raise BadRequest("Unknown venue")
    if instructor_id and await db.get(Instructor, instructor_id) is None:
        raise BadRequest("Unknown instructor")


async def list_active(db: AsyncSession, region_id: Optional[str] = None,
                      instructor_id: Optional[str] = None, limit: int = 20,
                      cursor: Optional[str] = None) -> dict:
    """Active courses, newest first, with an id cursor for the next page."""
    stmt = (
        select(TrainingCourse)
        .options(*_WITH_RELATIONS)
        .where(TrainingCourse.is_active.is_(True))
    )
    if region_id:
        stmt = stmt.where(TrainingCourse.region_id == region_id)
    if instructor_id:
        stmt = stmt.where(TrainingCourse.instructor_id == instructor_id)
    if cursor:
        anchor = await db.get(TrainingCourse, cursor)
        if anchor is not None:
            stmt = stmt.where(or_(
                TrainingCourse.created_at < anchor.created_at,
                and_(TrainingCourse.created_at == anchor.created_at,
                     TrainingCourse.id <= anchor.id),
            ))
    stmt = stmt.order_by(
        TrainingCourse.created_at.desc(), TrainingCourse.id.desc()
    ).limit(limit + 1)
    items = list((await db.execute(stmt)).scalars())

    next_cursor = None
    if len(items) > limit:
        next_cursor = items.pop().id
    return {"items": items, "nextCursor": next_cursor}


async def list_courses(db: AsyncSession, params: ListParams) -> dict:
    stmt = select(TrainingCourse).options(*_WITH_RELATIONS)
    cond = contains(TrainingCourse.title, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt")


async def get_by_slug(db: AsyncSession, slug: str) -> TrainingCourse:
    course = await db.scalar(
        select(TrainingCourse)
        .options(*_WITH_RELATIONS)
        .where(TrainingCourse.slug == slug)
    )
    if course is None:
        raise NotFound("Course")
    return course


async def get_course(db: AsyncSession, course_id: str) -> TrainingCourse:
    course = await db.scalar(
        select(TrainingCourse)
        .options(*_WITH_RELATIONS)
        .where(TrainingCourse.id == course_id)
    )
    if course is None:
        raise NotFound("Course")
    return course


async def create_course(db: AsyncSession, data: CourseIn) -> TrainingCourse:
    await _check_refs(db, data.regionId, data.venueId, data.instructorId)
    values = columns_from(TrainingCourse, data.model_dump())
    values["slug"] = await unique_slug(
        db, TrainingCourse, slugify(data.title) or "course"
    )
    course = TrainingCourse(**values)
    db.add(course)
    await db.commit()
    log.info("created course %s (%s)", course.id, course.slug)
    return course


async def update_course(db: AsyncSession, data: CourseUpdate) -> dict:
    course = await get_or_404(db, TrainingCourse, data.id, "Course")
    changes = partial_changes(
        TrainingCourse, data.model_dump(exclude={"id"}, exclude_unset=True)
    )
    if not changes:
        return {"success": False, "message": "No fields provided for update."}
    await _check_refs(
        db, changes.get("region_id"), changes.get("venue_id"),
        changes.get("instructor_id"),
    )
    if "title" in changes and changes["title"] != course.title:
        changes["slug"] = await unique_slug(
            db, TrainingCourse, slugify(changes["title"]) or "course",
            exclude_id=course.id,
        )
    apply_changes(course, changes)
    await db.commit()
    return {"success": True, "course": course.to_dict()}


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/trainingCourse", tags=["trainingCourse"])


@router.get("/list")
async def rpc_list(regionId: Optional[str] = None,
                   instructorId: Optional[str] = None,
                   limit: int = Query(20, ge=1, le=100),
                   cursor: Optional[str] = None,
                   db: AsyncSession = Depends(get_db)):
    page = await list_active(db, regionId, instructorId, limit, cursor)
    return {
        "items": [course_dict(c) for c in page["items"]],
        "nextCursor": page["nextCursor"],
    }


@router.get("/adminList", dependencies=[Depends(require_admin)])
async def rpc_admin_list(params: ListParams = Depends(),
                         db: AsyncSession = Depends(get_db)):
    page = await list_courses(db, params)
    return {
        "items": [course_dict(c) for c in page["items"]],
        "meta": page["meta"],
    }


@router.get("/getBySlug")
async def rpc_get_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return course_dict(await get_by_slug(db, slug))


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return course_dict(await get_course(db, id))


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: CourseIn, db: AsyncSession = Depends(get_db)):
    return (await create_course(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: CourseUpdate, db: AsyncSession = Depends(get_db)):
    return await update_course(db, data)


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, TrainingCourse, data.id, "Course")
    return {"success": True}


@router.post("/toggleActive", dependencies=[Depends(require_admin)])
async def rpc_toggle_active(data: IdIn, db: AsyncSession = Depends(get_db)):
    course = await toggle(db, TrainingCourse, data.id, "is_active")
    return {"id": course.id, "isActive": course.is_active}


@router.post("/toggleFeatured", dependencies=[Depends(require_admin)])
async def rpc_toggle_featured(data: IdIn, db: AsyncSession = Depends(get_db)):
    course = await toggle(db, TrainingCourse, data.id, "is_featured")
    return {"id": course.id, "isFeatured": course.is_featured}
