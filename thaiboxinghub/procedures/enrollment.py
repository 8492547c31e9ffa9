import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import BadRequest, Conflict, NotFound
from ..helpers import is_valid_email, utcnow
from ..model.db import CourseEnrollment, TrainingCourse
from . import customer as customers
from ._listing import ListParams, contains, get_or_404, paginate

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "enrollmentDate": CourseEnrollment.enrollment_date,
    "status": CourseEnrollment.status,
    "courseTitle": CourseEnrollment.course_title_snapshot,
    "customerName": CourseEnrollment.customer_name_snapshot,
}


class EnrollmentIn(BaseModel):
    courseId: str
    guestName: Optional[str] = None
    guestEmail: Optional[str] = None

    @field_validator("guestEmail")
    @classmethod
    def _email(cls, v):
        if v is not None and not is_valid_email(v):
            raise ValueError("guestEmail must be a valid email address")
        return v.strip() if v else v


class EnrollmentStatusIn(BaseModel):
    id: str
    status: Literal["PENDING_PAYMENT", "CONFIRMED", "CANCELLED"]


async def create_enrollment(db: AsyncSession, data: EnrollmentIn) -> dict:
    if data.guestEmail and data.guestName:
        customer = await customers.find_or_create(
            db, data.guestName, data.guestEmail
        )
    else:
        log.warning("enrollment without guest details, using placeholder")
        customer = await customers.placeholder(db)

    course = await db.scalar(
        select(TrainingCourse).where(
            TrainingCourse.id == data.courseId,
            TrainingCourse.is_active.is_(True),
        )
    )
    if course is None:
        raise NotFound("Active course")

    existing = await db.scalar(
        select(CourseEnrollment.id).where(
            CourseEnrollment.customer_id == customer.id,
            CourseEnrollment.course_id == course.id,
            CourseEnrollment.status != "CANCELLED",
        ).limit(1)
    )
    if existing is not None:
        raise Conflict("You are already enrolled in this course.")

    if course.capacity is not None:
        # only confirmed seats count towards capacity
        confirmed = await db.scalar(
            select(func.count(CourseEnrollment.id)).where(
                CourseEnrollment.course_id == course.id,
                CourseEnrollment.status == "CONFIRMED",
            )
        )
        if (confirmed or 0) >= course.capacity:
            raise BadRequest("Course is full.")

    enrollment = CourseEnrollment(
        customer_id=customer.id,
        course_id=course.id,
        price_paid=course.price,
        status="PENDING_PAYMENT",
        enrollment_date=utcnow(),
        course_title_snapshot=course.title,
        customer_name_snapshot=customer.name,
        customer_email_snapshot=customer.email,
    )
    db.add(enrollment)
    await db.commit()
    log.info("enrollment %s for course %s", enrollment.id, course.id)
    return {"enrollmentId": enrollment.id}


async def list_enrollments(db: AsyncSession, params: ListParams,
                           status: Optional[str] = None) -> dict:
    stmt = select(CourseEnrollment)
    cond = contains(CourseEnrollment.customer_name_snapshot, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    if status and status != "ALL":
        stmt = stmt.where(CourseEnrollment.status == status)
    return await paginate(db, stmt, params, SORT_COLUMNS, "enrollmentDate")


async def update_status(db: AsyncSession,
                        data: EnrollmentStatusIn) -> CourseEnrollment:
    enrollment = await get_or_404(db, CourseEnrollment, data.id, "Enrollment")
    enrollment.status = data.status
    await db.commit()
    return enrollment


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/courseEnrollment",
                   tags=["courseEnrollment"])


@router.post("/create")
async def rpc_create(data: EnrollmentIn, db: AsyncSession = Depends(get_db)):
    return await create_enrollment(db, data)


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: ListParams = Depends(),
                   status: Optional[str] = None,
                   db: AsyncSession = Depends(get_db)):
    page = await list_enrollments(db, params, status)
    return {
        "items": [e.to_dict() for e in page["items"]],
        "meta": page["meta"],
    }


@router.post("/updateStatus", dependencies=[Depends(require_admin)])
async def rpc_update_status(data: EnrollmentStatusIn,
                            db: AsyncSession = Depends(get_db)):
    return (await update_status(db, data)).to_dict()
