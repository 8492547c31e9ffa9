"""Admin reports over event bookings and course enrollments.

Revenue figures include every booking in the window regardless of payment
status; the unified list shows the status per row.
"""
import logging
from datetime import datetime, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..model.db import Booking, CourseEnrollment, TrainingCourse

log = logging.getLogger(__name__)


def _since(days: int) -> datetime:
    return datetime.now() - timedelta(days=days)


async def revenue_stats(db: AsyncSession, days: int = 30) -> dict:
    since = _since(days)
    event_total, event_count = (await db.execute(
        select(func.coalesce(func.sum(Booking.total_amount), 0), func.count())
        .where(Booking.created_at >= since)
    )).one()
    course_total, course_count = (await db.execute(
        select(
            func.coalesce(func.sum(CourseEnrollment.price_paid), 0),
            func.count(),
        )
        .where(CourseEnrollment.created_at >= since)
    )).one()
    return {
        "eventRevenue": float(event_total),
        "eventCount": int(event_count),
        "courseRevenue": float(course_total),
        "courseCount": int(course_count),
        "totalRevenue": float(event_total) + float(course_total),
        "totalBookings": int(event_count) + int(course_count),
    }


async def unified_bookings(db: AsyncSession, days: int = 30,
                           kind: str = "ALL", limit: int = 50) -> list[dict]:
    """Event bookings and course enrollments in one list, newest first."""
    since = _since(days)
    rows = []
    if kind in ("ALL", "EVENT"):
        result = await db.execute(
            select(Booking)
            .where(Booking.created_at >= since)
            .order_by(Booking.created_at.desc())
            .limit(limit)
        )
        for b in result.scalars():
            details = None
            if b.booking_items_json:
                details = ", ".join(
                    f"{item.get('quantity', 1)} x {item.get('seatType', '?')}"
                    for item in b.booking_items_json
                    if isinstance(item, dict)
                ) or None
            rows.append({
                "id": b.id,
                "type": "EVENT",
                "customerName": b.customer_name_snapshot or "Unknown",
                "customerEmail": b.customer_email_snapshot or "Unknown",
                "activityTitle": b.event_title_snapshot or "Unknown Event",
                "amount": b.total_amount,
                "status": b.payment_status,
                "bookingDate": b.created_at,
                "paymentMethod": b.payment_method,
                "eventDate": b.event_date_snapshot,
                "venueName": b.venue_name_snapshot,
                "ticketDetails": details,
            })
    if kind in ("ALL", "COURSE"):
        result = await db.execute(
            select(CourseEnrollment, TrainingCourse)
            .outerjoin(
                TrainingCourse,
                TrainingCourse.id == CourseEnrollment.course_id,
            )
            .options(
                selectinload(TrainingCourse.instructor),
                selectinload(TrainingCourse.venue),
            )
            .where(CourseEnrollment.created_at >= since)
            .order_by(CourseEnrollment.created_at.desc())
            .limit(limit)
        )
        for e, course in result.all():
            rows.append({
                "id": e.id,
                "type": "COURSE",
                "customerName": e.customer_name_snapshot or "Unknown",
                "customerEmail": e.customer_email_snapshot or "Unknown",
                "activityTitle": e.course_title_snapshot or "Unknown Course",
                "amount": e.price_paid,
                "status": e.status,
                "bookingDate": e.created_at,
                "courseDuration": course.duration if course else None,
                "courseSchedule": course.schedule_details if course else None,
                "instructorName": (
                    course.instructor.name
                    if course and course.instructor else None
                ),
                "venueName": (
                    course.venue.name if course and course.venue else None
                ),
            })
    rows.sort(key=lambda r: r["bookingDate"], reverse=True)
    return rows[:limit]


async def booking_analytics(db: AsyncSession, days: int = 30) -> dict:
    since = _since(days)
    b_day = func.date(Booking.created_at)
    events = await db.execute(
        select(b_day, func.sum(Booking.total_amount), func.count())
        .where(Booking.created_at >= since)
        .group_by(b_day)
        .order_by(b_day)
    )
    e_day = func.date(CourseEnrollment.created_at)
    courses = await db.execute(
        select(e_day, func.sum(CourseEnrollment.price_paid), func.count())
        .where(CourseEnrollment.created_at >= since)
        .group_by(e_day)
        .order_by(e_day)
    )
    return {
        "dailyEventStats": [
            {"date": str(d), "eventRevenue": float(total or 0),
             "eventCount": int(n)}
            for d, total, n in events.all()
        ],
        "dailyCourseStats": [
            {"date": str(d), "courseRevenue": float(total or 0),
             "courseCount": int(n)}
            for d, total, n in courses.all()
        ],
    }


async def top_customers(db: AsyncSession, days: int = 30,
                        limit: int = 10) -> list[dict]:
    spent = func.sum(Booking.total_amount)
    result = await db.execute(
        select(
            Booking.customer_email_snapshot,
            Booking.customer_name_snapshot,
            spent,
            func.count(),
        )
        .where(Booking.created_at >= _since(days))
        .group_by(
            Booking.customer_email_snapshot, Booking.customer_name_snapshot
        )
        .order_by(spent.desc())
        .limit(limit)
    )
    return [
        {
            "customerEmail": email,
            "customerName": name,
            "totalSpent": float(total or 0),
            "bookingCount": int(n),
        }
        for email, name, total, n in result.all()
    ]


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(
    prefix="/api/rpc/reports", tags=["reports"],
    dependencies=[Depends(require_admin)],
)


@router.get("/getRevenueStats")
async def rpc_revenue_stats(days: int = Query(30, ge=1),
                            db: AsyncSession = Depends(get_db)):
    return await revenue_stats(db, days)


@router.get("/getUnifiedBookings")
async def rpc_unified_bookings(
    days: int = Query(30, ge=1),
    type: Literal["EVENT", "COURSE", "ALL"] = "ALL",
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await unified_bookings(db, days, type, limit)


@router.get("/getBookingAnalytics")
async def rpc_booking_analytics(days: int = Query(30, ge=1),
                                db: AsyncSession = Depends(get_db)):
    return await booking_analytics(db, days)


@router.get("/getTopCustomers")
async def rpc_top_customers(days: int = Query(30, ge=1),
                            limit: int = Query(10, ge=1, le=100),
                            db: AsyncSession = Depends(get_db)):
    return await top_customers(db, days, limit)
