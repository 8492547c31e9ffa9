from fastapi import APIRouter

from . import (
    booking, category, course, enrollment, event, event_template, fighter,
    instructor, post, product, region, reports, ticket, venue,
)

router = APIRouter()
for _module in (
    region, venue, fighter, instructor, course, enrollment, category,
    product, post, event, event_template, ticket, booking, reports,
):
    router.include_router(_module.router)
