import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..deps import get_db, require_admin
from ..errors import BadRequest, NotFound
from ..model.db import Region, Venue, VenueToVenueType, VenueType
from ._listing import (
    IdIn, ListParams, apply_changes, columns_from, contains, delete_row,
    get_or_404, paginate, toggle,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Venue.name,
    "address": Venue.address,
    "capacity": Venue.capacity,
    "createdAt": Venue.created_at,
    "updatedAt": Venue.updated_at,
}


class VenueIn(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    regionId: str
    capacity: Optional[int] = Field(None, ge=0)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    thumbnailUrl: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    isFeatured: bool = False
    googleMapsUrl: Optional[str] = None
    remarks: Optional[str] = None
    socialMediaLinks: Optional[dict[str, str]] = None
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None


class VenueUpdate(VenueIn):
    id: str


class VenueTypesIn(BaseModel):
    venueId: str
    venueTypeIds: list[str]
    primaryId: Optional[str] = None


class VenueTypeIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


async def list_venues(db: AsyncSession, params: ListParams,
                      region_id: Optional[str] = None) -> dict:
    stmt = select(Venue).options(selectinload(Venue.region))
    cond = contains(Venue.name, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    if region_id:
        stmt = stmt.where(Venue.region_id == region_id)
    return await paginate(db, stmt, params, SORT_COLUMNS, "name")


async def all_venues(db: AsyncSession) -> list[Venue]:
    result = await db.execute(select(Venue).order_by(Venue.name))
    return list(result.scalars())


async def get_featured(db: AsyncSession, limit: int = 4,
                       region_id: Optional[str] = None) -> list[Venue]:
    stmt = (
        select(Venue)
        .options(selectinload(Venue.region))
        .where(Venue.is_featured.is_(True))
    )
    if region_id:
        stmt = stmt.where(Venue.region_id == region_id)
    stmt = stmt.order_by(Venue.updated_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars())


async def venue_types_for(db: AsyncSession, venue_id: str) -> list[dict]:
    result = await db.execute(
        select(VenueType, VenueToVenueType.is_primary)
        .join(VenueToVenueType,
              VenueToVenueType.venue_type_id == VenueType.id)
        .where(VenueToVenueType.venue_id == venue_id)
        .order_by(VenueToVenueType.is_primary.desc(), VenueType.name)
    )
    return [
        {**vt.to_dict(), "isPrimary": bool(is_primary)}
        for vt, is_primary in result.all()
    ]


async def get_venue(db: AsyncSession, venue_id: str) -> dict:
    venue = await db.scalar(
        select(Venue)
        .options(selectinload(Venue.region))
        .where(Venue.id == venue_id)
    )
    if venue is None:
        raise NotFound("Venue")
    return {
        **venue.to_dict(),
        "region": venue.region.to_dict() if venue.region else None,
        "venueTypes": await venue_types_for(db, venue_id),
    }


async def _check_region(db: AsyncSession, region_id: str) -> None:
    if await db.get(Region, region_id) is None:
        raise BadRequest("Unknown region")


async def create_venue(db: AsyncSession, data: VenueIn) -> Venue:
    await _check_region(db, data.regionId)
    venue = Venue(**columns_from(Venue, data.model_dump()))
    db.add(venue)
    await db.commit()
    log.info("created venue %s", venue.id)
    return venue


async def update_venue(db: AsyncSession, data: VenueUpdate) -> Venue:
    venue = await get_or_404(db, Venue, data.id)
    await _check_region(db, data.regionId)
    apply_changes(venue, columns_from(Venue, data.model_dump(exclude={"id"})))
    await db.commit()
    return venue


async def delete_venue(db: AsyncSession, venue_id: str) -> None:
    await delete_row(db, Venue, venue_id)
    log.info("deleted venue %s", venue_id)


async def set_venue_types(db: AsyncSession, data: VenueTypesIn) -> list[dict]:
    await get_or_404(db, Venue, data.venueId)
    wanted = list(dict.fromkeys(data.venueTypeIds))
    if wanted:
        found = set((await db.execute(
            select(VenueType.id).where(VenueType.id.in_(wanted))
        )).scalars())
        missing = [vt for vt in wanted if vt not in found]
        if missing:
            raise BadRequest(f"Unknown venue types: {', '.join(missing)}")
    if data.primaryId and data.primaryId not in wanted:
        raise BadRequest("Primary venue type must be one of the selected")

    await db.execute(
        delete(VenueToVenueType)
        .where(VenueToVenueType.venue_id == data.venueId)
    )
    primary = data.primaryId or (wanted[0] if wanted else None)
    for vt_id in wanted:
        db.add(VenueToVenueType(
            venue_id=data.venueId,
            venue_type_id=vt_id,
            is_primary=(vt_id == primary),
        ))
    await db.commit()
    return await venue_types_for(db, data.venueId)


async def list_venue_types(db: AsyncSession) -> list[VenueType]:
    result = await db.execute(select(VenueType).order_by(VenueType.name))
    return list(result.scalars())


async def create_venue_type(db: AsyncSession, data: VenueTypeIn) -> VenueType:
    vt = VenueType(name=data.name.strip(), description=data.description)
    db.add(vt)
    await db.commit()
    return vt


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/venue", tags=["venue"])


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: ListParams = Depends(),
                   regionId: Optional[str] = None,
                   db: AsyncSession = Depends(get_db)):
    page = await list_venues(db, params, regionId)
    return {
        "items": [
            {**v.to_dict(), "regionName": v.region.name if v.region else None}
            for v in page["items"]
        ],
        "meta": page["meta"],
    }


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return await get_venue(db, id)


@router.get("/getFeatured")
async def rpc_get_featured(limit: int = Query(4, ge=1, le=10),
                           regionId: Optional[str] = None,
                           db: AsyncSession = Depends(get_db)):
    venues = await get_featured(db, limit, regionId)
    return [
        {**v.to_dict(), "region": v.region.to_dict() if v.region else None}
        for v in venues
    ]


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: VenueIn, db: AsyncSession = Depends(get_db)):
    return (await create_venue(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: VenueUpdate, db: AsyncSession = Depends(get_db)):
    return (await update_venue(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_venue(db, data.id)
    return {"success": True}


@router.post("/toggleFeatured", dependencies=[Depends(require_admin)])
async def rpc_toggle_featured(data: IdIn, db: AsyncSession = Depends(get_db)):
    venue = await toggle(db, Venue, data.id, "is_featured")
    return {"id": venue.id, "isFeatured": venue.is_featured}


@router.post("/setVenueTypes", dependencies=[Depends(require_admin)])
async def rpc_set_venue_types(data: VenueTypesIn,
                              db: AsyncSession = Depends(get_db)):
    return await set_venue_types(db, data)


@router.get("/listVenueTypes")
async def rpc_list_venue_types(db: AsyncSession = Depends(get_db)):
    return [vt.to_dict() for vt in await list_venue_types(db)]


@router.post("/createVenueType", dependencies=[Depends(require_admin)])
async def rpc_create_venue_type(data: VenueTypeIn,
                                db: AsyncSession = Depends(get_db)):
    return (await create_venue_type(db, data)).to_dict()
