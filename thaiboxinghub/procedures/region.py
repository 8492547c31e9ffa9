import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import BadRequest, Conflict, NotFound
from ..helpers import slugify
from ..model.db import Region, Venue
from ._listing import (
    IdIn, ListParams, apply_changes, as_dicts, columns_from, contains,
    delete_row, get_or_404, paginate, slug_taken,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Region.name,
    "slug": Region.slug,
    "createdAt": Region.created_at,
    "updatedAt": Region.updated_at,
}


class RegionIn(BaseModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    primaryImageIndex: Optional[int] = 0
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None


class RegionUpdate(RegionIn):
    id: str


async def list_regions(db: AsyncSession, params: ListParams) -> dict:
    stmt = select(Region)
    cond = contains(Region.name, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    return await paginate(db, stmt, params, SORT_COLUMNS, "name")


async def all_regions(db: AsyncSession) -> list[Region]:
    result = await db.execute(select(Region).order_by(Region.name))
    return list(result.scalars())


async def get_by_slug(db: AsyncSession, slug: str) -> Region:
    region = await db.scalar(select(Region).where(Region.slug == slug))
    if region is None:
        raise NotFound("Region")
    return region


async def _checked_slug(db: AsyncSession, data: RegionIn,
                        exclude_id: Optional[str] = None) -> str:
    slug = slugify(data.slug or data.name)
    if not slug:
        raise BadRequest("Region slug cannot be empty")
    if await slug_taken(db, Region, slug, exclude_id):
        raise Conflict(f"Region slug '{slug}' already exists")
    return slug


async def create_region(db: AsyncSession, data: RegionIn) -> Region:
    values = columns_from(Region, data.model_dump())
    values["slug"] = await _checked_slug(db, data)
    region = Region(**values)
    db.add(region)
    await db.commit()
    log.info("created region %s (%s)", region.id, region.slug)
    return region


async def update_region(db: AsyncSession, data: RegionUpdate) -> Region:
    region = await get_or_404(db, Region, data.id)
    values = columns_from(Region, data.model_dump(exclude={"id"}))
    values["slug"] = await _checked_slug(db, data, exclude_id=region.id)
    apply_changes(region, values)
    await db.commit()
    return region


async def delete_region(db: AsyncSession, region_id: str) -> None:
    await get_or_404(db, Region, region_id)
    in_use = await db.scalar(
        select(Venue.id).where(Venue.region_id == region_id).limit(1)
    )
    if in_use is not None:
        raise Conflict("Region still has venues")
    await delete_row(db, Region, region_id)
    log.info("deleted region %s", region_id)


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/region", tags=["region"])


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: ListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    return as_dicts(await list_regions(db, params))


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Region, id)).to_dict()


@router.get("/getBySlug")
async def rpc_get_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return (await get_by_slug(db, slug)).to_dict()


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: RegionIn, db: AsyncSession = Depends(get_db)):
    return (await create_region(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: RegionUpdate, db: AsyncSession = Depends(get_db)):
    return (await update_region(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_region(db, data.id)
    return {"success": True}
