import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..model.db import Fighter
from ._listing import (
    IdIn, ListParams, apply_changes, as_dicts, columns_from, contains,
    delete_row, get_or_404, paginate, toggle,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Fighter.name,
    "weightClass": Fighter.weight_class,
    "country": Fighter.country,
    "createdAt": Fighter.created_at,
}


class FighterIn(BaseModel):
    name: str = Field(min_length=1)
    nickname: Optional[str] = None
    weightClass: Optional[str] = None
    record: Optional[str] = None
    imageUrl: Optional[str] = None
    country: Optional[str] = None
    isFeatured: bool = False


class FighterUpdate(FighterIn):
    id: str


async def list_fighters(db: AsyncSession, params: ListParams) -> dict:
    stmt = select(Fighter)
    cond = contains(Fighter.name, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt")


async def get_featured(db: AsyncSession, limit: int = 3) -> list[Fighter]:
    result = await db.execute(
        select(Fighter)
        .where(Fighter.is_featured.is_(True))
        .order_by(Fighter.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars())


async def create_fighter(db: AsyncSession, data: FighterIn) -> Fighter:
    fighter = Fighter(**columns_from(Fighter, data.model_dump()))
    db.add(fighter)
    await db.commit()
    log.info("created fighter %s", fighter.id)
    return fighter


async def update_fighter(db: AsyncSession, data: FighterUpdate) -> Fighter:
    fighter = await get_or_404(db, Fighter, data.id)
    apply_changes(
        fighter, columns_from(Fighter, data.model_dump(exclude={"id"}))
    )
    await db.commit()
    return fighter


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/fighter", tags=["fighter"])


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: ListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    return as_dicts(await list_fighters(db, params))


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Fighter, id)).to_dict()


@router.get("/getFeatured")
async def rpc_get_featured(limit: int = Query(3, ge=1, le=10),
                           db: AsyncSession = Depends(get_db)):
    return [f.to_dict() for f in await get_featured(db, limit)]


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: FighterIn, db: AsyncSession = Depends(get_db)):
    return (await create_fighter(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: FighterUpdate, db: AsyncSession = Depends(get_db)):
    return (await update_fighter(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Fighter, data.id)
    return {"success": True}


@router.post("/toggleFeatured", dependencies=[Depends(require_admin)])
async def rpc_toggle_featured(data: IdIn, db: AsyncSession = Depends(get_db)):
    fighter = await toggle(db, Fighter, data.id, "is_featured")
    return {"id": fighter.id, "isFeatured": fighter.is_featured}
