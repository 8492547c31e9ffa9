import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..model.db import Instructor
from ._listing import (
    IdIn, apply_changes, columns_from, delete_row, get_or_404, partial_changes,
)

log = logging.getLogger(__name__)


class InstructorIn(BaseModel):
    name: str = Field(min_length=1)
    bio: Optional[str] = None
    imageUrl: Optional[str] = None
    expertise: Optional[list[str]] = None
    userId: Optional[str] = None


class InstructorUpdate(BaseModel):
    id: str
    name: Optional[str] = Field(None, min_length=1)
    bio: Optional[str] = None
    imageUrl: Optional[str] = None
    expertise: Optional[list[str]] = None
    userId: Optional[str] = None


async def list_instructors(db: AsyncSession) -> list[Instructor]:
    result = await db.execute(select(Instructor).order_by(Instructor.name))
    return list(result.scalars())


async def create_instructor(db: AsyncSession,
                            data: InstructorIn) -> Instructor:
    instructor = Instructor(**columns_from(Instructor, data.model_dump()))
    db.add(instructor)
    await db.commit()
    log.info("created instructor %s", instructor.id)
    return instructor


async def update_instructor(db: AsyncSession, data: InstructorUpdate) -> dict:
    """Partial update: only fields present in the input change."""
    instructor = await get_or_404(db, Instructor, data.id)
    changes = partial_changes(
        Instructor, data.model_dump(exclude={"id"}, exclude_unset=True)
    )
    if not changes:
        return {"success": False, "message": "No fields provided for update."}
    apply_changes(instructor, changes)
    await db.commit()
    return {"success": True, "instructor": instructor.to_dict()}


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/instructor", tags=["instructor"])


@router.get("/list")
async def rpc_list(db: AsyncSession = Depends(get_db)):
    return [i.to_dict() for i in await list_instructors(db)]


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Instructor, id)).to_dict()


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: InstructorIn, db: AsyncSession = Depends(get_db)):
    return (await create_instructor(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: InstructorUpdate,
                     db: AsyncSession = Depends(get_db)):
    return await update_instructor(db, data)


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Instructor, data.id)
    return {"success": True}
