import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import BadRequest, Conflict
from ..helpers import slugify
from ..model.db import Category
from ._listing import (
    IdIn, ListParams, apply_changes, contains, delete_row, get_or_404,
    paginate, slug_taken,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Category.name,
    "createdAt": Category.created_at,
}


class CategoryListParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sortField: str = "name"
    sortDirection: Literal["asc", "desc"] = "asc"
    search: Optional[str] = None


class CategoryIn(BaseModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None


class CategoryUpdate(CategoryIn):
    id: str


async def list_categories(db: AsyncSession,
                          params: CategoryListParams) -> dict:
    page = await paginate(
        db,
        _search(params.search),
        ListParams(page=params.page, limit=params.limit,
                   sortField=params.sortField,
                   sortDirection=params.sortDirection),
        SORT_COLUMNS, "name",
    )
    meta = page["meta"]
    return {
        "items": page["items"],
        "meta": {
            "totalItems": meta["totalCount"],
            "totalPages": meta["pageCount"],
            "currentPage": meta["page"],
        },
    }


def _search(search: Optional[str]):
    stmt = select(Category)
    cond = contains(Category.name, search)
    return stmt if cond is None else stmt.where(cond)


async def all_categories(db: AsyncSession) -> list[Category]:
    result = await db.execute(select(Category).order_by(Category.name))
    return list(result.scalars())


async def _slug_for(db: AsyncSession, data: CategoryIn,
                    exclude_id: Optional[str] = None) -> str:
    slug = slugify(data.slug or data.name)
    if not slug:
        raise BadRequest("Category slug cannot be empty")
    if await slug_taken(db, Category, slug, exclude_id):
        raise Conflict("A category with this slug already exists")
    return slug


async def create_category(db: AsyncSession, data: CategoryIn) -> Category:
    category = Category(
        name=data.name.strip(),
        slug=await _slug_for(db, data),
        description=data.description,
    )
    db.add(category)
    await db.commit()
    log.info("created category %s (%s)", category.id, category.slug)
    return category


async def update_category(db: AsyncSession, data: CategoryUpdate) -> Category:
    category = await get_or_404(db, Category, data.id)
    apply_changes(category, {
        "name": data.name.strip(),
        "slug": await _slug_for(db, data, exclude_id=category.id),
        "description": data.description,
    })
    await db.commit()
    return category


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/category", tags=["category"])


@router.get("/list")
async def rpc_list(params: CategoryListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    page = await list_categories(db, params)
    return {
        "items": [c.to_dict() for c in page["items"]],
        "meta": page["meta"],
    }


@router.get("/byId")
async def rpc_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Category, id)).to_dict()


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: CategoryIn, db: AsyncSession = Depends(get_db)):
    return (await create_category(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: CategoryUpdate,
                     db: AsyncSession = Depends(get_db)):
    return (await update_category(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Category, data.id)
    return {"success": True}
