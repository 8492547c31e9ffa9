"""List, sort and paginate helpers shared by every entity procedure."""

import math
from typing import Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import BadRequest, Conflict, NotFound


class ListParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sortField: Optional[str] = None
    sortDirection: Literal["asc", "desc"] = "desc"
    query: Optional[str] = None


def page_count(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / limit)


def page_window(current: int, pages: int, width: int = 5) -> list[int]:
    """Page numbers shown by the pagination widget, centred on current."""
    if pages <= 0:
        return []
    if pages <= width:
        return list(range(1, pages + 1))
    start = max(1, current - width // 2)
    end = start + width - 1
    if end > pages:
        end = pages
        start = pages - width + 1
    return list(range(start, end + 1))


def contains(column, query: Optional[str]):
    """Case-insensitive substring filter, or None for an empty query."""
    if not query or not query.strip():
        return None
    term = query.strip().lower()
    for ch in ("\\", "%", "_"):
        term = term.replace(ch, "\\" + ch)
    return func.lower(column).like(f"%{term}%", escape="\\")


def order_by(stmt, params: ListParams, sort_columns: dict, default: str):
    field = params.sortField if params.sortField in sort_columns else default
    column = sort_columns[field]
    if params.sortDirection == "asc":
        return stmt.order_by(column.asc())
    return stmt.order_by(column.desc())


async def count_rows(db: AsyncSession, stmt) -> int:
    total = await db.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    return int(total or 0)


async def paginate(
    db: AsyncSession,
    stmt,
    params: ListParams,
    sort_columns: dict,
    default_sort: str,
    scalars: bool = True,
) -> dict:
    total = await count_rows(db, stmt)
    stmt = order_by(stmt, params, sort_columns, default_sort)
    stmt = stmt.offset((params.page - 1) * params.limit).limit(params.limit)
    result = await db.execute(stmt)
    items = result.scalars().all() if scalars else result.all()
    return {
        "items": items,
        "meta": {
            "totalCount": total,
            "page": params.page,
            "limit": params.limit,
            "pageCount": page_count(total, params.limit),
        },
    }


def as_dicts(page: dict) -> dict:
    return {
        "items": [item.to_dict() for item in page["items"]],
        "meta": page["meta"],
    }


async def get_or_404(db: AsyncSession, model, ident: str, what: str = None):
    row = await db.get(model, ident)
    if row is None:
        raise NotFound(what or model.__name__)
    return row


def apply_changes(row, changes: dict) -> None:
    for key, value in changes.items():
        setattr(row, key, value)


def columns_from(model, data: dict) -> dict:
    """Translate camelCase input keys to mapped attribute names."""
    by_name = {
        attr.columns[0].name: attr.key
        for attr in inspect(model).column_attrs
    }
    return {by_name[k]: v for k, v in data.items() if k in by_name}


def partial_changes(model, data: dict) -> dict:
    """Like columns_from, but null is refused for NOT NULL columns."""
    cols = {
        attr.columns[0].name: attr.columns[0]
        for attr in inspect(model).column_attrs
    }
    nulled = sorted(
        k for k, v in data.items()
        if v is None and k in cols and not cols[k].nullable
    )
    if nulled:
        raise BadRequest(f"{', '.join(nulled)} cannot be null")
    return columns_from(model, data)


async def slug_taken(db: AsyncSession, model, slug: str,
                     exclude_id: Optional[str] = None) -> bool:
    stmt = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return (await db.scalar(stmt.limit(1))) is not None


async def unique_slug(db: AsyncSession, model, base: str,
                      exclude_id: Optional[str] = None) -> str:
    """First free slug among base, base-1, base-2 ..."""
    slug = base
    n = 0
    while await slug_taken(db, model, slug, exclude_id):
        n += 1
        slug = f"{base}-{n}"
    return slug


class IdIn(BaseModel):
    id: str


async def toggle(db: AsyncSession, model, ident: str, attr: str):
    row = await get_or_404(db, model, ident)
    setattr(row, attr, not getattr(row, attr))
    await db.commit()
    return row


async def delete_row(db: AsyncSession, model, ident: str,
                     what: Optional[str] = None) -> None:
    what = what or model.__name__
    await get_or_404(db, model, ident, what)
    try:
        await db.execute(delete(model).where(model.id == ident))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"{what} is still referenced by other records")
