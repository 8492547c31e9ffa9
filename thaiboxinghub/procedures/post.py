import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import BadRequest, Conflict, NotFound
from ..helpers import looks_like_url, slugify, utcnow
from ..model.db import Post
from ._listing import (
    IdIn, ListParams, apply_changes, as_dicts, columns_from, contains,
    delete_row, get_or_404, paginate, slug_taken, toggle, unique_slug,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "title": Post.title,
    "status": Post.status,
    "publishedAt": Post.published_at,
    "createdAt": Post.created_at,
    "updatedAt": Post.updated_at,
}

PostStatus = Literal["DRAFT", "PUBLISHED", "ARCHIVED"]


class PostListParams(ListParams):
    status: Literal["ALL", "DRAFT", "PUBLISHED", "ARCHIVED"] = "ALL"


class PostIn(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    slug: Optional[str] = None
    excerpt: Optional[str] = None
    featuredImageUrl: Optional[str] = None
    isFeatured: bool = False
    status: PostStatus = "DRAFT"
    regionId: Optional[str] = None
    authorId: Optional[str] = None
    metaTitle: Optional[str] = None
    metaDescription: Optional[str] = None
    keywords: Optional[list[str]] = None


class PostUpdate(PostIn):
    id: str


class SlugIn(BaseModel):
    id: str
    newSlug: str = Field(min_length=1)


async def list_posts(db: AsyncSession, params: PostListParams) -> dict:
    stmt = select(Post)
    cond = contains(Post.title, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    if params.status != "ALL":
        stmt = stmt.where(Post.status == params.status)
    return await paginate(db, stmt, params, SORT_COLUMNS, "createdAt")


async def published(db: AsyncSession, limit: int = 20) -> list[Post]:
    result = await db.execute(
        select(Post)
        .where(Post.status == "PUBLISHED")
        .order_by(Post.published_at.desc())
        .limit(limit)
    )
    return list(result.scalars())


async def get_published(db: AsyncSession, slug: str) -> Post:
    post = await db.scalar(
        select(Post).where(Post.slug == slug, Post.status == "PUBLISHED")
    )
    if post is None:
        raise NotFound("Post")
    return post


async def _slug_for(db: AsyncSession, data: PostIn,
                    exclude_id: Optional[str] = None) -> str:
    if data.slug:
        slug = slugify(data.slug)
        if not slug:
            raise BadRequest("Post slug cannot be empty")
        if await slug_taken(db, Post, slug, exclude_id):
            raise Conflict(f"Post slug '{slug}' already exists")
        return slug
    return await unique_slug(
        db, Post, slugify(data.title) or "post", exclude_id
    )


async def create_post(db: AsyncSession, data: PostIn) -> Post:
    values = columns_from(Post, data.model_dump())
    values["slug"] = await _slug_for(db, data)
    if data.status == "PUBLISHED":
        values["published_at"] = utcnow()
    post = Post(**values)
    db.add(post)
    await db.commit()
    log.info("created post %s (%s)", post.id, post.slug)
    return post


async def update_post(db: AsyncSession, data: PostUpdate) -> Post:
    post = await get_or_404(db, Post, data.id)
    values = columns_from(Post, data.model_dump(exclude={"id"}))
    if data.slug or data.title != post.title:
        values["slug"] = await _slug_for(db, data, exclude_id=post.id)
    else:
        values.pop("slug", None)
    if data.status == "PUBLISHED" and post.published_at is None:
        values["published_at"] = utcnow()
    apply_changes(post, values)
    await db.commit()
    return post


async def update_slug(db: AsyncSession, data: SlugIn) -> Post:
    post = await get_or_404(db, Post, data.id)
    slug = slugify(data.newSlug)
    if not slug:
        raise BadRequest("Post slug cannot be empty")
    if await slug_taken(db, Post, slug, exclude_id=post.id):
        raise Conflict(f"Post slug '{slug}' already exists")
    post.slug = slug
    await db.commit()
    log.info("post %s slug -> %s", post.id, slug)
    return post


async def invalid_slugs(db: AsyncSession) -> list[Post]:
    """Posts whose slug is an absolute URL (legacy imports)."""
    result = await db.execute(select(Post).order_by(Post.created_at))
    return [p for p in result.scalars() if looks_like_url(p.slug)]


async def fix_slug(db: AsyncSession, post_id: str) -> Post:
    post = await get_or_404(db, Post, post_id)
    post.slug = await unique_slug(
        db, Post, slugify(post.title) or "post", exclude_id=post.id
    )
    await db.commit()
    log.info("fixed slug of post %s -> %s", post.id, post.slug)
    return post


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/post", tags=["post"])


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: PostListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    return as_dicts(await list_posts(db, params))


@router.get("/getBySlug")
async def rpc_get_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return (await get_published(db, slug)).to_dict()


@router.get("/getById", dependencies=[Depends(require_admin)])
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Post, id)).to_dict()


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: PostIn, db: AsyncSession = Depends(get_db)):
    return (await create_post(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: PostUpdate, db: AsyncSession = Depends(get_db)):
    return (await update_post(db, data)).to_dict()


@router.post("/updateSlug", dependencies=[Depends(require_admin)])
async def rpc_update_slug(data: SlugIn, db: AsyncSession = Depends(get_db)):
    return (await update_slug(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Post, data.id)
    return {"success": True}


@router.post("/toggleFeatured", dependencies=[Depends(require_admin)])
async def rpc_toggle_featured(data: IdIn, db: AsyncSession = Depends(get_db)):
    post = await toggle(db, Post, data.id, "is_featured")
    return {"id": post.id, "isFeatured": post.is_featured}


@router.get("/invalidSlugs", dependencies=[Depends(require_admin)])
async def rpc_invalid_slugs(db: AsyncSession = Depends(get_db)):
    return [p.to_dict() for p in await invalid_slugs(db)]
