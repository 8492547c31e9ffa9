import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..errors import BadRequest
from ..model.db import Category, Product, ProductToCategory
from ._listing import (
    IdIn, ListParams, apply_changes, as_dicts, columns_from, contains,
    delete_row, get_or_404, paginate, toggle,
)

log = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.price,
    "createdAt": Product.created_at,
    "updatedAt": Product.updated_at,
}


class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: float = Field(ge=0)
    thumbnailUrl: Optional[str] = None
    imageUrls: Optional[list[str]] = None
    categoryId: Optional[str] = None
    isFeatured: bool = False


class ProductUpdate(ProductIn):
    id: str


class ProductCategoriesIn(BaseModel):
    productId: str
    categoryIds: list[str]


async def get_featured(db: AsyncSession, limit: int = 4) -> list[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.is_featured.is_(True))
        .order_by(Product.updated_at.desc())
        .limit(limit)
    )
    return list(result.scalars())


async def list_all(db: AsyncSession) -> list[Product]:
    result = await db.execute(
        select(Product).order_by(Product.updated_at.desc())
    )
    return list(result.scalars())


async def list_products(db: AsyncSession, params: ListParams) -> dict:
    stmt = select(Product)
    cond = contains(Product.name, params.query)
    if cond is not None:
        stmt = stmt.where(cond)
    return await paginate(db, stmt, params, SORT_COLUMNS, "updatedAt")


async def _check_category(db: AsyncSession, category_id) -> None:
    if category_id and await db.get(Category, category_id) is None:
        raise BadRequest("Unknown category")


async def create_product(db: AsyncSession, data: ProductIn) -> Product:
    await _check_category(db, data.categoryId)
    product = Product(**columns_from(Product, data.model_dump()))
    db.add(product)
    await db.commit()
    log.info("created product %s", product.id)
    return product


async def update_product(db: AsyncSession, data: ProductUpdate) -> Product:
    product = await get_or_404(db, Product, data.id)
    await _check_category(db, data.categoryId)
    apply_changes(
        product, columns_from(Product, data.model_dump(exclude={"id"}))
    )
    await db.commit()
    return product


async def categories_of(db: AsyncSession, product_id: str) -> list[Category]:
    result = await db.execute(
        select(Category)
        .join(ProductToCategory, ProductToCategory.category_id == Category.id)
        .where(ProductToCategory.product_id == product_id)
        .order_by(Category.name)
    )
    return list(result.scalars())


async def products_in(db: AsyncSession, category_id: str) -> list[Product]:
    result = await db.execute(
        select(Product)
        .join(ProductToCategory, ProductToCategory.product_id == Product.id)
        .where(ProductToCategory.category_id == category_id)
        .order_by(Product.name)
    )
    return list(result.scalars())


async def set_categories(db: AsyncSession,
                         data: ProductCategoriesIn) -> dict:
    """Replace every category link of a product."""
    await get_or_404(db, Product, data.productId)
    wanted = list(dict.fromkeys(data.categoryIds))
    if wanted:
        found = set((await db.execute(
            select(Category.id).where(Category.id.in_(wanted))
        )).scalars())
        if len(found) != len(wanted):
            raise BadRequest("One or more categories do not exist")

    await db.execute(
        delete(ProductToCategory)
        .where(ProductToCategory.product_id == data.productId)
    )
    for category_id in wanted:
        db.add(ProductToCategory(
            product_id=data.productId, category_id=category_id
        ))
    await db.commit()
    return {"success": True}


# ----------------------------
# RPC
# ----------------------------
router = APIRouter(prefix="/api/rpc/product", tags=["product"])


@router.get("/getFeatured")
async def rpc_get_featured(db: AsyncSession = Depends(get_db)):
    return [p.to_dict() for p in await get_featured(db)]


@router.get("/listAll")
async def rpc_list_all(db: AsyncSession = Depends(get_db)):
    return [p.to_dict() for p in await list_all(db)]


@router.get("/getById")
async def rpc_get_by_id(id: str, db: AsyncSession = Depends(get_db)):
    return (await get_or_404(db, Product, id)).to_dict()


@router.get("/list", dependencies=[Depends(require_admin)])
async def rpc_list(params: ListParams = Depends(),
                   db: AsyncSession = Depends(get_db)):
    return as_dicts(await list_products(db, params))


@router.post("/create", dependencies=[Depends(require_admin)])
async def rpc_create(data: ProductIn, db: AsyncSession = Depends(get_db)):
    return (await create_product(db, data)).to_dict()


@router.post("/update", dependencies=[Depends(require_admin)])
async def rpc_update(data: ProductUpdate, db: AsyncSession = Depends(get_db)):
    return (await update_product(db, data)).to_dict()


@router.post("/delete", dependencies=[Depends(require_admin)])
async def rpc_delete(data: IdIn, db: AsyncSession = Depends(get_db)):
    await delete_row(db, Product, data.id)
    return {"success": True}


@router.post("/toggleFeatured", dependencies=[Depends(require_admin)])
async def rpc_toggle_featured(data: IdIn, db: AsyncSession = Depends(get_db)):
    product = await toggle(db, Product, data.id, "is_featured")
    return {"id": product.id, "isFeatured": product.is_featured}


@router.post("/setCategories", dependencies=[Depends(require_admin)])
async def rpc_set_categories(data: ProductCategoriesIn,
                             db: AsyncSession = Depends(get_db)):
    return await set_categories(db, data)


@router.get("/getCategoriesByProductId")
async def rpc_categories_by_product(productId: str,
                                    db: AsyncSession = Depends(get_db)):
    return [c.to_dict() for c in await categories_of(db, productId)]


@router.get("/getByCategoryId")
async def rpc_by_category(categoryId: str,
                          db: AsyncSession = Depends(get_db)):
    return [p.to_dict() for p in await products_in(db, categoryId)]
