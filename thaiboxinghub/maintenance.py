"""One-off database chores.

    DATABASE_URL=sqlite:///./thaiboxinghub.db \\
        python -m thaiboxinghub.maintenance ensure-schema

Every command prints what it did and exits 0, or 1 when it could not run.
"""
import argparse
import asyncio
import logging
import sys

from sqlalchemy import delete, inspect, select, text

from . import config
from .deps import SessionAsync, engine
from .helpers import slugify
from .model.db import Base, Event, Product, Region
from .procedures import post
from .procedures._listing import unique_slug
from .recurring import generate_upcoming_events

log = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "id": "prod_gloves_red",
        "name": "Muay Thai Gloves - Red",
        "description": (
            "Premium leather Muay Thai gloves for training and competition. "
            "Made with high-quality materials for durability and comfort."
        ),
        "price": 49.99,
        "photo": "photo-1578662996442-48f60103fc96",
        "is_featured": True,
    },
    {
        "id": "prod_shorts_black_gold",
        "name": "Muay Thai Shorts - Black/Gold",
        "description": (
            "Traditional Muay Thai shorts with gold trim. Lightweight and "
            "comfortable for training and competition."
        ),
        "price": 29.99,
        "photo": "photo-1594736797933-d0401ba2fe65",
        "is_featured": True,
    },
    {
        "id": "prod_hand_wraps",
        "name": 'Hand Wraps - 180"',
        "description": (
            "Professional grade hand wraps for protection and support. "
            "Essential for all Muay Thai training sessions."
        ),
        "price": 12.99,
        "photo": "photo-1571019613454-1cb2f99b2d8b",
        "is_featured": True,
    },
    {
        "id": "prod_tshirt_thailand",
        "name": "Muay Thai T-Shirt",
        "description": (
            "Cotton t-shirt with authentic Thailand Muay Thai design. "
            "Comfortable and stylish for everyday wear."
        ),
        "price": 24.99,
        "photo": "photo-1521572163474-6864f9cf17ab",
        "is_featured": True,
    },
    {
        "id": "prod_shin_guards",
        "name": "Shin Guards - Professional",
        "description": (
            "Heavy-duty shin guards for sparring and training. Provides "
            "excellent protection and comfort."
        ),
        "price": 79.99,
        "photo": "photo-1578662996442-48f60103fc96",
        "is_featured": False,
    },
    {
        "id": "prod_headgear",
        "name": "Training Headgear",
        "description": (
            "Protective headgear for sparring sessions. Lightweight with "
            "excellent visibility."
        ),
        "price": 59.99,
        "photo": "photo-1571019613454-1cb2f99b2d8b",
        "is_featured": False,
    },
]

_UNSPLASH = "https://images.unsplash.com/{photo}?w={w}&h={h}&fit=crop&crop=center"


# ----------------------------
# Commands
# ----------------------------
def _missing_columns(sync_conn) -> list[tuple[str, object]]:
    insp = inspect(sync_conn)
    missing = []
    for table in Base.metadata.sorted_tables:
        if not insp.has_table(table.name):
            continue
        have = {c["name"] for c in insp.get_columns(table.name)}
        for column in table.columns:
            if column.name not in have:
                missing.append((table.name, column))
    return missing


async def ensure_schema() -> int:
    async with engine.begin() as conn:
        before = set(await conn.run_sync(
            lambda c: inspect(c).get_table_names()
        ))
        await conn.run_sync(Base.metadata.create_all)
        for table in Base.metadata.sorted_tables:
            if table.name not in before:
                print(f"created table {table.name}")

        for table_name, column in await conn.run_sync(_missing_columns):
            ddl = column.type.compile(dialect=conn.dialect)
            # added as nullable, existing rows have no value yet
            await conn.execute(text(
                f'ALTER TABLE "{table_name}" ADD COLUMN "{column.name}" {ddl}'
            ))
            print(f"added column {table_name}.{column.name} ({ddl})")
    print("schema is up to date")
    return 0


async def seed_products() -> int:
    added = 0
    async with SessionAsync() as db:
        for item in SAMPLE_PRODUCTS:
            if await db.get(Product, item["id"]) is not None:
                print(f"  = {item['name']} (exists)")
                continue
            db.add(Product(
                id=item["id"],
                name=item["name"],
                description=item["description"],
                price=item["price"],
                thumbnail_url=_UNSPLASH.format(photo=item["photo"],
                                               w=400, h=400),
                image_urls=[
                    _UNSPLASH.format(photo=item["photo"], w=800, h=600)
                ],
                is_featured=item["is_featured"],
            ))
            added += 1
            print(f"  + {item['name']} ({item['price']:.2f})")
        await db.commit()
    print(f"seeded {added} products")
    return 0


async def ensure_region(slug: str, name: str) -> int:
    async with SessionAsync() as db:
        region = await db.scalar(select(Region).where(Region.slug == slug))
        if region is not None:
            print(f"region {slug!r} exists: {region.id}")
            return 0
        region = Region(name=name, slug=slug)
        db.add(region)
        await db.commit()
        print(f"created region {slug!r}: {region.id}")
    return 0


async def remove_region_events(slug: str, yes: bool) -> int:
    async with SessionAsync() as db:
        region = await db.scalar(select(Region).where(Region.slug == slug))
        if region is None:
            print(f"no region with slug {slug!r}", file=sys.stderr)
            return 1
        events = list((await db.execute(
            select(Event)
            .where(Event.region_id == region.id)
            .order_by(Event.date)
        )).scalars())
        for ev in events:
            print(f"  {ev.date:%Y-%m-%d %H:%M}  {ev.title}  ({ev.id})")
        print(f"{len(events)} events in region {region.name!r}")
        if not events:
            return 0
        if not yes:
            print("dry run, pass --yes to delete them")
            return 0
        await db.execute(delete(Event).where(Event.region_id == region.id))
        await db.commit()
        print(f"deleted {len(events)} events")
    return 0


async def update_region_slugs() -> int:
    async with SessionAsync() as db:
        regions = list((await db.execute(
            select(Region).order_by(Region.created_at)
        )).scalars())
        for region in regions:
            slug = await unique_slug(
                db, Region, slugify(region.name) or "region",
                exclude_id=region.id,
            )
            if slug != region.slug:
                print(f"  {region.name}: {region.slug} -> {slug}")
                region.slug = slug
                await db.flush()
        await db.commit()
    print(f"checked {len(regions)} regions")
    return 0


async def fix_post_slugs() -> int:
    async with SessionAsync() as db:
        broken = await post.invalid_slugs(db)
        for item in broken:
            old = item.slug
            fixed = await post.fix_slug(db, item.id)
            print(f"  {old} -> {fixed.slug}")
    print(f"fixed {len(broken)} posts")
    return 0


async def generate_events(days: int) -> int:
    async with SessionAsync() as db:
        result = await generate_upcoming_events(db, look_ahead_days=days)
    print(
        f"generated {result['generatedCount']} events "
        f"from {result['templates']} templates"
    )
    return 0


# ----------------------------
# CLI
# ----------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="python -m thaiboxinghub.maintenance",
        description="ThaiBoxingHub database maintenance",
    )
    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("ensure-schema",
                   help="create missing tables and columns")
    sub.add_parser("seed-products", help="insert the sample products")
    p = sub.add_parser("ensure-region", help="create a region if missing")
    p.add_argument("--slug", required=True)
    p.add_argument("--name", required=True)
    p = sub.add_parser("remove-region-events",
                       help="list (and with --yes delete) a region's events")
    p.add_argument("--slug", required=True)
    p.add_argument("--yes", action="store_true")
    sub.add_parser("update-region-slugs",
                   help="recompute region slugs from names")
    sub.add_parser("fix-post-slugs", help="re-slug posts with URL slugs")
    p = sub.add_parser("generate-events",
                       help="run the recurring event generator once")
    p.add_argument("--days", type=int, default=30)
    return ap


async def run(args: argparse.Namespace) -> int:
    cmd = args.command
    try:
        if cmd == "ensure-schema":
            return await ensure_schema()
        # every other command needs the tables
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        if cmd == "seed-products":
            return await seed_products()
        if cmd == "ensure-region":
            return await ensure_region(args.slug, args.name)
        if cmd == "remove-region-events":
            return await remove_region_events(args.slug, args.yes)
        if cmd == "update-region-slugs":
            return await update_region_slugs()
        if cmd == "fix-post-slugs":
            return await fix_post_slugs()
        return await generate_events(args.days)
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    logging.basicConfig(level=config.LOG_LEVEL)
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
