from datetime import datetime

from sqlalchemy import func, select

from thaiboxinghub.maintenance import SAMPLE_PRODUCTS, main
from thaiboxinghub.model.db import Event, Post, Product, Region

from .conftest import db_run


def _count(model, *where):
    async def go(db):
        stmt = select(func.count()).select_from(model)
        for cond in where:
            stmt = stmt.where(cond)
        return await db.scalar(stmt)
    return db_run(go)


def test_ensure_schema_is_idempotent(capsys):
    assert main(["ensure-schema"]) == 0
    assert "schema is up to date" in capsys.readouterr().out
    assert main(["ensure-schema"]) == 0
    assert "created table" not in capsys.readouterr().out


def test_seed_products_skips_existing(capsys):
    assert main(["seed-products"]) == 0
    assert f"seeded {len(SAMPLE_PRODUCTS)} products" in capsys.readouterr().out
    assert main(["seed-products"]) == 0
    assert "seeded 0 products" in capsys.readouterr().out
    gloves = db_run(lambda db: db.get(Product, "prod_gloves_red"))
    assert gloves.is_featured
    assert gloves.thumbnail_url.endswith("w=400&h=400&fit=crop&crop=center")


def test_ensure_region(capsys):
    assert main(["ensure-region", "--slug", "pattaya",
                 "--name", "Pattaya"]) == 0
    assert main(["ensure-region", "--slug", "pattaya",
                 "--name", "Pattaya"]) == 0
    assert "exists" in capsys.readouterr().out
    assert _count(Region) == 1


def test_remove_region_events(event_setup, capsys):
    assert main(["remove-region-events", "--slug", "nowhere"]) == 1

    assert main(["remove-region-events", "--slug", "bangkok"]) == 0
    assert "dry run" in capsys.readouterr().out
    assert _count(Event) == 1

    assert main(["remove-region-events", "--slug", "bangkok", "--yes"]) == 0
    assert "deleted 1 events" in capsys.readouterr().out
    assert _count(Event) == 0


def test_update_region_slugs():
    async def make(db):
        db.add(Region(name="Koh Samui", slug="samui-old"))
        db.add(Region(name="Koh Samui", slug="samui-other"))
        await db.commit()
    db_run(make)
    assert main(["update-region-slugs"]) == 0
    async def slugs(db):
        return sorted((await db.execute(select(Region.slug))).scalars())
    assert db_run(slugs) == ["koh-samui", "koh-samui-1"]


def test_fix_post_slugs(capsys):
    async def make(db):
        db.add(Post(title="Stadium Guide", content="x",
                    slug="https://example.com/blog/stadium-guide",
                    created_at=datetime(2024, 1, 1)))
        db.add(Post(title="Fine", content="x", slug="fine"))
        await db.commit()
    db_run(make)
    assert main(["fix-post-slugs"]) == 0
    assert "fixed 1 posts" in capsys.readouterr().out
    assert _count(Post, Post.slug == "stadium-guide") == 1


def test_generate_events_without_templates(capsys):
    assert main(["generate-events", "--days", "7"]) == 0
    assert "generated 0 events from 0 templates" in capsys.readouterr().out
