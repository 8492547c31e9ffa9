from sqlalchemy import select

from thaiboxinghub.model.db import Region
from thaiboxinghub.procedures._listing import (
    ListParams, page_count, page_window, paginate,
)

from .conftest import db_run

SORT = {"name": Region.name, "createdAt": Region.created_at}


def test_page_window_small_result():
    assert page_window(1, 0) == []
    assert page_window(1, 1) == [1]
    assert page_window(3, 5) == [1, 2, 3, 4, 5]


def test_page_window_clamps_at_both_ends():
    assert page_window(1, 12) == [1, 2, 3, 4, 5]
    assert page_window(2, 12) == [1, 2, 3, 4, 5]
    assert page_window(7, 12) == [5, 6, 7, 8, 9]
    assert page_window(11, 12) == [8, 9, 10, 11, 12]
    assert page_window(12, 12) == [8, 9, 10, 11, 12]


def test_page_count():
    assert page_count(0, 10) == 0
    assert page_count(10, 10) == 1
    assert page_count(11, 10) == 2


def test_paginate_empty_result():
    params = ListParams(limit=10)
    page = db_run(lambda db: paginate(db, select(Region), params, SORT, "name"))
    assert page["items"] == []
    assert page["meta"] == {
        "totalCount": 0, "page": 1, "limit": 10, "pageCount": 0,
    }


def test_paginate_sorts_and_slices():
    async def go(db):
        for name in ("Phuket", "Bangkok", "Krabi"):
            db.add(Region(name=name, slug=name.lower()))
        await db.commit()
        params = ListParams(page=2, limit=2, sortField="name",
                            sortDirection="asc")
        return await paginate(db, select(Region), params, SORT, "createdAt")

    page = db_run(go)
    assert [r.name for r in page["items"]] == ["Phuket"]
    assert page["meta"]["totalCount"] == 3
    assert page["meta"]["pageCount"] == 2


def test_paginate_unknown_sort_uses_default():
    async def go(db):
        for name in ("Phuket", "Bangkok"):
            db.add(Region(name=name, slug=name.lower()))
        await db.commit()
        params = ListParams(sortField="bogus", sortDirection="asc")
        return await paginate(db, select(Region), params, SORT, "name")

    assert [r.name for r in db_run(go)["items"]] == ["Bangkok", "Phuket"]
