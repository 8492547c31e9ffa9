from datetime import datetime, timedelta

from thaiboxinghub.model.db import EventTicket
from thaiboxinghub.procedures import booking as bookings

from .conftest import book, db_run


def _region(client, name="Phuket", **extra):
    resp = client.post("/api/rpc/region/create", json={"name": name, **extra})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_admin_procedures_need_login(client):
    resp = client.post("/api/rpc/region/create", json={"name": "Phuket"})
    assert resp.status_code == 401
    assert resp.json() == {
        "error": {"code": "UNAUTHORIZED", "message": "Admin login required"}
    }
    assert client.get("/api/rpc/ticket/getStats").status_code == 401
    assert client.get("/api/rpc/reports/getRevenueStats").status_code == 401


def test_region_crud(admin):
    region = _region(admin, "Chiang Mai")
    assert region["slug"] == "chiang-mai"

    resp = admin.post("/api/rpc/region/create",
                      json={"name": "Other", "slug": "Chiang Mai"})
    assert resp.status_code == 409
    assert resp.json()["error"]["message"] == (
        "Region slug 'chiang-mai' already exists"
    )

    resp = admin.post("/api/rpc/region/update", json={
        "id": region["id"], "name": "Chiang Mai", "slug": "cnx",
        "description": "North",
    })
    assert resp.json()["slug"] == "cnx"
    assert admin.get("/api/rpc/region/getBySlug",
                     params={"slug": "cnx"}).json()["description"] == "North"

    listing = admin.get("/api/rpc/region/list",
                        params={"query": "chiang"}).json()
    assert listing["meta"]["totalCount"] == 1

    resp = admin.post("/api/rpc/region/delete", json={"id": region["id"]})
    assert resp.json() == {"success": True}
    resp = admin.get("/api/rpc/region/getById", params={"id": region["id"]})
    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Region not found"


def test_region_with_venues_cannot_be_deleted(admin, event_setup):
    resp = admin.post("/api/rpc/region/delete",
                      json={"id": event_setup["region_id"]})
    assert resp.status_code == 409
    assert resp.json()["error"]["message"] == "Region still has venues"


def test_venue_featured_toggle(admin, event_setup):
    resp = admin.post("/api/rpc/venue/toggleFeatured",
                      json={"id": event_setup["venue_id"]})
    assert resp.json() == {"id": event_setup["venue_id"], "isFeatured": True}
    featured = admin.get("/api/rpc/venue/getFeatured").json()
    assert [v["id"] for v in featured] == [event_setup["venue_id"]]


def test_event_create_list_and_sync_tickets(admin, event_setup):
    start = datetime.now() + timedelta(days=30)
    resp = admin.post("/api/rpc/event/create", json={
        "title": "Patong Fight Night",
        "date": start.replace(hour=0, minute=0, second=0,
                             microsecond=0).isoformat(),
        "startTime": start.replace(hour=20).isoformat(),
        "venueId": event_setup["venue_id"],
        "regionId": event_setup["region_id"],
        "tickets": [
            {"seatType": "VIP", "price": 3000, "capacity": 20},
            {"seatType": "General", "price": 1000, "capacity": 200},
        ],
    })
    assert resp.status_code == 200, resp.text
    event_id = resp.json()["id"]

    got = admin.get("/api/rpc/event/getById", params={"id": event_id}).json()
    assert got["venue"]["name"] == "Rajadamnern Stadium"
    assert [t["seatType"] for t in got["ticketTypes"]] == ["General", "VIP"]
    general = got["ticketTypes"][0]

    resp = admin.post("/api/rpc/event/update", json={
        "id": event_id,
        "title": "Patong Fight Night",
        "date": got["date"],
        "startTime": got["startTime"],
        "venueId": event_setup["venue_id"],
        "tickets": [
            {"id": general["id"], "seatType": "General", "price": 900,
             "capacity": 250},
        ],
    })
    assert resp.status_code == 200
    got = admin.get("/api/rpc/event/getById", params={"id": event_id}).json()
    assert [(t["seatType"], t["price"]) for t in got["ticketTypes"]] == [
        ("General", 900.0)
    ]
    assert got["region"] is None

    listing = admin.get("/api/rpc/event/list",
                        params={"sortField": "date", "sortDirection": "asc"})
    body = listing.json()
    assert body["totalCount"] == 2
    assert body["currentPage"] == 1
    assert body["items"][0]["id"] == event_setup["event_id"]


def test_event_validation(admin, event_setup):
    now = datetime.now()
    resp = admin.post("/api/rpc/event/create", json={
        "title": "Backwards",
        "date": now.isoformat(),
        "startTime": now.isoformat(),
        "endTime": (now - timedelta(hours=1)).isoformat(),
    })
    assert resp.status_code == 422
    resp = admin.post("/api/rpc/event/create", json={
        "title": "Nowhere", "date": now.isoformat(),
        "startTime": now.isoformat(), "venueId": "missing",
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Unknown venue"


def test_sold_ticket_type_cannot_be_removed(admin, event_setup):
    book(admin, event_setup)
    got = admin.get("/api/rpc/event/getById",
                    params={"id": event_setup["event_id"]}).json()
    ringside = next(t for t in got["ticketTypes"]
                    if t["seatType"] == "Ringside")
    resp = admin.post("/api/rpc/event/update", json={
        "id": event_setup["event_id"],
        "title": got["title"], "date": got["date"],
        "startTime": got["startTime"],
        "tickets": [{"id": ringside["id"], "seatType": "Ringside",
                     "price": 2500, "capacity": 2}],
    })
    assert resp.status_code == 409


def test_tickets_list_status_and_stats(admin, event_setup):
    booking_id = book(admin, event_setup).json()["bookingId"]

    listing = admin.get("/api/rpc/ticket/list",
                        params={"eventId": event_setup["event_id"]}).json()
    assert listing["totalCount"] == 2
    first = listing["items"][0]
    assert first["booking"]["id"] == booking_id
    assert first["customer"]["name"] == "Somchai Jaidee"
    assert first["eventTicket"]["seatType"] == "Standard"

    resp = admin.post("/api/rpc/ticket/updateStatus",
                      json={"id": first["id"], "status": "USED"})
    assert resp.json()["status"] == "USED"
    stats = admin.get("/api/rpc/ticket/getStats").json()
    assert stats == {"totalTickets": 2,
                     "byStatus": {"ACTIVE": 1, "USED": 1}}

    used = admin.get("/api/rpc/ticket/getByEventId", params={
        "eventId": event_setup["event_id"], "status": "USED",
    }).json()
    assert [t["id"] for t in used] == [first["id"]]

    detail = admin.get("/api/rpc/ticket/getById",
                       params={"id": first["id"]}).json()
    assert detail["venue"]["address"] == "1 Ratchadamnoen"


def test_booking_detail(admin, event_setup):
    booking_id = book(admin, event_setup).json()["bookingId"]
    detail = admin.get("/api/rpc/booking/getById",
                       params={"id": booking_id}).json()
    assert detail["totalAmount"] == 2400.0
    assert [t["seatType"] for t in detail["tickets"]] == [
        "Standard", "Standard"
    ]
    listing = admin.get("/api/rpc/booking/list",
                        params={"paymentStatus": "PENDING"}).json()
    assert listing["meta"]["totalCount"] == 1


def _course(admin, region_id, title="Beginner Muay Thai", **extra):
    resp = admin.post("/api/rpc/trainingCourse/create", json={
        "title": title, "price": 3500, "regionId": region_id, **extra,
    })
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_course_cursor_paging(admin, event_setup):
    for n in range(3):
        _course(admin, event_setup["region_id"], f"Course number {n}")
    page = admin.get("/api/rpc/trainingCourse/list",
                     params={"limit": 2}).json()
    assert len(page["items"]) == 2
    assert page["nextCursor"]
    rest = admin.get("/api/rpc/trainingCourse/list",
                     params={"limit": 2, "cursor": page["nextCursor"]}).json()
    assert len(rest["items"]) == 1
    assert rest["nextCursor"] is None
    seen = {c["id"] for c in page["items"] + rest["items"]}
    assert len(seen) == 3


def test_course_update_and_enrollment(admin, event_setup):
    course = _course(admin, event_setup["region_id"], capacity=1)
    assert course["slug"] == "beginner-muay-thai"

    resp = admin.post("/api/rpc/trainingCourse/update",
                      json={"id": course["id"]})
    assert resp.json() == {
        "success": False, "message": "No fields provided for update.",
    }

    enroll = {"courseId": course["id"], "guestName": "Anna",
              "guestEmail": "anna@example.com"}
    resp = admin.post("/api/rpc/courseEnrollment/create", json=enroll)
    assert resp.status_code == 200
    enrollment_id = resp.json()["enrollmentId"]

    resp = admin.post("/api/rpc/courseEnrollment/create", json=enroll)
    assert resp.status_code == 409

    admin.post("/api/rpc/courseEnrollment/updateStatus",
               json={"id": enrollment_id, "status": "CONFIRMED"})
    resp = admin.post("/api/rpc/courseEnrollment/create", json={
        "courseId": course["id"], "guestName": "Ben",
        "guestEmail": "ben@example.com",
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Course is full."


def test_post_slugs(admin):
    resp = admin.post("/api/rpc/post/create", json={
        "title": "Fight Week in Bangkok", "content": "...",
        "status": "PUBLISHED",
    })
    post = resp.json()
    assert post["slug"] == "fight-week-in-bangkok"
    assert post["publishedAt"] is not None

    second = admin.post("/api/rpc/post/create", json={
        "title": "Fight Week in Bangkok", "content": "again",
    }).json()
    assert second["slug"] == "fight-week-in-bangkok-1"

    resp = admin.post("/api/rpc/post/updateSlug",
                      json={"id": second["id"],
                            "newSlug": "fight-week-in-bangkok"})
    assert resp.status_code == 409

    public = admin.get("/api/rpc/post/getBySlug",
                       params={"slug": "fight-week-in-bangkok"})
    assert public.json()["id"] == post["id"]


def test_reports(admin, event_setup):
    book(admin, event_setup)
    book(admin, event_setup, email="lek@example.com")
    stats = admin.get("/api/rpc/reports/getRevenueStats").json()
    assert stats["eventRevenue"] == 4800.0
    assert stats["eventCount"] == 2
    assert stats["totalBookings"] == 2

    rows = admin.get("/api/rpc/reports/getUnifiedBookings",
                     params={"type": "COURSE"}).json()
    assert rows == []
    top = admin.get("/api/rpc/reports/getTopCustomers").json()
    assert {c["customerEmail"] for c in top} == {
        "somchai@example.com", "lek@example.com",
    }
    daily = admin.get("/api/rpc/reports/getBookingAnalytics").json()
    assert sum(d["eventCount"] for d in daily["dailyEventStats"]) == 2


def test_instructor_partial_update(admin):
    resp = admin.post("/api/rpc/instructor/create",
                      json={"name": "Kru Somsak", "bio": "Former champion"})
    iid = resp.json()["id"]

    resp = admin.post("/api/rpc/instructor/update", json={"id": iid})
    assert resp.json() == {
        "success": False, "message": "No fields provided for update.",
    }

    resp = admin.post("/api/rpc/instructor/update",
                      json={"id": iid, "name": None})
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "name cannot be null"

    resp = admin.post("/api/rpc/instructor/update",
                      json={"id": iid, "bio": None})
    assert resp.json()["success"] is True
    instructor = admin.get("/api/rpc/instructor/getById",
                           params={"id": iid}).json()
    assert instructor["name"] == "Kru Somsak"
    assert instructor["bio"] is None


def test_course_update_refuses_null_required_fields(admin, event_setup):
    course = _course(admin, event_setup["region_id"])
    for field in ("title", "regionId", "price"):
        resp = admin.post("/api/rpc/trainingCourse/update",
                          json={"id": course["id"], field: None})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == f"{field} cannot be null"
    resp = admin.post("/api/rpc/trainingCourse/update",
                      json={"id": course["id"], "capacity": None})
    assert resp.json()["success"] is True


def test_unknown_sort_field_falls_back(admin, event_setup):
    resp = admin.get("/api/rpc/event/list", params={"sortField": "bogus"})
    assert resp.status_code == 200
    assert resp.json()["totalCount"] == 1
    resp = admin.get("/api/rpc/ticket/list", params={"sortField": "bogus"})
    assert resp.status_code == 200


def test_category_slug_conflict_and_search(admin):
    resp = admin.post("/api/rpc/category/create", json={"name": "Gloves"})
    assert resp.json()["slug"] == "gloves"
    resp = admin.post("/api/rpc/category/create",
                      json={"name": "Boxing gloves", "slug": "Gloves"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"

    admin.post("/api/rpc/category/create", json={"name": "50% off"})
    admin.post("/api/rpc/category/create", json={"name": "500 club"})
    found = admin.get("/api/rpc/category/list",
                      params={"search": "50%"}).json()
    assert [c["name"] for c in found["items"]] == ["50% off"]
    found = admin.get("/api/rpc/category/list",
                      params={"search": "g_oves"}).json()
    assert found["items"] == []


def test_product_set_categories(admin):
    product = admin.post("/api/rpc/product/create",
                         json={"name": "Hand Wraps", "price": 12.99}).json()
    gloves = admin.post("/api/rpc/category/create",
                        json={"name": "Gloves"}).json()
    gear = admin.post("/api/rpc/category/create",
                      json={"name": "Gear"}).json()

    resp = admin.post("/api/rpc/product/setCategories", json={
        "productId": "nope", "categoryIds": [gear["id"]],
    })
    assert resp.status_code == 404

    resp = admin.post("/api/rpc/product/setCategories", json={
        "productId": product["id"], "categoryIds": [gear["id"], "nope"],
    })
    assert resp.status_code == 400

    def linked():
        return sorted(
            c["name"] for c in admin.get(
                "/api/rpc/product/getCategoriesByProductId",
                params={"productId": product["id"]},
            ).json()
        )

    admin.post("/api/rpc/product/setCategories", json={
        "productId": product["id"], "categoryIds": [gloves["id"], gear["id"]],
    })
    assert linked() == ["Gear", "Gloves"]
    resp = admin.post("/api/rpc/product/setCategories", json={
        "productId": product["id"], "categoryIds": [gear["id"]],
    })
    assert resp.json() == {"success": True}
    assert linked() == ["Gear"]


def test_reserve_seats_stops_at_capacity(event_setup):
    ringside = event_setup["ringside_id"]

    async def go(db):
        first = await bookings.reserve_seats(db, ringside, 2)
        second = await bookings.reserve_seats(db, ringside, 1)
        await db.commit()
        return first, second

    assert db_run(go) == (True, False)
    sold = db_run(lambda db: db.get(EventTicket, ringside)).sold_count
    assert sold == 2
