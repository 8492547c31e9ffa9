from datetime import date, datetime

import pytest

from thaiboxinghub.helpers import (
    client_ip, ct_equal, fmt_money, is_local_path, is_valid_email,
    looks_like_url, make_order_no, parse_date, parse_datetime, slugify,
    split_list,
)


def test_slugify():
    assert slugify("Koh Samui") == "koh-samui"
    assert slugify("  Phuket -- Patong!  ") == "phuket-patong"
    assert slugify("Muay_Thai  Camp") == "muay-thai-camp"
    assert slugify("") == ""


def test_looks_like_url():
    assert looks_like_url("https://thaiboxinghub.com/blog/some-post")
    assert not looks_like_url("some-post")
    assert not looks_like_url(None)


def test_is_local_path():
    assert is_local_path("/admin/events?page=2")
    assert not is_local_path("//evil.example/phish")
    assert not is_local_path("/\\evil.example")
    assert not is_local_path("https://evil.example/")
    assert not is_local_path("admin")
    assert not is_local_path(None)


def test_make_order_no_layout():
    no = make_order_no("CP", "a1-b2_c3d4e5f6", ms=1715000123456789)
    assert no == "CPa1b2c3" + "0123456789"
    assert len(no) == 18


def test_make_order_no_short_id():
    assert make_order_no("PP", "ab", ms=42) == "PPab42"


def test_email_check():
    assert is_valid_email("fan@example.com")
    assert is_valid_email("  fan@example.com ")
    assert not is_valid_email("fan@example")
    assert not is_valid_email("")
    assert not is_valid_email(None)


def test_ct_equal():
    assert ct_equal("secret", "secret")
    assert not ct_equal("secret", "Secret")


def test_client_ip_order():
    assert client_ip({"x-forwarded-for": "1.2.3.4, 10.0.0.1"}) == "1.2.3.4"
    assert client_ip({"x-real-ip": "5.6.7.8"}) == "5.6.7.8"
    assert client_ip({}) == "127.0.0.1"


def test_parse_dates():
    assert parse_date("2025-05-03") == date(2025, 5, 3)
    assert parse_date("2025-05-03T10:00:00") == date(2025, 5, 3)
    assert parse_date("") is None
    assert parse_datetime("2025-05-03T19:30") == datetime(2025, 5, 3, 19, 30)
    assert parse_datetime(date(2025, 5, 3)) == datetime(2025, 5, 3)
    with pytest.raises(ValueError):
        parse_datetime("not a date")


def test_split_list():
    assert split_list("a, b,,c ") == ["a", "b", "c"]
    assert split_list(None) == []


def test_fmt_money():
    assert fmt_money(1500) == "฿1,500.00"
    assert fmt_money(None) == "-"
