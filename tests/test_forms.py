from datetime import datetime

import pytest
from pydantic import BaseModel

from thaiboxinghub.forms import (
    FormErrors, FormField, form_values, parse_form, submitted_values,
    validate,
)

FIELDS = [
    FormField("name", "Name", required=True),
    FormField("price", "Price", "number"),
    FormField("capacity", "Capacity", "int"),
    FormField("starts", "Starts", "datetime"),
    FormField("tags", "Tags", "list"),
    FormField("active", "Active", "checkbox"),
    FormField("lines", "Tickets", "lines",
              line_keys=("seatType", "price", "description")),
]


def test_parse_form_converts_kinds():
    data = parse_form(FIELDS, {
        "name": " Fight Night ", "price": "1500.5", "capacity": "80",
        "starts": "2025-05-03T19:30", "tags": "muay thai, , bangkok",
        "active": "1",
        "lines": "Ringside|2500|Front row\nabc|Standard|1500|\n\n"
                 "Upper|800",
    })
    assert data["name"] == "Fight Night"
    assert data["price"] == 1500.5
    assert data["capacity"] == 80
    assert data["starts"] == datetime(2025, 5, 3, 19, 30)
    assert data["tags"] == ["muay thai", "bangkok"]
    assert data["active"] is True
    assert data["lines"] == [
        {"seatType": "Ringside", "price": "2500",
         "description": "Front row"},
        {"id": "abc", "seatType": "Standard", "price": "1500",
         "description": None},
        {"seatType": "Upper", "price": "800", "description": None},
    ]


def test_parse_form_collects_every_error():
    with pytest.raises(FormErrors) as exc:
        parse_form(FIELDS, {"price": "cheap", "capacity": "1.5",
                            "lines": "only-one-part"})
    messages = exc.value.messages
    assert "Name is required" in messages
    assert "Price has an invalid value: 'cheap'" in messages
    assert "Capacity has an invalid value: '1.5'" in messages
    assert any(m.startswith("Tickets line 1") for m in messages)


def test_blank_values():
    data = parse_form(FIELDS, {"name": "x", "tags": "  "})
    assert data["tags"] == []
    assert data["price"] is None
    assert data["active"] is False
    assert data["lines"] == []


class _Thing(BaseModel):
    name: str
    capacity: int


def test_validate_wraps_pydantic_errors():
    assert validate(_Thing, {"name": "a", "capacity": 3}).capacity == 3
    with pytest.raises(FormErrors) as exc:
        validate(_Thing, {"name": "a"})
    assert exc.value.messages[0].startswith("capacity:")


def test_form_values_round_trip_shapes():
    values = form_values(FIELDS, {
        "name": "Night", "price": 10.0, "starts": datetime(2025, 5, 3, 9, 5),
        "tags": ["a", "b"], "active": 1,
        "lines": [{"id": "t1", "seatType": "VIP", "price": 10.0,
                   "description": None}],
    })
    assert values["starts"] == "2025-05-03T09:05"
    assert values["tags"] == "a, b"
    assert values["active"] is True
    assert values["lines"] == "t1|VIP|10.0|"
    assert values["capacity"] == ""


def test_submitted_values_keep_raw_input():
    out = submitted_values(FIELDS, {"name": "x", "price": "abc",
                                    "active": "off"})
    assert out["price"] == "abc"
    assert out["active"] is False
    assert out["tags"] == ""
