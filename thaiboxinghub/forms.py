"""Admin form fields: parse submitted HTML forms into procedure input and
render stored rows back into form values.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from pydantic import ValidationError

from .helpers import parse_datetime, split_list

Options = Union[
    Sequence[tuple[str, str]],
    Callable[[Any], Awaitable[list[tuple[str, str]]]],
]


@dataclass
class FormField:
    name: str
    label: str
    # text | textarea | number | int | checkbox | select | datetime | date
    # | list | lines
    kind: str = "text"
    required: bool = False
    options: Optional[Options] = None
    # for kind == "lines": the keys of one "a|b|c" line
    line_keys: tuple[str, ...] = ()
    help: str = ""
    blank_label: str = "(none)"


class FormErrors(Exception):
    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = messages


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_lines(f: FormField, raw: str, errors: list[str]) -> list[dict]:
    out = []
    n = len(f.line_keys)
    for lineno, line in enumerate((raw or "").splitlines(), start=1):
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split("|")]
        ident = None
        if len(parts) == n + 1:
            ident, parts = parts[0] or None, parts[1:]
        elif len(parts) == n - 1:
            parts.append("")
        elif len(parts) != n:
            errors.append(
                f"{f.label} line {lineno}: expected "
                + "|".join(f.line_keys)
            )
            continue
        item = dict(zip(f.line_keys, parts))
        if not item[f.line_keys[-1]]:
            item[f.line_keys[-1]] = None
        if ident:
            item["id"] = ident
        out.append(item)
    return out


def parse_form(fields: Sequence[FormField], form) -> dict:
    """Convert raw form strings to typed values keyed by field name.

    Raises FormErrors with every conversion problem found.
    """
    data: dict[str, Any] = {}
    errors: list[str] = []
    for f in fields:
        raw = form.get(f.name)
        if f.kind == "checkbox":
            data[f.name] = raw not in (None, "", "0", "false", "off")
            continue
        if f.kind == "lines":
            data[f.name] = _parse_lines(f, raw, errors)
            continue
        if _blank(raw):
            if f.required:
                errors.append(f"{f.label} is required")
            data[f.name] = [] if f.kind == "list" else None
            continue
        raw = raw.strip()
        try:
            if f.kind == "number":
                data[f.name] = float(raw)
            elif f.kind == "int":
                data[f.name] = int(raw)
            elif f.kind in ("datetime", "date"):
                data[f.name] = parse_datetime(raw)
            elif f.kind == "list":
                data[f.name] = split_list(raw)
            else:
                data[f.name] = raw
        except ValueError:
            errors.append(f"{f.label} has an invalid value: {raw!r}")
    if errors:
        raise FormErrors(errors)
    return data


def validate(model, data: dict):
    try:
        return model(**data)
    except ValidationError as e:
        raise FormErrors(validation_messages(e))


def validation_messages(exc: ValidationError) -> list[str]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def _show(value, kind: str):
    if value is None:
        return ""
    if kind == "datetime" and isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M")
    if kind == "date" and isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if kind == "list" and isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value


def form_values(fields: Sequence[FormField], data: dict) -> dict:
    """Values for rendering a stored row in the form."""
    out = {}
    for f in fields:
        value = data.get(f.name)
        if f.kind == "checkbox":
            out[f.name] = bool(value)
        elif f.kind == "lines":
            lines = []
            for item in value or ():
                parts = [item.get("id") or ""]
                for key in f.line_keys:
                    v = item.get(key)
                    parts.append("" if v is None else str(v))
                lines.append("|".join(parts))
            out[f.name] = "\n".join(lines)
        else:
            out[f.name] = _show(value, f.kind)
    return out


def submitted_values(fields: Sequence[FormField], form) -> dict:
    """Raw submitted values, for re-rendering a rejected form."""
    out = {}
    for f in fields:
        if f.kind == "checkbox":
            out[f.name] = form.get(f.name) not in (None, "", "0", "off")
        else:
            out[f.name] = form.get(f.name) or ""
    return out


async def resolve_options(db, fields: Sequence[FormField]) -> dict:
    out = {}
    for f in fields:
        if f.options is None:
            continue
        if callable(f.options):
            out[f.name] = await f.options(db)
        else:
            out[f.name] = list(f.options)
    return out
