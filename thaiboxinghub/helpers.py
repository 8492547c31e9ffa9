import re
import time
import hmac
import uuid
from datetime import date, datetime
from typing import Optional
from urllib.parse import urlparse


# ----------------------------
# Helpers
# ----------------------------
def now_ms() -> int:
    return int(time.time() * 1000)


def utcnow() -> datetime:
    # naive server-local time, like the legacy database
    return datetime.now().replace(microsecond=0)


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip()
    # simple but effective email check
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def slugify(text: str) -> str:
    slug = (text or "").lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def looks_like_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def is_local_path(value: Optional[str]) -> bool:
    """True for a same-site path such as '/admin/events'."""
    if not value or not value.startswith("/"):
        return False
    if value.startswith(("//", "/\\")):
        return False
    parsed = urlparse(value)
    return not (parsed.scheme or parsed.netloc)


def make_order_no(prefix: str, booking_id: str, ms: int | None = None) -> str:
    """Gateway order number: prefix + 6 alnum chars of the id + 10 digits.

    ChillPay caps OrderNo at 20 characters, which this layout respects.
    """
    alnum = re.sub(r"[^a-zA-Z0-9]", "", booking_id)[:6]
    stamp = str(now_ms() if ms is None else ms)[-10:]
    return f"{prefix}{alnum}{stamp}"


def client_ip(headers) -> str:
    # first hop of x-forwarded-for is the client
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return forwarded or headers.get("x-real-ip") or "127.0.0.1"


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def parse_datetime(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).replace("Z", ""))


def split_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def fmt_money(amount: float | None) -> str:
    if amount is None:
        return "-"
    return f"฿{amount:,.2f}"
