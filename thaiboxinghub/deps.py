from datetime import date, datetime
from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .errors import Unauthorized
from .helpers import fmt_money
from .infra.sql import make_async_engine


PACKAGE_DIR = Path(__file__).resolve().parent

engine, SessionAsync = make_async_engine(config.DATABASE_URL)

templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))


def _fmt_dt(value, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime(fmt)
    return "" if value is None else value


templates.env.filters["money"] = fmt_money
templates.env.filters["dt"] = _fmt_dt
templates.env.globals["site_name"] = "ThaiBoxingHub"


async def get_db() -> AsyncSession:
    async with SessionAsync() as session:
        yield session


def is_admin(request: Request) -> bool:
    return bool(request.session.get("admin_user"))


def require_admin(request: Request) -> None:
    """Dependency for JSON procedures: 401 instead of a login redirect."""
    if not is_admin(request):
        raise Unauthorized()


def http_client(request: Request):
    return request.app.state.http
