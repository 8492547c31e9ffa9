"""ThaiBoxingHub web app.

    DATABASE_URL=sqlite:///./thaiboxinghub.db \\
        uvicorn thaiboxinghub.server:app --reload
"""
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .deps import PACKAGE_DIR, engine
from .errors import ProcedureError
from .model.db import Base
from .procedures import router as procedures_router
from .routes import admin, checkout, public

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(
    title="ThaiBoxingHub",
    default_response_class=ORJSONResponse,
)
app.mount(
    "/static",
    StaticFiles(directory=str(PACKAGE_DIR / "static")),
    name="static",
)
app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET)


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _say_hello():
    print('=' * 50)
    print('ThaiBoxingHub is starting up...')
    print(f'   - ChillPay configured: {config.chillpay_configured()}')
    print(f'   - PayPal configured:   {config.paypal_configured()}')
    print(f'   - Cron secret set:     {bool(config.CRON_SECRET)}')
    print('=' * 50)


@app.on_event("startup")
async def _db_init():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.on_event("startup")
async def _http_client_start():
    app.state.http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


@app.exception_handler(ProcedureError)
async def _procedure_error(request: Request, exc: ProcedureError):
    if exc.status_code >= 500:
        log.error("%s %s: %s", request.method, request.url.path, exc)
    return ORJSONResponse(
        {"error": {"code": exc.code.value, "message": exc.message}},
        status_code=exc.status_code,
    )


app.include_router(procedures_router)
app.include_router(checkout.router)
app.include_router(admin.router)
app.include_router(public.router)
