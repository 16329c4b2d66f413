import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finance_tracker import __version__
from finance_tracker.config import ALLOW_ORIGINS, settings
from finance_tracker import db as app_db
from finance_tracker.errors import LedgerError
from finance_tracker.logging import configure_dev_logging, configure_json_logging
from finance_tracker.middleware.request_id import RequestIdMiddleware
from finance_tracker.middleware.request_logging import RequestLogMiddleware
from finance_tracker.routers import auth as auth_router
from finance_tracker.routers import categories as categories_router
from finance_tracker.routers import health as health_router
from finance_tracker.routers import transactions as transactions_router
from finance_tracker.services import metrics
from finance_tracker.startup_guard import require_db_or_exit
from finance_tracker.utils.env import is_prod

# Production JSON logging; plain text elsewhere
if is_prod():
    configure_json_logging(settings.LOG_LEVEL)
else:
    configure_dev_logging(settings.LOG_LEVEL)

logger = logging.getLogger("uvicorn.error")


def _create_tables_dev() -> None:
    """Dev/test convenience; production schemas come from Alembic."""
    if is_prod():
        return
    app_db.Base.metadata.create_all(bind=app_db.engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    require_db_or_exit()
    _create_tables_dev()
    # Prime Prometheus metrics so they appear in /metrics even before first sample
    metrics.prime_metrics()
    try:
        yield
    finally:
        # Keep the shared in-memory SQLite schema alive across test clients
        if not app_db.is_memory_db(app_db.engine.url):
            app_db.engine.dispose()


app = FastAPI(
    title="Finance Tracker",
    version=__version__,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    metrics.record_error(exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


# Global exception handler to log unhandled errors (prevents silent 500s)
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception in API request %s %s:\n%s",
        request.method,
        request.url.path,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Added last-to-first: RequestId wraps the request log so "rid" is populated
app.add_middleware(RequestLogMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

app.include_router(health_router.router)
app.include_router(auth_router.router)
app.include_router(transactions_router.router)
app.include_router(categories_router.router)
