from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_tracker import __version__
from finance_tracker.db import get_db
from finance_tracker.utils.env import get_env

router = APIRouter(tags=["health"])


def _db_ping(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


@router.get("/healthz")
def healthz():
    """Liveness: the process is up. Does not touch the database."""
    return {"ok": True, "version": __version__, "env": get_env()}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    ok = _db_ping(db)
    body = {"ok": ok, "db": {"ok": ok}}
    return body if ok else JSONResponse(status_code=503, content=body)


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
