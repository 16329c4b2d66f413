"""Minimal, fast-fail DB startup guard.

Exit code 78 is used for configuration errors.
Skipped entirely when APP_ENV=test.
"""

from __future__ import annotations

import logging
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from finance_tracker.config import settings
from finance_tracker.utils.env import is_test

CONFIG_ERROR_RC = 78

log = logging.getLogger(__name__)


def require_db_or_exit(engine=None) -> None:
    if is_test():
        log.info("startup: test mode, skipping DB check")
        return
    url = settings.DATABASE_URL
    if not url or "://" not in url:
        log.critical("startup: DATABASE_URL missing/invalid")
        sys.exit(CONFIG_ERROR_RC)
    if engine is None:
        from finance_tracker.db import engine
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        log.info("startup: DB connectivity OK")
    except SQLAlchemyError as e:
        log.critical("startup: DB check failed: %s", e)
        sys.exit(CONFIG_ERROR_RC)


__all__ = ["require_db_or_exit", "CONFIG_ERROR_RC"]
