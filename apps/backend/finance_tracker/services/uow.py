from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from finance_tracker.errors import Conflict, LedgerError, from_integrity_error, is_lock_conflict
from finance_tracker.services import metrics

log = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session, op: str) -> Iterator[Session]:
    """Run one mutation as a single database transaction.

    Commits on success. Any failure rolls back everything written inside the
    block; store errors are translated into the domain taxonomy.
    """
    try:
        yield db
        db.commit()
    except LedgerError as e:
        db.rollback()
        metrics.record(op, e.code)
        raise
    except IntegrityError as e:
        db.rollback()
        err = from_integrity_error(e)
        log.info("%s rejected by store constraint: %s", op, e.orig)
        metrics.record(op, err.code)
        raise err from e
    except OperationalError as e:
        db.rollback()
        if is_lock_conflict(e):
            log.warning("%s hit lock contention: %s", op, e.orig)
            metrics.record(op, Conflict.code)
            raise Conflict() from e
        metrics.record(op, "db_error")
        raise
    except Exception:
        db.rollback()
        metrics.record(op, "error")
        raise
    else:
        metrics.record(op, "ok")
