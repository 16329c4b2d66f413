"""Domain error taxonomy shared by services and the HTTP layer.

Services raise these; ``main.py`` renders them as ``{"detail", "error"}`` JSON
with the class's status code. Only ``Conflict`` is safe for a caller to retry
as a whole mutation.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, OperationalError


class LedgerError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class ValidationError(LedgerError):
    """Invalid input"""

    status_code = 400
    code = "validation_error"


class NotFound(LedgerError):
    """Resource not found"""

    status_code = 404
    code = "not_found"


class InvalidCategory(LedgerError):
    """Invalid category"""

    status_code = 400
    code = "invalid_category"


class ProtectedResource(LedgerError):
    """Default categories cannot be modified"""

    status_code = 403
    code = "protected_resource"


class Conflict(LedgerError):
    """Concurrent update in progress, retry the request"""

    status_code = 409
    code = "conflict"


# Postgres SQLSTATEs for serialization failure, deadlock, lock_not_available
_RETRYABLE_PGCODES = {"40001", "40P01", "55P03"}


def is_lock_conflict(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    msg = str(orig or exc).lower()
    return "database is locked" in msg or "could not serialize" in msg or "deadlock" in msg


def from_integrity_error(exc: IntegrityError) -> ValidationError:
    msg = str(getattr(exc, "orig", exc)).lower()
    if "foreign key" in msg:
        return ValidationError("Referenced resource is in use or missing")
    if "unique" in msg or "duplicate" in msg:
        return ValidationError("Duplicate field value entered")
    return ValidationError("Constraint violation")
