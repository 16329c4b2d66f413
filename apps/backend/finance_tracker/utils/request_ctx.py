from __future__ import annotations
from contextvars import ContextVar
from typing import Optional

# Per-request correlation id set by RequestIdMiddleware
request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id.get()
