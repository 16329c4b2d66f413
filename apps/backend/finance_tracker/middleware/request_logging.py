import json
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from finance_tracker.utils.request_ctx import get_request_id

log = logging.getLogger("req")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One JSON line per request. Runs inside RequestIdMiddleware so the id is set."""

    async def dispatch(self, request: Request, call_next):
        t0 = time.perf_counter()
        response: Response = await call_next(request)
        dt_ms = int((time.perf_counter() - t0) * 1000)

        payload = {
            "rid": get_request_id(),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": dt_ms,
            "client_ip": request.client.host if request.client else "unknown",
        }
        user_id = getattr(request.state, "user_id", None)
        if user_id is not None:
            payload["user_id"] = user_id
        xff = request.headers.get("x-forwarded-for")
        if xff:
            payload["xff"] = xff
        log.info(json.dumps(payload, ensure_ascii=False))
        return response
