import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from finance_tracker.utils.request_ctx import request_id as rid_ctx

RID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assigns or propagates a request id.

    Precedence:
      1. Incoming X-Request-ID header
      2. Generated UUID4
    Sets the contextvar for downstream logging and echoes the header back.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        rid = request.headers.get(RID_HEADER) or str(uuid.uuid4())
        token = rid_ctx.set(rid)
        try:
            response: Response = await call_next(request)
        finally:
            rid_ctx.reset(token)
        response.headers[RID_HEADER] = rid
        return response
