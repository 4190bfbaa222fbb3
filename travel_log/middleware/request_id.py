"""
Travel Log Backend — Request ID Middleware
============================================

What:  Tags each request with a short correlation ID.
Why:   Log lines and error bodies from one request can be matched up, and a
       client can quote the ID from an error response.
How:   Reuses a sane client-sent X-Request-ID or generates one, stores it
       in a ContextVar for loggers and error bodies, and echoes it in the
       response header.
Who:   Every request, via Starlette middleware.
When:  Outermost middleware, so even throttled or failed requests carry it.

Client-sent IDs:
    Accepted only if they are 1-64 characters of [A-Za-z0-9._-]. Anything
    else is replaced, so a header can never inject newlines or markup into
    log output.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _new_request_id() -> str:
    # 8 hex chars is plenty for correlating one server's logs
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID and returns it as X-Request-ID.

    Behavior:
        1. Use the client's X-Request-ID if it matches the allowed pattern
        2. Otherwise generate a new short ID
        3. Store it in the ContextVar (loggers) and request.state (handlers)
        4. Add it to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        sent = request.headers.get("X-Request-ID", "")
        rid = sent if _CLIENT_ID_PATTERN.match(sent) else _new_request_id()

        # Why both: ContextVar for loggers, request.state for handlers
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
