"""HTTP middleware for request validation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from reeves.core.errors import QueryError

CallNext = Callable[[Request], Awaitable[Response]]


class RequestSizeMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length exceeds the limit.

    Bodies sent without a Content-Length are measured by the route while
    it reads them.
    """

    def __init__(self, app: Any, max_request_bytes: int) -> None:
        super().__init__(app)
        self.max_request_bytes = max_request_bytes

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        declared = request.headers.get("content-length")
        if declared is None:
            return await call_next(request)

        if not declared.isdigit():
            error = QueryError.invalid_request(f"bad Content-Length {declared!r}")
            return JSONResponse(error.to_dict(), status_code=400)
        if int(declared) > self.max_request_bytes:
            error = QueryError.invalid_request(f"body exceeds {self.max_request_bytes} bytes")
            return JSONResponse(error.to_dict(), status_code=413)
        return await call_next(request)
