"""Correlation IDs and access logging for every HTTP request."""

import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger, request_id_ctx

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the lifetime of a request.

    The client's ``X-Request-ID`` is reused when present so dashboard
    traces line up with server logs; otherwise a UUID4 is generated.
    One access line is written per request, at warning level for 5xx.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()
        access = {
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query or None,
        }

        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "http.request_completed",
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
            request_id=request_id,
            **access,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
