"""HTTP middleware for request ID propagation.

Registered outermost so that every response, including 429 rejections
produced by the rate limiter, carries the correlation header, and so that
limiter log records are tagged with the request id.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from ratelimiter.core.logging import clear_request_id, set_request_id

DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Accept or generate a request id and echo it on the response.

    The incoming header (``app.state.request_id_header``, default X-Request-ID) is
    reused when present, otherwise a UUID4 is generated.  The id lives in a
    context variable for the duration of the request.

    Returns:
        Response: Downstream response with the request id and
            X-Request-Duration-ms headers added.
    """

    header_name = getattr(request.app.state, "request_id_header", DEFAULT_REQUEST_ID_HEADER)
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
