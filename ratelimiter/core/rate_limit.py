"""Rate limiting gatekeeper for FastAPI applications.

This module wires the consumption engine into the HTTP layer.  Each request
ends in exactly one of these outcomes:

- bypass: the whitelist predicate matched, the store is never touched
- allow: budget left, rate-limit headers are added and the handler runs
- deny: 429 (or the custom handler's response) with headers forced to zero
- store failure: the configured fail-open / fail-closed policy applies

The gatekeeper can run as HTTP middleware (before routing, every request) or
as a route dependency (after routing, only where it is attached).

Usage:
    gatekeeper = install_rate_limiter(app, RateLimiterOptions(points=10, duration=60))
"""

from __future__ import annotations

import hashlib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from ratelimiter.adapters.rate_limit.factory import create_counter_store
from ratelimiter.core.errors import CounterStoreError
from ratelimiter.core.limiter import ConsumeResult, RateLimiter
from ratelimiter.core.logging import get_request_id
from ratelimiter.core.options import RateLimiterOptions

logger = logging.getLogger(__name__)

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"


class RateLimitRejected(Exception):
    """Carries a finished rejection response out of a route dependency."""

    def __init__(self, response: Response) -> None:
        self.response = response
        super().__init__(f"request rejected with status {response.status_code}")


@dataclass
class GateDecision:
    """What the gatekeeper decided for one request.

    ``response`` is set when the request must not reach the handler;
    ``headers`` are added to whatever response the client finally gets.
    """

    headers: dict[str, str] = field(default_factory=dict)
    response: Response | None = None


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing caller identity."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _format_reset(result: ConsumeResult) -> str:
    return result.reset_at().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_key_generator(request: Request) -> str:
    """Key requests by client network address."""
    return request.client.host if request.client else "unknown"


def default_rejection_body(result: ConsumeResult) -> dict[str, Any]:
    return {
        "error": "Too Many Requests",
        "message": "You have exceeded the rate limit.",
        "rateLimit": {
            "remaining": 0,
            "reset": result.ms_before_next / 1000,
        },
    }


def _internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


class RateLimitGatekeeper:
    """Adapts one inbound request to one ``RateLimiter.consume`` call."""

    def __init__(self, limiter: RateLimiter, options: RateLimiterOptions) -> None:
        self.limiter = limiter
        self.options = options
        self._key_generator = options.key_generator or default_key_generator

    async def __call__(self, request: Request, call_next) -> Response:
        """HTTP middleware entry point (``app.middleware("http")``)."""
        decision = await self.check(request)
        if decision.response is not None:
            return decision.response

        response: Response = await call_next(request)
        response.headers.update(decision.headers)
        return response

    async def enforce(self, request: Request) -> None:
        """Route dependency entry point (``Depends(gatekeeper.enforce)``).

        Allow-path headers are left on ``request.state`` for
        :meth:`attach_headers`, since routes may return their own Response.

        Raises:
            RateLimitRejected: When the request is denied or the store fails
                closed; the handler installed by ``install_rate_limiter``
                returns the carried response.
        """
        decision = await self.check(request)
        if decision.response is not None:
            raise RateLimitRejected(decision.response)
        request.state.rate_limit_headers = decision.headers

    async def attach_headers(self, request: Request, call_next) -> Response:
        """HTTP middleware copying headers left by :meth:`enforce` onto the response."""
        response: Response = await call_next(request)
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(name, value)
        return response

    async def check(self, request: Request) -> GateDecision:
        """Run the bypass / consume / respond state machine for ``request``."""
        opts = self.options

        if opts.white_list is not None and opts.white_list(request):
            logger.debug("rate_limit.bypassed", extra={"path": request.url.path})
            return GateDecision()

        key = self._key_generator(request)
        key_hash = _hash_limiter_key(key)

        try:
            result = await self.limiter.consume(key)
        except CounterStoreError as exc:
            return self._on_store_error(exc, key_hash)

        log_extra = {
            "key_hash": key_hash,
            "limit": opts.points,
            "remaining": result.remaining_points,
            "window_s": opts.duration,
        }

        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
            return GateDecision(headers=self.build_headers(result))

        logger.info(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_s": result.retry_after_seconds},
        )
        response = await self._build_rejection(request, result)
        if response is None:
            return GateDecision(response=_internal_error_response())

        headers = self.build_headers(result)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return GateDecision(headers=headers, response=response)

    def build_headers(self, result: ConsumeResult) -> dict[str, str]:
        """Rate-limit headers for ``result``, honouring the enable flags."""
        opts = self.options
        if not opts.headers:
            return {}

        flags = opts.add_headers
        headers: dict[str, str] = {}
        if flags.limit:
            headers[HEADER_LIMIT] = str(opts.points)
        if flags.remaining:
            remaining = result.remaining_points if result.allowed else 0
            headers[HEADER_REMAINING] = str(remaining)
        if flags.reset:
            headers[HEADER_RESET] = _format_reset(result)
        if flags.retry_after and not result.allowed:
            headers[HEADER_RETRY_AFTER] = str(result.retry_after_seconds)
        return headers

    async def _build_rejection(self, request: Request, result: ConsumeResult) -> Response | None:
        """Denial response from the configured callbacks; None if one of them failed."""
        opts = self.options
        try:
            if opts.error_handler is not None:
                response = opts.error_handler(request, result)
                if inspect.isawaitable(response):
                    response = await response
                if not isinstance(response, Response):
                    raise TypeError(
                        f"error_handler must return a Response, got {type(response).__name__}"
                    )
                return response

            if opts.error_response_builder is not None:
                context = {"result": result, "points": opts.points, "duration": opts.duration}
                body = opts.error_response_builder(request, context)
            else:
                body = default_rejection_body(result)

            return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body)
        except Exception as exc:
            logger.error(
                "rate_limit.handler_error",
                exc_info=True,
                extra={
                    "error_type": type(exc).__name__,
                    "request_path": request.url.path,
                },
            )
            return None

    def _on_store_error(self, exc: CounterStoreError, key_hash: str) -> GateDecision:
        log_extra = {
            "key_hash": key_hash,
            "error_code": exc.code,
            "error_message": exc.message,
            "policy": self.options.fail_on_store_error,
        }

        if self.options.fail_on_store_error == "open":
            logger.warning("rate_limit.store_error", extra=log_extra)
            return GateDecision()

        logger.error("rate_limit.store_error", extra=log_extra)
        return GateDecision(
            response=JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "error": "Service Unavailable",
                    "message": "Rate limiting is temporarily unavailable.",
                },
            )
        )

    async def aclose(self) -> None:
        await self.limiter.store.close()


async def rate_limit_rejected_handler(request: Request, exc: RateLimitRejected) -> Response:
    """Return the rejection response built by ``RateLimitGatekeeper.enforce``."""
    return exc.response


def install_rate_limiter(app: FastAPI, options: RateLimiterOptions) -> RateLimitGatekeeper:
    """Build the store, engine and gatekeeper once and attach them to ``app``.

    With ``hook="middleware"`` the gatekeeper is registered as HTTP
    middleware.  With ``hook="dependency"`` nothing is attached to routes; add
    ``Depends(gatekeeper.enforce)`` where limiting should apply.  A thin
    middleware then carries the allow-path headers onto whatever response
    those routes produce.

    Args:
        app: FastAPI application.
        options: Validated limiter options.

    Returns:
        RateLimitGatekeeper: Also stored on ``app.state.rate_limiter``.
    """

    store = create_counter_store(options)
    limiter = RateLimiter(
        store,
        points=options.points,
        duration=options.duration,
        key_prefix=options.key_prefix,
    )
    gatekeeper = RateLimitGatekeeper(limiter, options)

    app.state.rate_limiter = gatekeeper
    app.add_exception_handler(RateLimitRejected, rate_limit_rejected_handler)
    if options.hook == "middleware":
        app.middleware("http")(gatekeeper)
    else:
        app.middleware("http")(gatekeeper.attach_headers)

    logger.info(
        "rate_limit.installed",
        extra={
            "store": options.store_kind,
            "hook": options.hook,
            "limit": options.points,
            "window_s": options.duration,
            "fail_on_store_error": options.fail_on_store_error,
        },
    )
    return gatekeeper
