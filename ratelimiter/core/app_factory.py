from __future__ import annotations

"""Application factory for the rate-limited FastAPI service.

Centralizes app construction (logging, limiter, middleware, handlers,
routers) so tests can build isolated apps with their own settings.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Request

from ratelimiter.api.routes import health_router, ping_router
from ratelimiter.core.config import Settings, get_settings
from ratelimiter.core.exception_handlers import setup_exception_handlers
from ratelimiter.core.logging import configure_logging
from ratelimiter.core.middleware import request_id_middleware
from ratelimiter.core.openapi import apply_openapi_customizations
from ratelimiter.core.options import RateLimiterOptions, WhiteList
from ratelimiter.core.rate_limit import install_rate_limiter


def parse_exempt_paths(paths_string: str | None) -> set[str]:
    """Parse comma-separated URL paths into a set.

    Examples:
        >>> sorted(parse_exempt_paths("/health, /metrics"))
        ['/health', '/metrics']
        >>> parse_exempt_paths("")
        set()
    """
    if not paths_string:
        return set()
    return {path.strip() for path in paths_string.split(",") if path.strip()}


def exempt_paths_whitelist(paths: set[str]) -> WhiteList:
    """Whitelist predicate matching requests by exact URL path."""

    def _is_exempt(request: Request) -> bool:
        return request.url.path in paths

    return _is_exempt


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    gatekeeper = getattr(app.state, "rate_limiter", None)
    if gatekeeper is not None:
        await gatekeeper.aclose()


def create_app(app_settings: Settings | None = None, **limiter_overrides: Any) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the global settings.
        **limiter_overrides: Extra ``RateLimiterOptions`` fields, typically
            callbacks such as ``key_generator`` or ``error_handler``.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If the limiter options are invalid.
    """
    cfg = app_settings or get_settings()

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Rate Limiter Service",
        description=(
            "Per-caller request rate limiting with pluggable in-memory or Redis "
            "counter stores. Limited responses carry X-RateLimit-* headers; "
            "exceeded budgets return 429 with Retry-After."
        ),
        version="0.1.0",
        lifespan=_lifespan,
    )

    exempt = parse_exempt_paths(cfg.rate_limit.exempt_paths)
    limit_dependencies = []

    # Installed before the request-id middleware so the latter stays outermost
    if cfg.rate_limit.enabled:
        overrides: dict[str, Any] = {}
        if exempt:
            overrides["white_list"] = exempt_paths_whitelist(exempt)
        overrides.update(limiter_overrides)

        options = RateLimiterOptions.from_settings(cfg.rate_limit, cfg.redis, **overrides)
        gatekeeper = install_rate_limiter(app, options)
        if options.hook == "dependency":
            limit_dependencies.append(Depends(gatekeeper.enforce))

    app.state.request_id_header = cfg.log.request_id_header
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(ping_router, prefix="/v1", dependencies=limit_dependencies)
    app.include_router(health_router)

    apply_openapi_customizations(app, exempt_paths=exempt)

    return app
