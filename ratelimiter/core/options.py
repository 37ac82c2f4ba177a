"""Validated limiter options.

``RateLimiterOptions`` is the programmatic configuration surface: it carries
the numeric limits plus the application callbacks (key derivation, whitelist,
custom rejection handling) that cannot live in environment settings.
Validation happens once, at construction; requests never re-check it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from fastapi import Request, Response

from ratelimiter.core.errors import ConfigurationAppError

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from ratelimiter.core.config import RateLimitSettings, RedisSettings
    from ratelimiter.core.limiter import ConsumeResult

StoreKind = Literal["memory", "redis"]
FailPolicy = Literal["open", "closed"]
HookStage = Literal["middleware", "dependency"]

KeyGenerator = Callable[[Request], str]
WhiteList = Callable[[Request], bool]
ErrorHandler = Callable[[Request, "ConsumeResult"], "Response | Awaitable[Response]"]
ErrorResponseBuilder = Callable[[Request, dict[str, Any]], Any]

_STORE_KINDS = ("memory", "redis")
_FAIL_POLICIES = ("open", "closed")
_HOOK_STAGES = ("middleware", "dependency")


@dataclass(frozen=True)
class RedisConnection:
    """Connection parameters for a Redis store built by the limiter itself."""

    host: str
    port: int = 6379
    password: str | None = None
    db: int = 0
    socket_timeout: float | None = 1.0


@dataclass(frozen=True)
class HeaderFlags:
    """Per-header switches, consulted only when ``headers`` is enabled."""

    limit: bool = True
    remaining: bool = True
    reset: bool = True
    retry_after: bool = True


@dataclass(frozen=True)
class RateLimiterOptions:
    """Immutable limiter configuration.

    Attributes:
        points: Points a key may consume per window.
        duration: Window length in seconds.
        key_prefix: Prepended to every store key.
        store_kind: ``memory`` or ``redis``.
        redis: Connection parameters when the limiter builds its own client.
        redis_client: Pre-built async client; takes precedence over ``redis``.
        headers: Emit rate-limit headers on processed requests.
        add_headers: Individual header switches.
        key_generator: Derives the key from the request (default: client IP).
        white_list: Requests for which it returns True skip limiting entirely.
        error_handler: Builds the rejection response itself.
        error_response_builder: Builds the 429 JSON body.
        fail_on_store_error: ``open`` lets requests through when the store
            fails, ``closed`` rejects them with 503.
        hook: Lifecycle stage (``middleware`` or ``dependency``).

    Raises:
        ConfigurationAppError: On any invalid or inconsistent value.
    """

    points: int
    duration: int
    key_prefix: str = "rate-limiter"
    store_kind: StoreKind = "memory"
    redis: RedisConnection | None = None
    redis_client: "aioredis.Redis | None" = None
    headers: bool = True
    add_headers: HeaderFlags = field(default_factory=HeaderFlags)
    key_generator: KeyGenerator | None = None
    white_list: WhiteList | None = None
    error_handler: ErrorHandler | None = None
    error_response_builder: ErrorResponseBuilder | None = None
    fail_on_store_error: FailPolicy = "open"
    hook: HookStage = "middleware"

    def __post_init__(self) -> None:
        if not isinstance(self.points, int) or self.points < 1:
            raise self._invalid("points", self.points, "points must be an integer >= 1")
        if not isinstance(self.duration, int) or self.duration < 1:
            raise self._invalid("duration", self.duration, "duration must be an integer >= 1 (seconds)")
        if self.store_kind not in _STORE_KINDS:
            raise self._invalid(
                "store_kind", self.store_kind, f"store_kind must be one of {', '.join(_STORE_KINDS)}"
            )
        if self.fail_on_store_error not in _FAIL_POLICIES:
            raise self._invalid(
                "fail_on_store_error",
                self.fail_on_store_error,
                "fail_on_store_error must be 'open' or 'closed'",
            )
        if self.hook not in _HOOK_STAGES:
            raise self._invalid("hook", self.hook, "hook must be 'middleware' or 'dependency'")
        if self.store_kind == "redis" and self.redis_client is None:
            if self.redis is None or not self.redis.host:
                raise ConfigurationAppError(
                    code="redis_connection_missing",
                    message="Redis store requires redis_client or redis connection host",
                    details={"field": "redis", "hint": "Set REDIS_HOST or pass redis_client"},
                )

    @staticmethod
    def _invalid(name: str, value: Any, message: str) -> ConfigurationAppError:
        return ConfigurationAppError(
            code=f"invalid_{name}",
            message=message,
            details={"field": name, "actual_value": value},
        )

    @classmethod
    def from_settings(
        cls,
        rate_limit: "RateLimitSettings",
        redis: "RedisSettings | None" = None,
        **overrides: Any,
    ) -> "RateLimiterOptions":
        """Build options from environment settings.

        Args:
            rate_limit: Resolved ``RATE_LIMIT_*`` settings.
            redis: Resolved ``REDIS_*`` settings, used when store is redis.
            **overrides: Extra fields, typically the request callbacks.

        Returns:
            Validated RateLimiterOptions.
        """

        connection = None
        if redis is not None and redis.host:
            connection = RedisConnection(
                host=redis.host,
                port=redis.port,
                password=redis.password,
                db=redis.db,
                socket_timeout=redis.socket_timeout,
            )

        values: dict[str, Any] = {
            "points": rate_limit.points,
            "duration": rate_limit.duration,
            "key_prefix": rate_limit.key_prefix,
            "store_kind": rate_limit.store,
            "redis": connection,
            "headers": rate_limit.headers,
            "add_headers": HeaderFlags(
                limit=rate_limit.header_limit,
                remaining=rate_limit.header_remaining,
                reset=rate_limit.header_reset,
                retry_after=rate_limit.header_retry_after,
            ),
            "fail_on_store_error": rate_limit.fail_on_store_error,
            "hook": rate_limit.hook,
        }
        values.update(overrides)
        return cls(**values)
