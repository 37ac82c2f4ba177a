"""OpenAPI customization for rate-limited operations.

Documents the 429 response and the X-RateLimit-* / Retry-After headers on
every operation the limiter applies to, and leaves exempt paths untouched.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Points allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Points left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "ISO-8601 UTC time the window resets.",
        "schema": {"type": "string", "format": "date-time"},
    },
}

_TOO_MANY_REQUESTS: Dict[str, Any] = {
    "description": "Rate limit exceeded.",
    "headers": {
        **_RATE_LIMIT_HEADERS,
        "Retry-After": {
            "description": "Seconds until the window resets.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "example": {
                "error": "Too Many Requests",
                "message": "You have exceeded the rate limit.",
                "rateLimit": {"remaining": 0, "reset": 42.5},
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI, *, exempt_paths: Iterable[str] = ()) -> None:
    """Patch FastAPI's OpenAPI generation with rate-limit documentation.

    Args:
        app: FastAPI application.
        exempt_paths: Paths the limiter never applies to.
    """

    original_openapi = app.openapi
    exempt = set(exempt_paths)

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        for path, methods in schema.get("paths", {}).items():
            if path in exempt:
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                responses.setdefault("429", _TOO_MANY_REQUESTS)
                ok = responses.get("200")
                if isinstance(ok, dict):
                    ok.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
