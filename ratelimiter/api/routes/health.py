from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check, exempt from rate limiting by default.

    Returns:
        dict: ``status`` plus the active counter store, or ``disabled`` when
            no limiter is installed.
    """

    gatekeeper = getattr(request.app.state, "rate_limiter", None)
    store = gatekeeper.options.store_kind if gatekeeper is not None else "disabled"
    return {"status": "ok", "rate_limiter": store}
