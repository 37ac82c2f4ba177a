from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Ping"])


@router.get("/ping")
async def ping() -> dict:
    """Rate-limited echo endpoint used to observe limiter headers."""

    return {"message": "pong"}
