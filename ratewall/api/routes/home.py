from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Home"])


@router.get("/", response_class=PlainTextResponse)
async def home() -> str:
    """Downstream handler protected by the rate limiter."""

    return "Welcome home!"
