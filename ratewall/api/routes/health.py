from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports the process as up and whether the counter store answers a ping.
    Exempt from rate limiting by default so probes do not consume budget.

    Returns:
        dict: ``{"status": "ok", "store": "ok" | "unavailable"}``.
    """

    reachable = await request.app.state.counter_store.ping()
    return {"status": "ok", "store": "ok" if reachable else "unavailable"}
