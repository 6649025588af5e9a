from __future__ import annotations

from ratewall.api.routes.health import router as health_router
from ratewall.api.routes.home import router as home_router

__all__ = ["health_router", "home_router"]
