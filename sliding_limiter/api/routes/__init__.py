from __future__ import annotations

from sliding_limiter.api.routes.health import router as health_router
from sliding_limiter.api.routes.limited import router as limited_router

__all__ = ["health_router", "limited_router"]
