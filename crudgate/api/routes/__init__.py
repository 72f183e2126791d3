from __future__ import annotations

from crudgate.api.routes.health import router as health_router
from crudgate.api.routes.posts import router as posts_router

__all__ = ["health_router", "posts_router"]
