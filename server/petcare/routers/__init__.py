"""FastAPI routers package."""

from .content import router as content_router
from .health import router as health_router
from .keyword import router as keyword_router
from .metrics import router as metrics_router
from .notification import router as notification_router
from .reservation import router as reservation_router
from .venue import router as venue_router

__all__ = [
    "content_router",
    "health_router",
    "keyword_router",
    "metrics_router",
    "notification_router",
    "reservation_router",
    "venue_router",
]
