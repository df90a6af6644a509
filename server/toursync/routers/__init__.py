"""FastAPI routers package."""

from .country import router as country_router
from .health import router as health_router
from .integration import router as integration_router
from .metrics import router as metrics_router
from .period import router as period_router
from .queue import router as queue_router
from .tour import router as tour_router

__all__ = [
    "country_router",
    "health_router",
    "integration_router",
    "metrics_router",
    "period_router",
    "queue_router",
    "tour_router",
]
