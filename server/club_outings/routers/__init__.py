"""FastAPI routers package."""

from .carpool import router as carpool_router
from .health import router as health_router
from .metrics import router as metrics_router
from .outing import router as outing_router
from .reservation import router as reservation_router

__all__ = [
    "carpool_router",
    "health_router",
    "metrics_router",
    "outing_router",
    "reservation_router",
]
