"""
API Routes Module
"""
from .health import router as health_router
from .analytics import router as analytics_router
from .risks import router as risks_router
from .planning import router as planning_router
from .forecasts import router as forecasts_router
from .rollups import router as rollups_router

__all__ = [
    "health_router",
    "analytics_router",
    "risks_router",
    "planning_router",
    "forecasts_router",
    "rollups_router",
]
