"""
FastAPI Application

Main entry point for the Commerce Ops Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from opsboard.analytics.ranges import InvalidRangeError
from opsboard.config import get_settings
from opsboard.config.logging import configure_logging
from opsboard.database.connection import close_database, init_database
from opsboard.serving.api.middleware import RequestLoggingMiddleware
from opsboard.serving.api.routes import (
    analytics_router,
    forecasts_router,
    health_router,
    planning_router,
    risks_router,
    rollups_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)

WORKSPACE_PREFIX = "/api/v1/workspaces/{workspace_id}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting Commerce Ops Analytics API", environment=settings.app_env)

    await init_database()

    yield

    logger.info("Shutting down...")
    await close_database()


app = FastAPI(
    title="Commerce Ops Analytics API",
    description="KPIs, breakdowns, risk signals, forecasts and weekly plans per commerce workspace",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(InvalidRangeError)
async def invalid_range_handler(request: Request, exc: InvalidRangeError) -> JSONResponse:
    logger.info("Rejected malformed range", path=request.url.path, detail=str(exc))
    return JSONResponse(status_code=400, content={"error": "invalid_range", "detail": str(exc)})


app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(analytics_router, prefix=WORKSPACE_PREFIX, tags=["Analytics"])
app.include_router(risks_router, prefix=f"{WORKSPACE_PREFIX}/risks", tags=["Risks"])
app.include_router(planning_router, prefix=WORKSPACE_PREFIX, tags=["Planning"])
app.include_router(forecasts_router, prefix=WORKSPACE_PREFIX, tags=["Forecasts"])
app.include_router(rollups_router, prefix=f"{WORKSPACE_PREFIX}/rollups", tags=["Rollups"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
