"""
FastAPI Application Entry Point.

This is the main application file for the Jeepney Dispatch Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from jeepney_backend.app.core.config import settings
from jeepney_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from jeepney_backend.app.core.redis_client import ping_redis
from jeepney_backend.app.api.v1.router import router as api_v1_router
from jeepney_backend.app.db.session import engine, Base
from jeepney_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from jeepney_backend.app.models.route import Route
from jeepney_backend.app.models.checkpoint import Checkpoint, CheckpointAlias
from jeepney_backend.app.models.driver import Driver
from jeepney_backend.app.models.fare_matrix_entry import FareMatrixEntry
from jeepney_backend.app.models.booked_trip import BookedTrip
from jeepney_backend.app.models.checkpoint_scan import CheckpointScan
from jeepney_backend.app.models.earnings_record import EarningsRecord
from jeepney_backend.app.models.shift_window import ShiftWindow
from jeepney_backend.app.models.notification import Notification
from jeepney_backend.app.models.audit_log import AuditLog

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and disposes the engine on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Checkpoint-driven trip lifecycle and fare engine for jeepney fleets",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and cache reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Jeepney Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
