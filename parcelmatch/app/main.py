"""
FastAPI Application Entry Point.

This is the main application file for the Parcel Match service.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from parcelmatch.app.core.config import settings
from parcelmatch.app.api.v1.router import router as api_v1_router
from parcelmatch.app.db.session import engine, Base
from parcelmatch.app.core.observability import ObservabilityMiddleware, configure_logging
from parcelmatch.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.notification import Notification
from parcelmatch.app.models.dlq import DeadLetterQueue

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and disposes of the engine's pool on
    shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Matches senders' parcels with couriers' scheduled trips",
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
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """Welcome message and API documentation links."""
    return {
        "message": "Welcome to the Parcel Match API",
        "docs": "/docs",
        "health": "/health",
    }
