"""Main entry point for the Clinical Encounter Simulator (CES) FastAPI application.

This module creates and configures the FastAPI app instance that serves the REST API
for running simulated clinical encounters.

To run the development server:
    uvicorn main:app --reload

To run in production:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from pydantic import ValidationError

from api.dependencies import initialize_lifecycle_manager, shutdown_lifecycle_manager
from api.exceptions import (
    generic_exception_handler,
    simulation_error_handler,
    validation_exception_handler,
)
from api.routes import medical as medical_routes
from api.routes import sessions as session_routes
from api.routes import students as student_routes
from models.errors import SimulationError
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the lifecycle manager at startup and release it at shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to FastAPI to handle requests.
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    logger.info("Starting CES, initializing SessionLifecycleManager")
    initialize_lifecycle_manager(settings)

    yield

    logger.info("Shutting down CES")
    shutdown_lifecycle_manager()


app = FastAPI(
    title="Clinical Encounter Simulator (CES)",
    description="API for running simulated clinical encounters with a virtual patient",
    version="0.1.0",
    lifespan=lifespan,
)

# Register exception handlers
app.add_exception_handler(SimulationError, simulation_error_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Register route modules
app.include_router(session_routes.router)
app.include_router(student_routes.router)
app.include_router(medical_routes.router)


@app.get("/")
async def root():
    return {
        "message": "Welcome to the Clinical Encounter Simulator API",
        "version": "0.1.0",
        "docs_url": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
