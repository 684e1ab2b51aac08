"""Exception handlers for the CES FastAPI application.

This module converts the simulation core's error taxonomy into consistent
JSON responses. The core raises; only this layer knows about HTTP.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from models.errors import (
    BlockedError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    InvalidStateTransitionError,
    NotFoundError,
    ServiceUnavailableError,
    SimulationError,
)

logger = logging.getLogger(__name__)

# Most specific classes first; the first isinstance match wins.
STATUS_BY_ERROR: list[tuple[type[SimulationError], int, str]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (ForbiddenError, status.HTTP_403_FORBIDDEN, "Forbidden"),
    (ConflictError, status.HTTP_409_CONFLICT, "Conflict"),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT, "Invalid State Transition"),
    (InvalidStateError, status.HTTP_409_CONFLICT, "Invalid State"),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST, "Invalid Input"),
    (BlockedError, status.HTTP_423_LOCKED, "Blocked"),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "Service Unavailable"),
]


async def simulation_error_handler(request: Request, exc: SimulationError):
    """Handle SimulationError and its subclasses.

    Args:
        request: The incoming request that triggered the error.
        exc: The SimulationError exception.

    Returns:
        JSONResponse with the mapped status code and error details.
    """
    for error_type, status_code, title in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Simulation Error"

    content = {
        "error": title,
        "detail": exc.message,
        "type": type(exc).__name__,
    }
    if isinstance(exc, NotFoundError):
        content["resource_type"] = exc.resource_type
        content["resource_id"] = exc.resource_id

    return JSONResponse(status_code=status_code, content=content)


async def validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors raised outside request parsing."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "detail": "The request data failed validation",
            "validation_errors": exc.errors(include_url=False, include_context=False),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions without exposing stack traces."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred",
            "type": type(exc).__name__,
        },
    )
