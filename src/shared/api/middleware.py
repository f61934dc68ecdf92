"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core import (
    ApplicationException,
    AuthenticationException,
    ConfigurationException,
    ConflictException,
    ExternalServiceException,
    GoneException,
    PermissionDeniedException,
    RateLimitExceededException,
    ResourceNotFoundException,
    ValidationException,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins.
EXCEPTION_STATUS_CODES = (
    (ValidationException, 400),
    (AuthenticationException, 401),
    (PermissionDeniedException, 403),
    (ResourceNotFoundException, 404),
    (ConflictException, 409),
    (GoneException, 410),
    (RateLimitExceededException, 429),
    (ExternalServiceException, 502),
    (ConfigurationException, 503),
)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    Correlation IDs link every log line of a request, including those of
    background tasks it schedules.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs all requests and responses.

    Only the path is logged; query strings may carry media URLs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def status_code_for(exc: ApplicationException) -> int:
    for exc_type, status_code in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Maps ApplicationException subclasses onto HTTP status codes.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = status_code_for(exc)

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Application exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "error_message": exc.message
        }
    )

    headers = None
    if isinstance(exc, RateLimitExceededException):
        headers = {"Retry-After": str(exc.retry_after)}

    content = {"detail": exc.message, "correlation_id": correlation_id}
    if exc.details:
        content["errors"] = exc.details

    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Invalid payloads and query parameters are client errors (400)."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request",
            "correlation_id": correlation_id,
            "errors": jsonable_encoder(exc.errors())
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    # Don't expose internal details in production
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
