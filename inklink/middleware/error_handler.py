# inklink/middleware/error_handler.py
"""
Error handlers that turn typed failures into structured responses.

Every AppError maps 1:1 to its status code. Request validation failures are
400s. Database failures are 500s with a generic message; the session is
rolled back by whoever owned it before the error reached here.
"""

import logging
from datetime import datetime, timezone

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from inklink.core.exceptions import AppError, ErrorCategory

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def handle_app_error(error: AppError, request: Request) -> JSONResponse:
    """Handle structured application errors"""

    log = logger.error if error.status_code >= 500 else logger.info
    log(
        f"Application error: {error.category} on {request.method} {request.url.path}: "
        f"{error.message}",
        extra={
            "category": error.category,
            "status_code": error.status_code,
            "details": error.details,
        },
    )

    return JSONResponse(
        status_code=error.status_code,
        content={
            "detail": error.message,
            "error": {
                "category": error.category,
                "message": error.message,
                "timestamp": _timestamp(),
                "path": request.url.path,
                **error.details,
            },
        },
    )


def handle_validation_error(error: RequestValidationError, request: Request) -> JSONResponse:
    """Handle FastAPI validation errors"""

    errors = []
    for err in error.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        })

    logger.warning(
        f"Validation error on {request.url.path}",
        extra={"errors": errors, "method": request.method},
    )

    message = errors[0]["message"] if len(errors) == 1 else "Request validation failed"
    return JSONResponse(
        status_code=400,
        content={
            "detail": message,
            "error": {
                "category": ErrorCategory.VALIDATION,
                "message": message,
                "timestamp": _timestamp(),
                "path": request.url.path,
                "validation_errors": errors,
            },
        },
    )


def handle_database_error(error: SQLAlchemyError, request: Request) -> JSONResponse:
    """Handle database errors"""

    is_connection_error = isinstance(error, OperationalError)
    is_integrity_error = isinstance(error, IntegrityError)

    logger.error(
        f"Database error: {type(error).__name__} on {request.method} {request.url.path}",
        extra={
            "is_connection_error": is_connection_error,
            "is_integrity_error": is_integrity_error,
        },
        exc_info=error,
    )

    message = "The operation could not be completed. Please try again."
    return JSONResponse(
        status_code=503 if is_connection_error else 500,
        content={
            "detail": message,
            "error": {
                "category": ErrorCategory.INTEGRITY,
                "message": message,
                "timestamp": _timestamp(),
                "path": request.url.path,
            },
        },
        headers={"Retry-After": "30"} if is_connection_error else {},
    )


# Exception handlers for FastAPI
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """FastAPI exception handler for AppError"""
    return handle_app_error(exc, request)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """FastAPI exception handler for validation errors"""
    return handle_validation_error(exc, request)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """FastAPI exception handler for database errors"""
    return handle_database_error(exc, request)
