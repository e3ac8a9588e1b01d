"""
Exception handlers turning core errors into HTTP responses.

Every error body has the shape
``{"error": {"code", "message", "path", "method"}}``; messages are
sanitized so secrets never leak into responses or logs.
"""

import logging
import re
from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import AuthError, DomainError

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never be echoed back
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b'),  # JWT
]


def sanitize_error_message(message: Any) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub('[REDACTED]', sanitized)
    return sanitized


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[list[dict[str, Any]]] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "path": str(request.url.path),
            "method": request.method,
        }
    }
    if details is not None:
        body["error"]["details"] = details

    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["error"]["request_id"] = request_id

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def setup_error_handlers(app):
    """
    Register exception handlers on a FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        """Map core error kinds to their HTTP status."""
        message = sanitize_error_message(exc.message)
        if exc.status_code >= 500:
            logger.error(
                f"Internal error: {request.method} {request.url.path} - "
                f"{exc.code}: {message}",
                exc_info=exc,
            )
            message = "An unexpected error occurred"
        elif isinstance(exc, AuthError):
            logger.warning(
                f"Authentication failed: {request.method} {request.url.path} - {exc.code}"
            )
        else:
            logger.info(
                f"{exc.code}: {request.method} {request.url.path} - {message}"
            )
        return error_response(request, exc.status_code, exc.code, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return error_response(
            request,
            exc.status_code,
            "HTTP_EXCEPTION",
            sanitize_error_message(exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request schema validation errors."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": sanitize_error_message(error["msg"]),
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.info(f"Validation error: {request.method} {request.url.path}")
        return error_response(
            request, 422, "VALIDATION_ERROR", "Request validation failed", errors
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(
            f"Database integrity error: {request.method} {request.url.path}",
            exc_info=exc,
        )
        return error_response(
            request,
            status.HTTP_409_CONFLICT,
            "INTEGRITY_ERROR",
            "Database integrity constraint violated",
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        logger.error(
            f"Database operational error: {request.method} {request.url.path}",
            exc_info=exc,
        )
        return error_response(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_ERROR",
            "Database service temporarily unavailable",
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(
            f"SQLAlchemy error: {request.method} {request.url.path}", exc_info=exc
        )
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "DATABASE_ERROR",
            "A database error occurred",
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(
            f"Unhandled exception: {request.method} {request.url.path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=exc,
        )
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
        )
