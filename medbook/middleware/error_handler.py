"""Exception handlers mapping errors to JSON responses."""

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from medbook.core.exceptions import AppException

logger = structlog.get_logger(__name__)

# Seconds a client should wait before retrying a retryable error
RETRY_AFTER_SECONDS = 5


def error_body(request: Request, error: str, message: str, **extra) -> dict:
    """Build the common error payload."""
    return {"error": error, "message": message, "path": str(request.url.path), **extra}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions.

    Retryable errors carry a Retry-After header.
    """
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    if exc.status_code >= 500:
        logger.error("request_error", error=exc.__class__.__name__, message=exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.__class__.__name__, exc.message),
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions raised by routing and dependencies."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, "HTTPException", str(exc.detail)),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request validation errors.

    Returns:
        422 response listing the invalid fields
    """
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            request,
            "ValidationError",
            "Request validation failed",
            details=jsonable_encoder(exc.errors()),
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without leaking internals."""
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "InternalServerError", "An unexpected error occurred"),
    )
