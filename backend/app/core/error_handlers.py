"""Exception handlers mapping listing errors onto the JSON error envelope.

Every failure leaves the API as
``{"success": false, "error": {"code", "message", "details"?}}``. Store and
internal errors are logged in full but only described to the caller when
``DEBUG`` is on.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.exceptions import BadRequestError, NotFoundError, UpstreamFailure

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: list | None = None,
) -> JSONResponse:
    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _hidden(public: str, exc: Exception) -> str:
    return f"{public} ({exc!r})" if settings.DEBUG else public


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(exc.status_code, f"HTTP_{exc.status_code}", message)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": " -> ".join(str(part) for part in err.get("loc", [])),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed. Check the details for specific field errors.",
        details,
    )


async def bad_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    """BadRequestError, and any ValueError escaping the services."""
    if not isinstance(exc, BadRequestError):
        logger.info("ValueError reported as bad request on %s: %s", request.url.path, exc)
    return _error_response(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", str(exc))


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    message = str(exc.args[0]) if exc.args else "Resource not found"
    return _error_response(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message)


async def upstream_failure_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
    logger.error(
        "Listing stage %s failed on %s %s",
        exc.stage,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "UPSTREAM_FAILURE",
        _hidden("The data store failed to answer the request. Please try again later.",
                exc.__cause__ or exc),
        [{"stage": exc.stage}],
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR",
        _hidden("A database error occurred. Please try again later.", exc),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        _hidden("An unexpected error occurred. Please try again later.", exc),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValueError, bad_request_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(UpstreamFailure, upstream_failure_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
