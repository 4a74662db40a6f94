"""Error handling shared by the FastAPI routes."""

import functools
import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, status

from core.exceptions import (
    CoverageFileError,
    CoverageServiceError,
    DuplicateResourceError,
    ExternalServiceError,
    RateLimitError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
)

GENERIC_ERROR_MESSAGE = "Erro interno do servidor"


def _file_error_detail(exc: CoverageFileError) -> dict[str, Any]:
    return {
        "error": "Arquivo de cobertura inválido",
        "code": exc.code,
        "details": exc.errors,
    }


def _message(exc: CoverageServiceError) -> str:
    return exc.message


def _upstream_message(exc: CoverageServiceError) -> str:
    return f"External service error: {exc.message}"


def _generic(_exc: CoverageServiceError) -> str:
    return GENERIC_ERROR_MESSAGE


# First match wins, so subclasses come before their bases.
# (exception type, HTTP status, log level, detail builder)
ERROR_RESPONSES: tuple[tuple[type[CoverageServiceError], int, int, Callable], ...] = (
    (CoverageFileError, status.HTTP_400_BAD_REQUEST, logging.WARNING, _file_error_detail),
    (ValidationError, status.HTTP_400_BAD_REQUEST, logging.WARNING, _message),
    (ResourceNotFoundError, status.HTTP_404_NOT_FOUND, logging.INFO, _message),
    (DuplicateResourceError, status.HTTP_409_CONFLICT, logging.WARNING, _message),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS, logging.WARNING, _message),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY, logging.ERROR, _upstream_message),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, logging.ERROR, _generic),
    (CoverageServiceError, status.HTTP_500_INTERNAL_SERVER_ERROR, logging.ERROR, _generic),
)


def to_http_exception(exc: CoverageServiceError) -> tuple[HTTPException, int]:
    """The HTTPException for ``exc`` and the level to log it at."""
    for error_type, status_code, level, detail in ERROR_RESPONSES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=detail(exc)), level
    return (
        HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_ERROR_MESSAGE,
        ),
        logging.ERROR,
    )


def api_route(logger: logging.Logger):
    """
    Decorator for FastAPI endpoints that provides standardized error handling.

    HTTPException passes through untouched; service errors are mapped via
    ``ERROR_RESPONSES``; anything else is logged with its traceback and
    answered with a generic 500 that leaks nothing.

    Usage:
        @router.get("/api/example")
        @api_route(logger)
        async def my_endpoint():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except CoverageServiceError as e:
                http_exc, level = to_http_exception(e)
                logger.log(
                    level,
                    "%s in %s: %s",
                    type(e).__name__,
                    func.__name__,
                    e.message,
                    exc_info=level >= logging.ERROR,
                )
                raise http_exc from e
            except Exception as e:
                logger.exception("Unexpected error in %s", func.__name__)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=GENERIC_ERROR_MESSAGE,
                ) from e

        return wrapper

    return decorator
