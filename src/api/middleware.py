"""Middleware and exception handlers for the Docker dashboard API server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from api.models import ErrorResponse
from core.exceptions import EngineError, PullNotFoundError

if TYPE_CHECKING:
    from fastapi import Request
    from fastapi.responses import Response

logger = logging.getLogger(__name__)

# Initialize a rate limiter using the client's remote address as the key
limiter = Limiter(key_func=get_remote_address)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def rate_limit_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle rate-limiting errors with a custom exception handler.

    Parameters
    ----------
    request : Request
        The incoming HTTP request.
    exc : Exception
        The exception raised, expected to be ``RateLimitExceeded``.

    Returns
    -------
    Response
        A response indicating that the rate limit has been exceeded.

    Raises
    ------
    exc
        If the exception is not a ``RateLimitExceeded`` error, it is re-raised.

    """
    if isinstance(exc, RateLimitExceeded):
        return _rate_limit_exceeded_handler(request, exc)
    raise exc


async def validation_exception_handler(request: Request, exc: Exception) -> Response:  # noqa: ARG001
    """Report request validation failures as ``400 {"error": ...}``.

    Only the first error is reported, with pydantic's ``"Value error, "``
    prefix removed.
    """
    if not isinstance(exc, RequestValidationError):
        raise exc

    errors = exc.errors()
    if not errors:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request")

    first = errors[0]
    message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    if first.get("type") == "missing":
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
        message = f"Field required: {field}"
    return _error(status.HTTP_400_BAD_REQUEST, message)


async def pull_not_found_handler(request: Request, exc: Exception) -> Response:  # noqa: ARG001
    """Map ``PullNotFoundError`` to ``404 {"error": "Progress not found"}``."""
    if not isinstance(exc, PullNotFoundError):
        raise exc
    return _error(status.HTTP_404_NOT_FOUND, "Progress not found")


async def engine_error_handler(request: Request, exc: Exception) -> Response:
    """Map Docker Engine failures outside of pulls to ``502``."""
    if not isinstance(exc, EngineError):
        raise exc
    logger.warning("Docker Engine error on %s: %s", request.url.path, exc)
    return _error(status.HTTP_502_BAD_GATEWAY, str(exc))
