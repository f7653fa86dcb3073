"""Main module for the FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from api.config import get_settings
from api.middleware import (
    engine_error_handler,
    limiter,
    pull_not_found_handler,
    rate_limit_exception_handler,
    validation_exception_handler,
)
from api.routers import health, images, index
from api.shared import API_NAME, API_VERSION, get_engine, get_tracker
from core.exceptions import EngineError, PullNotFoundError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

# Load settings
settings = get_settings()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Release the tracker's timers and the Engine client on shutdown."""
    yield
    if get_tracker.cache_info().currsize:
        get_tracker().shutdown()
    if get_engine.cache_info().currsize:
        get_engine().close()


# Initialize the FastAPI application
app = FastAPI(
    title=API_NAME,
    description="List, inspect and pull Docker images with live progress tracking",
    version=API_VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)
app.state.limiter = limiter

# Register the custom exception handlers
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PullNotFoundError, pull_not_found_handler)
app.add_exception_handler(EngineError, engine_error_handler)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers for modular endpoints
app.include_router(index)
app.include_router(health)
app.include_router(images)
