"""Shared objects used across API modules to avoid circular imports."""

from __future__ import annotations

from functools import lru_cache

from api.config import get_settings
from core.engine import DockerEngine
from core.tracker import PullTracker

API_NAME = "Docker Dashboard API"
API_VERSION = "1.0.0"


@lru_cache
def get_engine() -> DockerEngine:
    """Return the process-wide Docker Engine client."""
    settings = get_settings()
    return DockerEngine(base_url=settings.docker_host, timeout=settings.docker_timeout)


@lru_cache
def get_tracker() -> PullTracker:
    """Return the process-wide pull tracker.

    Route handlers receive it through ``Depends(get_tracker)`` so tests can
    swap it with ``app.dependency_overrides``.
    """
    settings = get_settings()
    return PullTracker(
        get_engine(),
        steps=settings.heuristic_steps,
        expiry_seconds=settings.pull_expiry_seconds,
        up_to_date_delay=settings.up_to_date_delay_seconds,
    )
