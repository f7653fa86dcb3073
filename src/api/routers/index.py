"""Module defining the FastAPI router for the API root."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from api.shared import API_NAME, API_VERSION

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Describe the API and where to find its documentation.

    Returns
    -------
    dict[str, Any]
        Name, version and links to the docs, health and API endpoints.

    """
    return {
        "message": API_NAME,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "openapi": "/openapi.json",
        "apiEndpoint": "/api",
    }
