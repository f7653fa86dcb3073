"""Module containing the routers for the FastAPI application."""

from api.routers.health import router as health
from api.routers.images import router as images
from api.routers.index import router as index

__all__ = ["health", "images", "index"]
