"""Server module entry point for running with ``python -m api``."""

from __future__ import annotations

import logging

import uvicorn

from api.config import get_settings

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting Docker dashboard server on %s:%d", settings.host, settings.port)

    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
