"""Liveness endpoint, also reporting whether the Docker Engine answers."""

import asyncio
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from api.shared import get_engine
from core.engine import DockerEngine

router = APIRouter()


@router.get("/health")
async def health_check(engine: Annotated[DockerEngine, Depends(get_engine)]) -> dict[str, str]:
    """Report that the API is up and whether the Docker Engine is reachable.

    The API stays ``ok`` while the Engine is down: listing and pulls then fail
    individually with an error.
    """
    reachable = await asyncio.to_thread(engine.ping)
    return {
        "status": "ok",
        "engine": "reachable" if reachable else "unreachable",
        "timestamp": datetime.now(UTC).isoformat(),
    }
