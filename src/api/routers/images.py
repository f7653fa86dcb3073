"""Image endpoints: listing, removal, and pulls with progress tracking."""

import asyncio
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from api.config import get_settings
from api.middleware import limiter
from api.models import (
    ActionResponse,
    ErrorResponse,
    ImageListResponse,
    ImageSummary,
    PullListResponse,
    PullProgressResponse,
    PullRequest,
    PullStartResponse,
)
from api.progress import record_events
from api.shared import get_engine, get_tracker
from core.engine import DockerEngine
from core.exceptions import ImageConflictError, ImageNotFoundError
from core.tracker import PullTracker

logger = logging.getLogger(__name__)

settings = get_settings()
router = APIRouter(prefix="/api", tags=["images"])

TrackerDep = Annotated[PullTracker, Depends(get_tracker)]
EngineDep = Annotated[DockerEngine, Depends(get_engine)]

NOT_FOUND_RESPONSE: dict[int | str, dict[str, Any]] = {
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Unknown or expired pull id"},
}


@router.get("/images")
async def list_images(engine: EngineDep) -> JSONResponse:
    """List all local Docker images.

    Returns
    -------
    JSONResponse
        ``{"images": [...], "count": n}``.

    """
    images = await asyncio.to_thread(engine.list_images)
    response = ImageListResponse(images=[ImageSummary(**image) for image in images], count=len(images))
    return JSONResponse(content=response.dump())


@router.post(
    "/images/pull",
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing image name"}},
)
@limiter.limit(settings.pull_rate_limit)
async def start_pull(request: Request, pull_request: PullRequest, tracker: TrackerDep) -> JSONResponse:  # noqa: ARG001
    """Start pulling an image in the background.

    Parameters
    ----------
    request : Request
        The incoming HTTP request (used by rate limiter).
    pull_request : PullRequest
        Body holding the image reference.
    tracker : PullTracker
        The process-wide pull tracker.

    Returns
    -------
    JSONResponse
        The id under which the pull's progress can be polled.

    """
    pull_id = tracker.start_pull(pull_request.image_reference)
    return JSONResponse(content=PullStartResponse(id=pull_id, progress_id=pull_id).dump())


@router.get("/images/pull")
async def list_pulls(tracker: TrackerDep) -> JSONResponse:
    """List the pulls that are running or finished within the grace window."""
    pulls = [PullProgressResponse.from_record(record, settings.progress_log_limit) for record in tracker.records()]
    return JSONResponse(content=PullListResponse(pulls=pulls, count=len(pulls)).dump())


@router.get("/images/pull/progress/{progress_id}", responses=NOT_FOUND_RESPONSE)
async def get_pull_progress(progress_id: str, tracker: TrackerDep) -> JSONResponse:
    """Return the current progress of a pull.

    Parameters
    ----------
    progress_id : str
        Id returned by the pull endpoint.
    tracker : PullTracker
        The process-wide pull tracker.

    Returns
    -------
    JSONResponse
        Status, percent, and the events received so far.

    """
    record = tracker.get(progress_id)
    return JSONResponse(content=PullProgressResponse.from_record(record, settings.progress_log_limit).dump())


@router.get("/images/pull/progress/{progress_id}/stream", responses=NOT_FOUND_RESPONSE)
async def stream_pull_progress(progress_id: str, tracker: TrackerDep) -> StreamingResponse:
    """Stream the progress of a pull as Server-Sent Events.

    Emits a snapshot each time the record changes and ends after the first
    terminal one.
    """
    tracker.get(progress_id)
    return StreamingResponse(
        record_events(tracker, progress_id, log_limit=settings.progress_log_limit),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/images/pull/cancel/{progress_id}", responses=NOT_FOUND_RESPONSE)
async def cancel_pull(progress_id: str, tracker: TrackerDep) -> JSONResponse:
    """Cancel a running pull.

    Returns as soon as the pull is marked cancelled; the stream is closed in
    the background. Cancelling a finished pull succeeds without effect.
    """
    success, message = tracker.cancel(progress_id)
    return JSONResponse(content=ActionResponse(success=success, message=message).dump())


@router.delete("/images/{image_id:path}")
async def delete_image(image_id: str, engine: EngineDep) -> JSONResponse:
    """Remove a local image.

    Parameters
    ----------
    image_id : str
        Image id or reference.
    engine : DockerEngine
        The Docker Engine client.

    Returns
    -------
    JSONResponse
        ``{"success": true, ...}``; 404 if the image is unknown, 409 if a
        container uses it.

    """
    try:
        await asyncio.to_thread(engine.remove_image, image_id)
    except ImageNotFoundError as exc:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=ErrorResponse(error=str(exc)).model_dump())
    except ImageConflictError as exc:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=ErrorResponse(error=str(exc)).model_dump())

    return JSONResponse(content=ActionResponse(success=True, message="Image deleted successfully").dump())
