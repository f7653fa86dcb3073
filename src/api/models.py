"""Pydantic models for the API request/response types.

Responses are serialized with camelCase keys, the shape the dashboard client
reads.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.schemas import ProgressDetail, PullRecord


class CamelModel(BaseModel):
    """Base model emitting camelCase keys and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent to clients."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PullRequest(BaseModel):
    """Request model for the ``/api/images/pull`` endpoint.

    Attributes
    ----------
    image_reference : str
        The image to pull, e.g. ``nginx:latest``. Also accepted as
        ``imageName``.

    """

    image_reference: str = Field(
        ...,
        validation_alias=AliasChoices("imageReference", "imageName", "image_reference"),
        description="Image reference to pull (name[:tag] or name@digest)",
    )

    @field_validator("image_reference")
    @classmethod
    def validate_image_reference(cls, v: str) -> str:
        """Validate that ``image_reference`` is not empty."""
        v = v.strip()
        if not v:
            err = "Image name is required"
            raise ValueError(err)
        return v


class PullStartResponse(CamelModel):
    """Response of the ``/api/images/pull`` endpoint.

    ``id`` and ``progressId`` carry the same value; the latter is kept for the
    dashboard client.
    """

    success: bool = True
    id: str = Field(..., description="Pull id to poll")
    progress_id: str = Field(..., description="Same as id")


class PullProgressResponse(CamelModel):
    """Progress of a single pull as seen by polling clients.

    Attributes
    ----------
    progress_id : str
        Identifier of the pull.
    image_reference : str
        The image being pulled.
    status : str
        Registry phase text, or ``starting``/``completed``/``cancelled``/``error``.
    progress : int
        Percent complete, ``0`` to ``100``.
    logs : list[dict[str, Any]]
        Raw events received so far.
    id : str | None
        Most recently reported layer.
    progress_detail : ProgressDetail | None
        Byte counters of the most recent layer update.
    error : str | None
        Failure or cancellation message.
    terminal : bool
        ``True`` once polling can stop.
    log_count : int
        Number of events received; ``logs`` may hold only the most recent.

    """

    progress_id: str
    image_reference: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    logs: list[dict[str, Any]] = Field(default_factory=list)
    id: str | None = None
    progress_detail: ProgressDetail | None = None
    error: str | None = None
    terminal: bool = False
    log_count: int = 0

    @classmethod
    def from_record(cls, record: PullRecord, log_limit: int | None = None) -> PullProgressResponse:
        """Build the response from a stored ``PullRecord``.

        Parameters
        ----------
        record : PullRecord
            The record to serialize.
        log_limit : int | None
            Keep only this many of the most recent log entries; ``None`` or
            ``0`` keeps them all.

        Returns
        -------
        PullProgressResponse
            The response model.

        """
        logs = record.log[-log_limit:] if log_limit else record.log
        return cls(
            progress_id=record.id,
            image_reference=record.image_reference,
            status=record.status,
            progress=record.percent,
            logs=logs,
            id=record.layer_id,
            progress_detail=record.progress_detail,
            error=record.error,
            terminal=record.terminal,
            log_count=len(record.log),
        )


class PullListResponse(CamelModel):
    """Response of the pull listing endpoint."""

    pulls: list[PullProgressResponse] = Field(default_factory=list)
    count: int = 0


class ActionResponse(CamelModel):
    """Outcome of a cancel or delete request."""

    success: bool
    message: str


class ImageSummary(CamelModel):
    """A local Docker image."""

    id: str
    tags: list[str] = Field(default_factory=list)
    size: int = 0
    created: int | None = None
    parent_id: str | None = None
    repo_digests: list[str] = Field(default_factory=list)


class ImageListResponse(CamelModel):
    """Response of the image listing endpoint."""

    images: list[ImageSummary] = Field(default_factory=list)
    count: int = 0


class ErrorResponse(BaseModel):
    """Error response model.

    Attributes
    ----------
    error : str
        Error message describing what went wrong.

    """

    error: str = Field(..., description="Error message")
