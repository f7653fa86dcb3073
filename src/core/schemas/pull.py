"""Module containing the pydantic models for image pulls."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.progress import PullStatus, is_terminal


class ProgressDetail(BaseModel):
    """Byte counters reported by the registry for a single layer.

    Attributes
    ----------
    current : int | None
        Bytes transferred so far.
    total : int | None
        Total bytes of the layer, when known.

    """

    current: int | None = None
    total: int | None = None

    @property
    def has_counters(self) -> bool:
        """Return ``True`` if both counters are present and ``total`` is positive."""
        return self.current is not None and self.total is not None and self.total > 0


class PullEvent(BaseModel):
    """A single JSON line from the Engine's pull stream.

    Unknown keys (``progress``, ``errorDetail``...) are kept so the raw event can
    be replayed in the progress log.

    Attributes
    ----------
    status : str | None
        Free-text phase reported by the registry.
    progress_detail : ProgressDetail | None
        Byte counters for the layer, if any.
    id : str | None
        Identifier of the layer the event refers to.
    error : str | None
        In-band failure message; the stream ends after such an event.

    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: str | None = None
    progress_detail: ProgressDetail | None = Field(default=None, alias="progressDetail")
    id: str | None = None
    error: str | None = None

    @property
    def has_counters(self) -> bool:
        """Return ``True`` if the event carries usable byte counters."""
        return self.progress_detail is not None and self.progress_detail.has_counters

    def to_log_entry(self) -> dict[str, Any]:
        """Return the event as it was received, for the progress log."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PullRecord(BaseModel):  # pylint: disable=too-many-instance-attributes
    """Progress record of one outstanding or recently finished pull.

    Records are treated as immutable values: every transition produces a new
    record through ``model_copy`` and is written back through the store.

    Attributes
    ----------
    id : str
        Opaque identifier of the pull, never reused while the record is live.
    image_reference : str
        The pull target as given by the caller (e.g. ``nginx:latest``).
    status : str
        Registry phase text or one of the synthesized ``PullStatus`` values.
    percent : int
        Completion estimate in ``[0, 100]``.
    layer_id : str | None
        Most recently reported layer.
    progress_detail : ProgressDetail | None
        Byte counters of the most recent event that carried them.
    log : list[dict[str, Any]]
        Parsed events in arrival order.
    error : str | None
        Failure or cancellation message.
    version : int
        Incremented by the store on every successful write.
    created_at : datetime
        When the pull was requested.
    finished_at : datetime | None
        When the record became terminal.

    """

    id: str
    image_reference: str
    status: str = PullStatus.STARTING
    percent: int = Field(default=0, ge=0, le=100)
    layer_id: str | None = None
    progress_detail: ProgressDetail | None = None
    log: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def terminal(self) -> bool:
        """Return ``True`` once the pull has completed, failed or been cancelled."""
        return is_terminal(self.status)
