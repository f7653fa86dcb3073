"""State transitions of a pull record.

``reduce`` folds one stream event into a record. ``complete``, ``fail`` and
``cancel`` produce the terminal records. All of them are pure: they return a
new ``PullRecord`` and never touch the store, which is responsible for
refusing writes to records that are already terminal.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from core.progress import CANCELLED_MESSAGE, DOWNLOADING_LAYERS, PullStatus
from core.schemas import PullEvent, PullRecord

# Registry phrasings meaning there is nothing to download. Matched
# case-insensitively as substrings, so "Status: Image is up to date for ..."
# is covered by the first entry.
UP_TO_DATE_PHRASES: tuple[str, ...] = ("image is up to date", "already up to date")

DOWNLOADING_PHRASES: tuple[str, ...] = ("downloading", "pulling")
EXTRACTING_PHRASES: tuple[str, ...] = ("extracting", "verifying")
# "Already exists" is per layer: the layer is cached locally, the image may not be.
LAYER_COMPLETE_PHRASES: tuple[str, ...] = ("pull complete", "download complete", "already exists")


class HeuristicSteps(BaseModel):
    """Percent increments used when the registry reports no byte counters.

    Attributes
    ----------
    downloading : int
        Increment for downloading/pulling phases (default: ``1``).
    extracting : int
        Increment for extracting/verifying phases (default: ``2``).
    layer_complete : int
        Increment when a layer finishes (default: ``10``).
    ceiling : int
        Highest percent the heuristics may reach before the stream ends
        (default: ``99``).

    """

    model_config = ConfigDict(frozen=True)

    downloading: int = Field(default=1, ge=0)
    extracting: int = Field(default=2, ge=0)
    layer_complete: int = Field(default=10, ge=0)
    ceiling: int = Field(default=99, ge=0, le=100)


DEFAULT_STEPS = HeuristicSteps()


def _matches(status: str | None, phrases: tuple[str, ...]) -> bool:
    if not status:
        return False
    lowered = status.lower()
    return any(phrase in lowered for phrase in phrases)


def is_up_to_date(status: str | None) -> bool:
    """Return ``True`` if ``status`` says the image is already present and current."""
    return _matches(status, UP_TO_DATE_PHRASES)


def estimate_percent(current: int, event: PullEvent, steps: HeuristicSteps = DEFAULT_STEPS) -> int:
    """Estimate the completion percent after ``event``.

    Byte counters win when present; otherwise the status text moves the
    estimate forward by a small step, never past ``steps.ceiling``. The result
    is never below ``current``.

    Parameters
    ----------
    current : int
        The record's percent before the event.
    event : PullEvent
        The event being applied.
    steps : HeuristicSteps
        Increments for the text heuristics.

    Returns
    -------
    int
        The new percent, in ``[current, 100]``.

    """
    percent = current
    if event.has_counters:
        detail = event.progress_detail
        percent = math.floor(detail.current / detail.total * 100)
    elif _matches(event.status, DOWNLOADING_PHRASES):
        percent = min(current + steps.downloading, steps.ceiling)
    elif _matches(event.status, EXTRACTING_PHRASES):
        percent = min(current + steps.extracting, steps.ceiling)
    elif _matches(event.status, LAYER_COMPLETE_PHRASES):
        percent = min(current + steps.layer_complete, steps.ceiling)

    return max(current, min(percent, 100))


def reduce(record: PullRecord, event: PullEvent, steps: HeuristicSteps = DEFAULT_STEPS) -> PullRecord:
    """Fold a stream event into a pull record.

    Parameters
    ----------
    record : PullRecord
        The current, non-terminal record.
    event : PullEvent
        The next event from the stream, in arrival order.
    steps : HeuristicSteps
        Increments for the text heuristics.

    Returns
    -------
    PullRecord
        The updated record. An "up to date" event pins ``percent`` to 100 but
        leaves the record non-terminal; the caller promotes it to
        ``completed`` once pollers had a chance to see the message.

    """
    changes: dict = {
        "log": [*record.log, event.to_log_entry()],
        "layer_id": event.id or record.layer_id,
    }
    if event.has_counters:
        changes["progress_detail"] = event.progress_detail

    if is_up_to_date(event.status):
        changes["status"] = event.status
        changes["percent"] = 100
        return record.model_copy(update=changes)

    changes["percent"] = estimate_percent(record.percent, event, steps)
    if event.status:
        changes["status"] = event.status
    elif event.has_counters:
        changes["status"] = DOWNLOADING_LAYERS

    return record.model_copy(update=changes)


def complete(record: PullRecord) -> PullRecord:
    """Return ``record`` marked as successfully completed."""
    return record.model_copy(
        update={"status": PullStatus.COMPLETED, "percent": 100, "finished_at": datetime.now(UTC)},
    )


def fail(record: PullRecord, message: str) -> PullRecord:
    """Return ``record`` marked as failed with ``message``; percent and log are kept."""
    return record.model_copy(
        update={"status": PullStatus.ERROR, "error": message, "finished_at": datetime.now(UTC)},
    )


def cancel(record: PullRecord) -> PullRecord:
    """Return ``record`` marked as cancelled; percent and log are kept."""
    return record.model_copy(
        update={"status": PullStatus.CANCELLED, "error": CANCELLED_MESSAGE, "finished_at": datetime.now(UTC)},
    )
