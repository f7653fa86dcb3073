"""Server-Sent Events streaming of pull progress.

The pull tracker is poll-based; ``record_events`` turns polling into a push
stream by re-reading the record on a short interval and emitting a snapshot
whenever its version changes.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from api.models import PullProgressResponse
from core.exceptions import PullNotFoundError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from core.tracker import PullTracker

DEFAULT_POLL_INTERVAL = 0.25


def format_sse_event(event: dict[str, Any]) -> str:
    """Format a dict as an SSE ``data:`` line.

    Parameters
    ----------
    event : dict[str, Any]
        The event data to serialize.

    Returns
    -------
    str
        An SSE-formatted string: ``data: {json}\\n\\n``

    """
    return f"data: {json.dumps(event)}\n\n"


async def record_events(
    tracker: PullTracker,
    pull_id: str,
    interval: float = DEFAULT_POLL_INTERVAL,
    log_limit: int | None = None,
) -> AsyncGenerator[str, None]:
    """Yield SSE snapshots of a pull until it reaches a terminal status.

    The stream also ends, with an ``expired`` event, if the record disappears
    before a terminal snapshot was sent.

    Parameters
    ----------
    tracker : PullTracker
        The tracker holding the record.
    pull_id : str
        Identifier of the pull.
    interval : float
        Seconds between reads of the record.
    log_limit : int | None
        Most recent log entries sent per snapshot; ``None`` sends all.

    Yields
    ------
    str
        SSE-formatted progress snapshots.

    """
    last_version: int | None = None
    while True:
        try:
            record = tracker.get(pull_id)
        except PullNotFoundError:
            yield format_sse_event({"type": "expired", "progressId": pull_id})
            return

        if record.version != last_version:
            last_version = record.version
            snapshot = PullProgressResponse.from_record(record, log_limit).dump()
            yield format_sse_event({"type": "progress", **snapshot})

        if record.terminal:
            return
        await asyncio.sleep(interval)
