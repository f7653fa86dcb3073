"""Status vocabulary shared by the pull tracker and the API layer.

Registry-provided phases (``Downloading``, ``Extracting``...) are free text and
stored verbatim; only the synthesized statuses below carry meaning for the
tracker's state machine.
"""

from __future__ import annotations

from enum import StrEnum


class PullStatus(StrEnum):
    """Synthesized statuses of an image pull."""

    STARTING = "starting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[str] = frozenset({PullStatus.COMPLETED, PullStatus.CANCELLED, PullStatus.ERROR})

CANCELLED_MESSAGE = "cancelled by request"

# Status shown when an event carries byte counters but no status text
DOWNLOADING_LAYERS = "Downloading layers"


def is_terminal(status: str) -> bool:
    """Return ``True`` if ``status`` ends a pull."""
    return status in TERMINAL_STATUSES
