"""Incremental parser for the Engine's line-delimited JSON pull stream.

Chunks arrive with no framing guarantee: one chunk may carry several JSON
objects, none, or half of one. The parser keeps the unterminated tail of each
chunk and prepends it to the next one, so an object split across chunk
boundaries is still decoded once its remainder arrives.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from core.schemas import PullEvent

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

# Garbage without a newline is dropped once the carried-over tail exceeds this size
MAX_PENDING_BYTES = 1024 * 1024


def parse_line(line: bytes) -> PullEvent | None:
    """Parse a single line into a ``PullEvent``.

    Parameters
    ----------
    line : bytes
        One line of the pull stream, with or without its line terminator.

    Returns
    -------
    PullEvent | None
        The parsed event, or ``None`` if the line is blank, is not a JSON
        object, or does not match the event shape.

    """
    text = line.decode("utf-8", errors="replace").strip()
    if not text:
        return None

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed pull line: %.120s", text)
        return None

    if not isinstance(data, dict):
        logger.debug("Skipping non-object pull line: %.120s", text)
        return None

    try:
        return PullEvent.model_validate(data)
    except ValidationError:
        logger.debug("Skipping pull line with unexpected shape: %.120s", text)
        return None


class PullEventParser:
    """Turn raw stream chunks into ``PullEvent`` objects.

    One parser instance belongs to one pull stream. ``feed`` splits the chunk
    immediately and returns a lazy iterator over the complete lines it found;
    ``flush`` drains whatever is left once the stream has ended.
    """

    def __init__(self) -> None:
        self._pending = b""

    @property
    def pending(self) -> bytes:
        """Bytes carried over to the next chunk."""
        return self._pending

    def feed(self, chunk: bytes | str) -> Iterator[PullEvent]:
        """Consume a chunk and return the events it completes.

        Parameters
        ----------
        chunk : bytes | str
            Raw data read from the pull stream.

        Returns
        -------
        Iterator[PullEvent]
            Events decoded from the complete lines, in stream order.

        """
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        *lines, tail = (self._pending + chunk).split(b"\n")

        # A tail that already holds a whole JSON object does not need to wait
        # for its terminator; a strict prefix of an object never parses.
        if tail.strip() and _is_json_object(tail):
            lines.append(tail)
            tail = b""

        if len(tail) > MAX_PENDING_BYTES:
            logger.warning("Dropping %d unterminated bytes from pull stream", len(tail))
            tail = b""

        self._pending = tail
        return _parse_lines(lines)

    def flush(self) -> Iterator[PullEvent]:
        """Return the events left in the carried-over tail and reset the parser."""
        tail, self._pending = self._pending, b""
        return _parse_lines([tail])


def _parse_lines(lines: Iterable[bytes]) -> Iterator[PullEvent]:
    for line in lines:
        event = parse_line(line)
        if event is not None:
            yield event


def _is_json_object(data: bytes) -> bool:
    try:
        return isinstance(json.loads(data), dict)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return False
