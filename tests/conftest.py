"""Fixtures for tests."""

from __future__ import annotations

import itertools
import json
import socket
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from core.exceptions import EngineError
from core.tracker import PullTracker

# A stream script item is either a raw chunk, a callable run at that point of
# the stream (to interleave cancels with data), or an exception to raise.
StreamItem = bytes | str | Callable[[], None] | Exception


def json_line(**fields: Any) -> bytes:
    """Encode ``fields`` as one line of the Engine's pull stream."""
    return (json.dumps(fields) + "\r\n").encode()


class FakeStream:
    """In-memory stand-in for an Engine pull stream."""

    def __init__(self, items: list[StreamItem]) -> None:
        self._items = items
        self.closed = False
        self.close_calls = 0
        self.close_error: Exception | None = None
        self.delivered: list[bytes] = []

    def __iter__(self) -> Iterator[bytes]:
        for item in self._items:
            if self.closed:
                return
            if isinstance(item, Exception):
                raise item
            if callable(item):
                item()
                continue
            chunk = item.encode() if isinstance(item, str) else item
            self.delivered.append(chunk)
            yield chunk

    def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class SocketResponse:
    """Streamed HTTP response stand-in reading chunks from a real socket."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.close_calls = 0

    def iter_content(self, chunk_size: int | None = None) -> Iterator[bytes]:  # noqa: ARG002
        while data := self.sock.recv(4096):
            yield data

    def close(self) -> None:
        self.close_calls += 1
        self.sock.close()


class FakeEngine:
    """Engine returning scripted streams, or raising ``EngineError`` on pull."""

    def __init__(self) -> None:
        self.scripts: dict[str, list[StreamItem] | EngineError] = {}
        self.streams: dict[str, FakeStream] = {}
        self.pulled: list[str] = []

    def script(self, reference: str, items: list[StreamItem] | EngineError) -> None:
        self.scripts[reference] = items

    def pull(self, reference: str) -> FakeStream:
        self.pulled.append(reference)
        script = self.scripts.get(reference, [])
        if isinstance(script, EngineError):
            raise script
        stream = FakeStream(script)
        self.streams[reference] = stream
        return stream


class ManualScheduler:
    """Scheduler whose clock only moves when a test advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self._pending: list[tuple[float, int, Callable[[], None]]] = []
        self._counter = itertools.count()
        self.closed = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        if not self.closed:
            self._pending.append((self.now + delay, next(self._counter), callback))

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due."""
        deadline = self.now + seconds
        while True:
            due = sorted(item for item in self._pending if item[0] <= deadline)
            if not due:
                break
            when, _, callback = due[0]
            self._pending.remove(due[0])
            self.now = max(self.now, when)
            callback()
        self.now = deadline

    def shutdown(self) -> None:
        self.closed = True
        self._pending.clear()


def run_inline(target: Callable[[], None], name: str) -> None:  # noqa: ARG001
    """Run a pull worker synchronously on the calling thread."""
    target()


EXPIRY_SECONDS = 30.0
UP_TO_DATE_DELAY = 0.5


@pytest.fixture
def engine() -> FakeEngine:
    """Provide a scriptable fake Docker Engine."""
    return FakeEngine()


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Provide a manually advanced scheduler."""
    return ManualScheduler()


@pytest.fixture
def tracker(engine: FakeEngine, scheduler: ManualScheduler) -> PullTracker:
    """Provide a tracker that runs pulls inline with predictable ids."""
    counter = itertools.count(1)
    return PullTracker(
        engine,
        scheduler=scheduler,
        expiry_seconds=EXPIRY_SECONDS,
        up_to_date_delay=UP_TO_DATE_DELAY,
        runner=run_inline,
        id_factory=lambda: f"pull-{next(counter)}",
    )


@pytest.fixture
def socket_pair() -> Iterator[tuple[socket.socket, socket.socket]]:
    """Provide a connected ``(reader, writer)`` socket pair."""
    reader, writer = socket.socketpair()
    yield reader, writer
    reader.close()
    writer.close()
