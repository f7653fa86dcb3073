"""Deferred callbacks for record expiry and delayed status transitions."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    """Runs callbacks after a delay, off the caller's thread."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        """Schedule ``callback`` to run once after ``delay`` seconds."""
        ...

    def shutdown(self) -> None:
        """Drop every pending callback."""
        ...


class TimerScheduler:
    """Scheduler backed by one daemon ``threading.Timer`` per callback.

    Pending timers are tracked so ``shutdown`` can cancel them when the
    application stops. Exceptions raised by a callback are logged and do not
    affect other callbacks.
    """

    def __init__(self) -> None:
        self._timers: set[threading.Timer] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of callbacks that have not run yet."""
        with self._lock:
            return len(self._timers)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` on a timer thread after ``delay`` seconds.

        Parameters
        ----------
        delay : float
            Seconds to wait; negative values are treated as zero.
        callback : Callable[[], None]
            The function to call.

        """
        timer: threading.Timer

        def _run() -> None:
            with self._lock:
                self._timers.discard(timer)
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback %r failed", callback)

        timer = threading.Timer(max(delay, 0.0), _run)
        timer.daemon = True
        with self._lock:
            if self._closed:
                logger.debug("Scheduler is shut down, dropping %r", callback)
                return
            self._timers.add(timer)
        timer.start()

    def shutdown(self) -> None:
        """Cancel all pending timers and refuse new ones."""
        with self._lock:
            self._closed = True
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Cancelled %d pending timers", len(timers))
