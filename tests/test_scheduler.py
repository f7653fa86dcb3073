"""Tests for the timer-based scheduler."""

from __future__ import annotations

import logging
import threading

import pytest

from core.scheduler import TimerScheduler


class TestTimerScheduler:
    """Tests for TimerScheduler."""

    def test_runs_callback_after_delay(self) -> None:
        """A scheduled callback runs on a timer thread."""
        scheduler = TimerScheduler()
        done = threading.Event()

        scheduler.call_later(0.01, done.set)

        assert done.wait(timeout=2.0)
        scheduler.shutdown()

    def test_failing_callback_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """An exception in one callback is logged and does not stop others."""
        scheduler = TimerScheduler()
        done = threading.Event()

        def _boom() -> None:
            raise RuntimeError("expiry failed")

        with caplog.at_level(logging.ERROR, logger="core.scheduler"):
            scheduler.call_later(0.0, _boom)
            scheduler.call_later(0.05, done.set)
            assert done.wait(timeout=2.0)

        assert "Scheduled callback" in caplog.text
        scheduler.shutdown()

    def test_shutdown_cancels_pending(self) -> None:
        """Pending callbacks never run after shutdown."""
        scheduler = TimerScheduler()
        fired = threading.Event()

        scheduler.call_later(60.0, fired.set)
        assert scheduler.pending == 1

        scheduler.shutdown()

        assert scheduler.pending == 0
        assert not fired.wait(timeout=0.05)

    def test_rejects_after_shutdown(self) -> None:
        """Callbacks scheduled after shutdown are dropped."""
        scheduler = TimerScheduler()
        scheduler.shutdown()

        scheduler.call_later(0.0, lambda: None)

        assert scheduler.pending == 0
