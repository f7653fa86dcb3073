"""Facade wiring the progress store, orchestrator and canceller together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.cancellation import CancellationCoordinator
from core.exceptions import PullNotFoundError
from core.orchestrator import DEFAULT_EXPIRY_SECONDS, DEFAULT_UP_TO_DATE_DELAY, PullOrchestrator
from core.scheduler import TimerScheduler
from storage.memory import MemoryProgressStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from core.engine import Engine
    from core.orchestrator import Runner
    from core.reducer import HeuristicSteps
    from core.scheduler import Scheduler
    from core.schemas import PullRecord
    from storage.base import ProgressStore

logger = logging.getLogger(__name__)


class PullTracker:
    """Entry point for starting, polling and cancelling image pulls.

    One instance is created per process and shared by all request handlers.

    Parameters
    ----------
    engine : Engine
        Source of pull streams.
    store : ProgressStore | None
        Progress store; a new ``MemoryProgressStore`` by default.
    scheduler : Scheduler | None
        Deferred task runner; a new ``TimerScheduler`` by default.
    steps : HeuristicSteps | None
        Reducer increments.
    expiry_seconds : float
        Grace window before terminal records are removed.
    up_to_date_delay : float
        Delay before an "up to date" pull is marked ``completed``.
    runner : Runner | None
        Starts the per-pull worker.
    id_factory : Callable[[], str] | None
        Generates pull ids.

    """

    def __init__(  # noqa: PLR0913
        self,
        engine: Engine,
        *,
        store: ProgressStore | None = None,
        scheduler: Scheduler | None = None,
        steps: HeuristicSteps | None = None,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        up_to_date_delay: float = DEFAULT_UP_TO_DATE_DELAY,
        runner: Runner | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryProgressStore()
        self.scheduler = scheduler if scheduler is not None else TimerScheduler()
        self._orchestrator = PullOrchestrator(
            self.store,
            engine,
            self.scheduler,
            steps=steps,
            expiry_seconds=expiry_seconds,
            up_to_date_delay=up_to_date_delay,
            runner=runner,
            id_factory=id_factory,
        )
        self._canceller = CancellationCoordinator(self.store, self._orchestrator, self.scheduler)

    def start_pull(self, image_reference: str) -> str:
        """Start pulling ``image_reference`` in the background and return the pull id."""
        return self._orchestrator.start_pull(image_reference)

    def get(self, pull_id: str) -> PullRecord:
        """Return the current record of ``pull_id``.

        Raises
        ------
        PullNotFoundError
            If the pull never existed or its record has expired.

        """
        record = self.store.get(pull_id)
        if record is None:
            raise PullNotFoundError(pull_id)
        return record

    def cancel(self, pull_id: str) -> tuple[bool, str]:
        """Cancel ``pull_id``; see ``CancellationCoordinator.cancel``."""
        return self._canceller.cancel(pull_id)

    def records(self) -> list[PullRecord]:
        """Return every pull still held in the store."""
        return self.store.records()

    def shutdown(self) -> None:
        """Stop pending timers; running pulls are left to finish on their own."""
        self.scheduler.shutdown()
        logger.info("Pull tracker shut down")
