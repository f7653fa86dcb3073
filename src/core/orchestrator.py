"""Start image pulls and drive their streams into the progress store.

Each pull is consumed by one background worker. The worker opens the stream
through the ``Engine``, parses every chunk and folds each event into the
record with ``ProgressStore.update``. Because that write is refused once the
record is terminal, a cancel issued from a request handler always wins over
events that are still in flight: the first refused write also stops the
worker.
"""

from __future__ import annotations

import logging
import threading
import uuid
from functools import partial
from typing import TYPE_CHECKING

from core import reducer
from core.exceptions import EngineError
from core.parser import PullEventParser
from core.schemas import PullRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from core.engine import Engine, PullStream
    from core.reducer import HeuristicSteps
    from core.scheduler import Scheduler
    from core.schemas import PullEvent
    from storage.base import ProgressStore

    Runner = Callable[[Callable[[], None], str], None]

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 30.0
DEFAULT_UP_TO_DATE_DELAY = 0.5


def start_thread(target: Callable[[], None], name: str) -> None:
    """Run ``target`` on a new daemon thread."""
    threading.Thread(target=target, name=name, daemon=True).start()


class PullOrchestrator:  # pylint: disable=too-many-instance-attributes
    """Create pull records and run their streams to a terminal state.

    Parameters
    ----------
    store : ProgressStore
        Shared progress store.
    engine : Engine
        Source of pull streams.
    scheduler : Scheduler
        Runs record expiry and the delayed "up to date" completion.
    steps : HeuristicSteps | None
        Percent increments for the reducer; defaults to ``reducer.DEFAULT_STEPS``.
    expiry_seconds : float
        Grace window between a terminal transition and the record's removal.
    up_to_date_delay : float
        Delay before an "up to date" pull is marked ``completed``.
    runner : Runner | None
        Starts the background worker; defaults to a daemon thread per pull.
    id_factory : Callable[[], str] | None
        Generates pull ids; defaults to random UUIDs.

    """

    def __init__(  # noqa: PLR0913
        self,
        store: ProgressStore,
        engine: Engine,
        scheduler: Scheduler,
        *,
        steps: HeuristicSteps | None = None,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        up_to_date_delay: float = DEFAULT_UP_TO_DATE_DELAY,
        runner: Runner | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._scheduler = scheduler
        self._steps = steps or reducer.DEFAULT_STEPS
        self._expiry_seconds = expiry_seconds
        self._up_to_date_delay = up_to_date_delay
        self._runner = runner or start_thread
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._streams: dict[str, PullStream] = {}
        self._streams_lock = threading.Lock()

    @property
    def expiry_seconds(self) -> float:
        """Grace window applied after every terminal transition."""
        return self._expiry_seconds

    def start_pull(self, image_reference: str) -> str:
        """Create a record for ``image_reference`` and start pulling it.

        Returns immediately; the pull runs in the background until the stream
        ends, fails, or is cancelled.

        Parameters
        ----------
        image_reference : str
            The image to pull, e.g. ``nginx:latest``.

        Returns
        -------
        str
            The id under which progress can be polled.

        """
        pull_id = self._id_factory()
        self._store.add(PullRecord(id=pull_id, image_reference=image_reference))
        logger.info("Pull %s started for %s", pull_id, image_reference)

        self._runner(partial(self._run, pull_id, image_reference), f"pull-{pull_id[:8]}")
        return pull_id

    def release_stream(self, pull_id: str) -> PullStream | None:
        """Detach and return the open stream of ``pull_id``, if any."""
        with self._streams_lock:
            return self._streams.pop(pull_id, None)

    def schedule_expiry(self, pull_id: str) -> None:
        """Remove the record of ``pull_id`` once the grace window has passed."""
        self._scheduler.call_later(self._expiry_seconds, partial(self._expire, pull_id))

    def _expire(self, pull_id: str) -> None:
        if self._store.delete(pull_id):
            logger.info("Pull %s expired", pull_id)

    def _run(self, pull_id: str, image_reference: str) -> None:
        """Worker body: open the stream and consume it to the end."""
        try:
            stream = self._engine.pull(image_reference)
        except EngineError as exc:
            logger.warning("Pull %s could not start: %s", pull_id, exc)
            self._fail(pull_id, str(exc))
            return
        except Exception as exc:
            logger.exception("Pull %s could not start", pull_id)
            self._fail(pull_id, f"Unexpected error: {exc!s}")
            return

        with self._streams_lock:
            self._streams[pull_id] = stream
        logger.debug("Pull %s stream opened", pull_id)

        try:
            # A cancel that landed while the pull was being opened found no
            # stream to tear down.
            record = self._store.get(pull_id)
            if record is None or record.terminal:
                logger.debug("Pull %s closed before its stream opened", pull_id)
                return
            self._consume(pull_id, stream)
        except EngineError as exc:
            logger.warning("Pull %s failed: %s", pull_id, exc)
            self._fail(pull_id, str(exc))
        except Exception as exc:
            logger.exception("Pull %s failed unexpectedly", pull_id)
            self._fail(pull_id, f"Unexpected error: {exc!s}")
        finally:
            self.release_stream(pull_id)
            self._close_stream(pull_id, stream)

    def _consume(self, pull_id: str, stream: PullStream) -> None:
        parser = PullEventParser()
        for chunk in stream:
            if not self._apply(pull_id, parser.feed(chunk)):
                return

        if not self._apply(pull_id, parser.flush()):
            return

        record = self._store.get(pull_id)
        if record is not None and reducer.is_up_to_date(record.status):
            # Completion is left to the promotion scheduled by ``_apply``
            return
        self._complete(pull_id)

    def _apply(self, pull_id: str, events: Iterable[PullEvent]) -> bool:
        """Fold ``events`` into the record; return ``False`` once it is closed."""
        for event in events:
            updated = self._store.update(pull_id, partial(reducer.reduce, event=event, steps=self._steps))
            if updated is None:
                logger.debug("Pull %s is closed, discarding remaining events", pull_id)
                return False

            if event.error:
                self._fail(pull_id, event.error)
                return False

            if reducer.is_up_to_date(event.status):
                self._scheduler.call_later(self._up_to_date_delay, partial(self._complete, pull_id))
        return True

    def _complete(self, pull_id: str) -> None:
        if self._store.update(pull_id, reducer.complete) is not None:
            logger.info("Pull %s completed", pull_id)
            self.schedule_expiry(pull_id)

    def _fail(self, pull_id: str, message: str) -> None:
        if self._store.update(pull_id, partial(reducer.fail, message=message)) is not None:
            logger.info("Pull %s failed: %s", pull_id, message)
            self.schedule_expiry(pull_id)

    @staticmethod
    def _close_stream(pull_id: str, stream: PullStream) -> None:
        try:
            stream.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Pull %s stream did not close cleanly: %s", pull_id, exc)
