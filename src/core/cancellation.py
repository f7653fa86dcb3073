"""Cancel running pulls."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from core import reducer
from core.exceptions import PullNotFoundError

if TYPE_CHECKING:
    from core.engine import PullStream
    from core.orchestrator import PullOrchestrator
    from core.scheduler import Scheduler
    from storage.base import ProgressStore

logger = logging.getLogger(__name__)


class CancellationCoordinator:
    """Mark pulls as cancelled and tear down their streams.

    The cancelled status is written first, through the same guarded store
    update the stream consumer uses, so no event processed afterwards can
    change the record. Closing the stream happens afterwards on the scheduler
    and only serves to free the connection early; a failure there is logged
    and never reported to the caller.

    Parameters
    ----------
    store : ProgressStore
        Shared progress store.
    orchestrator : PullOrchestrator
        Owner of the open streams and of record expiry.
    scheduler : Scheduler
        Runs the stream teardown off the request path.

    """

    def __init__(self, store: ProgressStore, orchestrator: PullOrchestrator, scheduler: Scheduler) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._scheduler = scheduler

    def cancel(self, pull_id: str) -> tuple[bool, str]:
        """Cancel the pull ``pull_id``.

        Parameters
        ----------
        pull_id : str
            Identifier of the pull.

        Returns
        -------
        tuple[bool, str]
            Whether the request was accepted and a human-readable message.
            Cancelling an already finished pull is accepted as a no-op.

        Raises
        ------
        PullNotFoundError
            If no record exists for ``pull_id``.

        """
        if self._store.get(pull_id) is None:
            raise PullNotFoundError(pull_id)

        if self._store.update(pull_id, reducer.cancel) is None:
            # Lost the race against a terminal transition or against expiry
            if self._store.get(pull_id) is None:
                raise PullNotFoundError(pull_id)
            return True, "Pull already completed or cancelled"

        logger.info("Pull %s cancelled", pull_id)
        stream = self._orchestrator.release_stream(pull_id)
        if stream is not None:
            self._scheduler.call_later(0.0, partial(teardown_stream, pull_id, stream))
        self._orchestrator.schedule_expiry(pull_id)
        return True, "Pull cancelled successfully"


def teardown_stream(pull_id: str, stream: PullStream) -> None:
    """Close ``stream``, logging instead of raising on failure."""
    try:
        stream.close()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Error stopping stream of pull %s: %s", pull_id, exc)
    else:
        logger.debug("Stream of pull %s closed", pull_id)
