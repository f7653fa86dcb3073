"""In-memory, thread-safe storage implementation for pull records."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from storage.base import ProgressStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from core.schemas import PullRecord

logger = logging.getLogger(__name__)


class MemoryProgressStore(ProgressStore):
    """Process-local progress store guarded by a single lock.

    Records live only as long as the process. Reads return the stored record
    objects directly; records are never mutated in place, so a reader holding
    one sees a consistent snapshot.
    """

    def __init__(self) -> None:
        self._records: dict[str, PullRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, pull_id: object) -> bool:
        with self._lock:
            return pull_id in self._records

    def add(self, record: PullRecord) -> None:
        """Insert a new record, refusing to reuse a live id."""
        with self._lock:
            if record.id in self._records:
                msg = f"Pull {record.id!r} already exists"
                raise ValueError(msg)
            self._records[record.id] = record

    def get(self, pull_id: str) -> PullRecord | None:
        """Return the current record for ``pull_id``, or ``None``."""
        with self._lock:
            return self._records.get(pull_id)

    def put(self, record: PullRecord) -> None:
        """Store ``record`` under its id, bumping its version."""
        with self._lock:
            previous = self._records.get(record.id)
            version = previous.version + 1 if previous is not None else record.version
            self._records[record.id] = record.model_copy(update={"version": version})

    def update(self, pull_id: str, func: Callable[[PullRecord], PullRecord | None]) -> PullRecord | None:
        """Apply ``func`` to a live, non-terminal record under the store lock.

        Parameters
        ----------
        pull_id : str
            Identifier of the pull.
        func : Callable[[PullRecord], PullRecord | None]
            Computes the next record. Must be fast and must not call back into
            the store.

        Returns
        -------
        PullRecord | None
            The written record, or ``None`` if nothing was written.

        """
        with self._lock:
            current = self._records.get(pull_id)
            if current is None or current.terminal:
                return None

            updated = func(current)
            if updated is None:
                return None

            updated = updated.model_copy(update={"version": current.version + 1})
            self._records[pull_id] = updated
            return updated

    def delete(self, pull_id: str) -> bool:
        """Remove the record for ``pull_id`` if present."""
        with self._lock:
            removed = self._records.pop(pull_id, None)
        if removed is not None:
            logger.debug("Removed pull record %s", pull_id)
        return removed is not None

    def records(self) -> list[PullRecord]:
        """Return all records in insertion order."""
        with self._lock:
            return list(self._records.values())
