"""Abstract base class for pull progress stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from core.schemas import PullRecord


class ProgressStore(ABC):
    """Abstract base class for pull progress stores.

    A store maps pull ids to their current ``PullRecord``. It is shared by the
    stream consumers, the cancel handler and the polling endpoints, so every
    implementation must be safe to call from any thread without external
    locking.
    """

    @abstractmethod
    def add(self, record: PullRecord) -> None:
        """Insert a new record.

        Parameters
        ----------
        record : PullRecord
            The initial record of a pull.

        Raises
        ------
        ValueError
            If a record with the same id is already stored.

        """

    @abstractmethod
    def get(self, pull_id: str) -> PullRecord | None:
        """Retrieve a record by its id.

        Parameters
        ----------
        pull_id : str
            Identifier of the pull.

        Returns
        -------
        PullRecord | None
            The current record, or ``None`` if not found.

        """

    @abstractmethod
    def put(self, record: PullRecord) -> None:
        """Store ``record`` under its id unconditionally (last write wins).

        Parameters
        ----------
        record : PullRecord
            The record to store.

        """

    @abstractmethod
    def update(self, pull_id: str, func: Callable[[PullRecord], PullRecord | None]) -> PullRecord | None:
        """Atomically apply ``func`` to a live, non-terminal record.

        ``func`` runs while the store holds its internal lock, so the check
        that the record is still open and the write of its result form a
        single step. Writers racing on the same record (the stream consumer
        and the cancel handler) can therefore never overwrite a terminal
        record.

        Parameters
        ----------
        pull_id : str
            Identifier of the pull.
        func : Callable[[PullRecord], PullRecord | None]
            Computes the next record; returning ``None`` leaves it unchanged.

        Returns
        -------
        PullRecord | None
            The written record, or ``None`` if the record is missing, already
            terminal, or ``func`` declined to change it.

        """

    @abstractmethod
    def delete(self, pull_id: str) -> bool:
        """Remove a record.

        Parameters
        ----------
        pull_id : str
            Identifier of the pull.

        Returns
        -------
        bool
            ``True`` if a record was removed, ``False`` if none existed.

        """

    @abstractmethod
    def records(self) -> list[PullRecord]:
        """Return a snapshot of all stored records, oldest first."""
