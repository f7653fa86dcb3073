"""Exceptions raised by the pull tracker and the Engine adapter."""

from __future__ import annotations


class EngineError(Exception):
    """The Docker Engine refused or failed a request."""


class ImageNotFoundError(EngineError):
    """The requested image does not exist locally or in the registry."""


class ImageConflictError(EngineError):
    """The image cannot be removed because it is in use."""


class PullNotFoundError(KeyError):
    """No progress record exists for the given pull id."""

    def __init__(self, pull_id: str) -> None:
        super().__init__(pull_id)
        self.pull_id = pull_id

    def __str__(self) -> str:
        return f"Pull {self.pull_id!r} not found"
