"""Core module for the Docker dashboard's image pull tracker.

Provides ``PullTracker``, which starts image pulls through the Docker Engine,
folds their streamed progress into pollable records and cancels them on
request.
"""

from core.exceptions import EngineError, PullNotFoundError
from core.tracker import PullTracker

__all__ = ["EngineError", "PullNotFoundError", "PullTracker"]
