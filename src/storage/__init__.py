"""Storage module for pull progress records."""

from storage.base import ProgressStore
from storage.memory import MemoryProgressStore

__all__ = ["MemoryProgressStore", "ProgressStore"]
