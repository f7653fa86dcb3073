"""Module containing the schemas for the image pull tracker."""

from core.schemas.pull import ProgressDetail, PullEvent, PullRecord

__all__ = ["ProgressDetail", "PullEvent", "PullRecord"]
