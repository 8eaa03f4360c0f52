"""Engines that run compiled jobs."""

from jobloom.execution.executors.local import LocalEngine

__all__ = ["LocalEngine"]
