"""To-do delivery pipeline components."""

from .sync import TodoSyncOrchestrator

__all__ = ["TodoSyncOrchestrator"]
