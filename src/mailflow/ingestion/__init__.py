"""Mail ingestion pipeline components."""

from .sync import SyncOrchestrator, SyncTarget, TargetOutcome, aggregate_target_outcomes

__all__ = [
    "SyncOrchestrator",
    "SyncTarget",
    "TargetOutcome",
    "aggregate_target_outcomes",
]
