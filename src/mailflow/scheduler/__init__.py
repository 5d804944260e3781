"""Background job scheduling."""

from .jobs import JobReport, JobScheduler, PipelineReport, WorkStatus, classify

__all__ = ["JobReport", "JobScheduler", "PipelineReport", "WorkStatus", "classify"]
