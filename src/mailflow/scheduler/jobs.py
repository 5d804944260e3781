"""Bounded-retry job runner driving the sync, analysis, and to-do stages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, assert_never

from ..core.results import (
    Error,
    Loading,
    Success,
    SyncFailure,
    SyncPartialSuccess,
    SyncSuccess,
)
from ..ingestion.sync import SyncOrchestrator
from ..intelligence.analysis import AnalysisOrchestrator
from ..todos.sync import TodoSyncOrchestrator

LOGGER = logging.getLogger(__name__)

Outcome = Success[Any] | Error | Loading | SyncSuccess | SyncPartialSuccess | SyncFailure
Job = Callable[[], Awaitable[Outcome]]
Notifier = Callable[[str, str], None]
ReportSink = Callable[["PipelineReport"], None]


class WorkStatus(Enum):
    """What the scheduler should do after a job attempt."""

    SUCCESS = "success"
    RETRY = "retry"
    FAILURE = "failure"


@dataclass(slots=True, frozen=True)
class JobReport:
    """Final state of a job after its retries."""

    name: str
    status: WorkStatus
    attempts: int
    outcome: Outcome | None
    error_message: str | None = None


@dataclass(slots=True, frozen=True)
class PipelineReport:
    """Reports for each stage of one pipeline cycle."""

    sync: JobReport
    analysis: JobReport
    todos: JobReport


def classify(outcome: Outcome) -> WorkStatus:
    """Map an orchestrator outcome to the scheduler's next step."""
    match outcome:
        case Success() | SyncSuccess() | SyncPartialSuccess():
            return WorkStatus.SUCCESS
        case Error() | SyncFailure() | Loading():
            return WorkStatus.RETRY
        case _:
            assert_never(outcome)


def describe_failure(outcome: Outcome | None) -> str:
    """Return the error message carried by a failed outcome."""
    if isinstance(outcome, (Error, SyncFailure)):
        return outcome.error.message
    if isinstance(outcome, Loading):
        return "Job did not finish"
    return "Job failed"


def log_notifier(job_name: str, message: str) -> None:
    """Default terminal-failure sink."""
    LOGGER.error("Job %s failed permanently: %s", job_name, message)


class JobScheduler:
    """Run pipeline jobs with bounded retries and report terminal failures."""

    def __init__(
        self,
        sync: SyncOrchestrator,
        analysis: AnalysisOrchestrator,
        todos: TodoSyncOrchestrator,
        *,
        list_name: str,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 5.0,
        notifier: Notifier = log_notifier,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._sync = sync
        self._analysis = analysis
        self._todos = todos
        self._list_name = list_name
        self._max_attempts = max_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._notifier = notifier
        self._sleep = sleep

    async def run_with_retry(self, name: str, job: Job) -> JobReport:
        """Run ``job`` until it succeeds or the attempt budget is spent."""
        outcome: Outcome | None = None
        message: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                outcome = await job()
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning(
                    "Job %s raised on attempt %s: %s", name, attempt, exc, exc_info=True
                )
                outcome = None
                message = str(exc) or type(exc).__name__
            else:
                status = classify(outcome)
                if status is WorkStatus.SUCCESS:
                    if isinstance(outcome, SyncPartialSuccess):
                        LOGGER.warning(
                            "Job %s partially succeeded: %s",
                            name,
                            "; ".join(outcome.error_messages),
                        )
                    return JobReport(name, WorkStatus.SUCCESS, attempt, outcome)
                message = describe_failure(outcome)
                LOGGER.warning(
                    "Job %s attempt %s/%s failed: %s",
                    name,
                    attempt,
                    self._max_attempts,
                    message,
                )

            if attempt < self._max_attempts:
                await self._sleep(self._retry_backoff_seconds * 2 ** (attempt - 1))

        final_message = message or describe_failure(outcome)
        self._notifier(name, final_message)
        return JobReport(
            name, WorkStatus.FAILURE, self._max_attempts, outcome, final_message
        )

    async def run_pipeline(self) -> PipelineReport:
        """Sync mail, analyse pending messages, then deliver pending to-dos."""
        sync_report = await self.run_with_retry("gmail_sync", self._sync.run)
        analysis_report = await self.run_with_retry(
            "email_processing", self._analysis.analyze_pending
        )
        todo_report = await self.run_with_retry(
            "todo_sync", lambda: self._todos.sync_pending(self._list_name)
        )
        return PipelineReport(sync_report, analysis_report, todo_report)

    async def run_periodic(
        self,
        interval_seconds: float,
        *,
        iterations: int | None = None,
        on_report: ReportSink | None = None,
    ) -> list[PipelineReport]:
        """Repeat the pipeline every ``interval_seconds``.

        Each cycle is logged and handed to ``on_report`` as soon as it
        finishes. Runs forever unless ``iterations`` is given; only a bounded
        run collects its reports into the returned list. Cancellation takes
        effect at the next suspension point; stage mutations already
        committed are kept.
        """
        reports: list[PipelineReport] = []
        cycle = 0
        while iterations is None or cycle < iterations:
            cycle += 1
            LOGGER.info("Starting pipeline cycle %s", cycle)
            report = await self.run_pipeline()
            LOGGER.info(
                "Pipeline cycle %s finished: %s",
                cycle,
                ", ".join(
                    f"{job.name}={job.status.value}"
                    for job in (report.sync, report.analysis, report.todos)
                ),
            )
            if on_report is not None:
                on_report(report)
            if iterations is None:
                await self._sleep(interval_seconds)
                continue
            reports.append(report)
            if cycle < iterations:
                await self._sleep(interval_seconds)
        return reports


__all__ = [
    "JobReport",
    "JobScheduler",
    "PipelineReport",
    "WorkStatus",
    "classify",
    "describe_failure",
    "log_notifier",
]
