"""Tests for the command-line entry point."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from mailflow.cli import build_parser, execute
from mailflow.container import ServiceContainer, build_container
from mailflow.core.config import AppSettings, StorageSettings
from mailflow.core.results import (
    BatchSyncResult,
    ErrorType,
    ProcessingError,
    Success,
    SyncFailure,
    SyncSuccess,
    TodoSyncResult,
)
from mailflow.scheduler import JobReport, JobScheduler, PipelineReport, WorkStatus


class StubSync:
    def __init__(self, result) -> None:
        self.result = result

    async def run(self):
        return self.result


class StubTodos:
    def __init__(self) -> None:
        self.list_names: list[str] = []

    async def sync_pending(self, list_name: str):
        self.list_names.append(list_name)
        return Success(
            BatchSyncResult(
                total=1,
                successful=1,
                failed=0,
                skipped=0,
                results=(TodoSyncResult(1, "Invoice", True, "TODO synced: Pay", False),),
            )
        )


class ClosableService:
    def __init__(self) -> None:
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _container(**services) -> ServiceContainer:
    container = ServiceContainer()
    for key, service in services.items():
        container.register_instance(key, service)
    return container


def test_info_command_prints_configuration(capsys: pytest.CaptureFixture[str]) -> None:
    args = build_parser().parse_args(["info"])

    exit_code = execute(args, AppSettings())

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "mailflow.db" in output
    assert "gemini-2.0-flash-exp (10/min)" in output


def test_sync_command_reports_counts_and_closes_services(
    capsys: pytest.CaptureFixture[str],
) -> None:
    resource = ClosableService()
    container = _container(
        sync=StubSync(SyncSuccess(messages_fetched=4, messages_processed=3)),
        resource=resource,
    )
    args = build_parser().parse_args(["sync"])

    exit_code = execute(args, AppSettings(), container_factory=lambda _: container)

    assert exit_code == 0
    assert "Fetched 4 message(s); stored 3 new." in capsys.readouterr().out
    assert resource.closed is True


def test_sync_failure_sets_exit_code(capsys: pytest.CaptureFixture[str]) -> None:
    failure = SyncFailure(
        ProcessingError(ErrorType.AUTHENTICATION_ERROR, "signed out")
    )
    container = _container(sync=StubSync(failure))
    args = build_parser().parse_args(["sync"])

    exit_code = execute(args, AppSettings(), container_factory=lambda _: container)

    assert exit_code == 1
    assert "authentication_error" in capsys.readouterr().out


def test_sync_todos_uses_list_name_override() -> None:
    todos = StubTodos()
    container = _container(todos=todos)
    args = build_parser().parse_args(["sync-todos", "--list-name", "Errands"])

    exit_code = execute(args, AppSettings(), container_factory=lambda _: container)

    assert exit_code == 0
    assert todos.list_names == ["Errands"]


def test_resolving_unknown_service_raises() -> None:
    container = ServiceContainer()

    assert container.try_resolve("missing") is None
    with pytest.raises(KeyError):
        container.resolve("missing")


def test_build_container_wires_pipeline(tmp_path: Path) -> None:
    settings = AppSettings(storage=StorageSettings(db_path=tmp_path / "mail.db"))
    container = build_container(settings)

    scheduler = container.resolve("scheduler")

    assert isinstance(scheduler, JobScheduler)
    assert container.resolve("store") is container.resolve("store")
    asyncio.run(container.aclose())


class StubScheduler:
    """Emits two cycles through the report callback, then returns nothing."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, int | None]] = []

    async def run_periodic(self, interval_seconds, *, iterations=None, on_report=None):
        self.calls.append((interval_seconds, iterations))
        for attempts in (1, 2):
            job = JobReport("gmail_sync", WorkStatus.SUCCESS, attempts, None)
            on_report(PipelineReport(job, job, job))
        return []


def test_watch_prints_each_cycle_as_reported(
    capsys: pytest.CaptureFixture[str],
) -> None:
    scheduler = StubScheduler()
    container = _container(scheduler=scheduler)
    args = build_parser().parse_args(["watch"])

    exit_code = execute(args, AppSettings(), container_factory=lambda _: container)

    output = capsys.readouterr().out
    assert exit_code == 0
    assert scheduler.calls == [(AppSettings().scheduler.interval_minutes * 60, None)]
    assert output.count("gmail_sync: success after 1 attempt(s)") == 3
    assert output.count("gmail_sync: success after 2 attempt(s)") == 3
