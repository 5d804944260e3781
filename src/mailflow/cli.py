"""Command-line entry point for MailFlow."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from mailflow.container import ServiceContainer, build_container
from mailflow.core import AppSettings, configure_logging, load_app_settings
from mailflow.core.results import (
    Error,
    Loading,
    Success,
    SyncFailure,
    SyncPartialSuccess,
    SyncSuccess,
)
from mailflow.scheduler import JobReport, PipelineReport, WorkStatus

COMMANDS = ["info", "sync", "analyze", "sync-todos", "run", "watch"]


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="MailFlow email-to-todo pipeline")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=COMMANDS,
        help="Operation to execute.",
    )
    parser.add_argument(
        "--list-name",
        dest="list_name",
        default=None,
        help="Destination to-do list (defaults to the configured list).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of messages to analyse in one pass.",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Number of cycles for the watch command (default: run forever).",
    )
    return parser


def execute(
    args: argparse.Namespace,
    settings: AppSettings,
    *,
    container_factory: Callable[[AppSettings], ServiceContainer] = build_container,
) -> int:
    """Execute the requested CLI command and return an exit code."""
    if args.command == "info":
        print("MailFlow is ready. Configure Gmail, Gemini, and to-do settings.")
        print(f"Database path: {settings.storage.db_path}")
        print(f"AI model: {settings.ai.model} ({settings.ai.requests_per_minute}/min)")
        print(f"To-do backend: {settings.todo.backend} -> {settings.todo.list_name}")
        return 0

    container = container_factory(settings)
    return asyncio.run(_run_command(args, settings, container))


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


async def _run_command(
    args: argparse.Namespace, settings: AppSettings, container: ServiceContainer
) -> int:
    list_name = args.list_name or settings.todo.list_name
    commands: dict[str, Callable[[], Awaitable[int]]] = {
        "sync": lambda: _run_sync(container),
        "analyze": lambda: _run_analysis(container, args.limit),
        "sync-todos": lambda: _run_todo_sync(container, list_name),
        "run": lambda: _run_pipeline(container),
        "watch": lambda: _run_watch(container, settings, args.iterations),
    }
    try:
        return await commands[args.command]()
    finally:
        await container.aclose()


async def _run_sync(container: ServiceContainer) -> int:
    result = await container.resolve("sync").run()
    if isinstance(result, SyncSuccess):
        print(
            f"Fetched {result.messages_fetched} message(s); "
            f"stored {result.messages_processed} new."
        )
        return 0
    if isinstance(result, SyncPartialSuccess):
        print(
            f"Fetched {result.messages_fetched} message(s); stored "
            f"{result.messages_processed} new with {result.errors} error(s):"
        )
        for message in result.error_messages:
            print(f"  - {message}")
        return 0
    print(f"Sync failed ({result.error.type.value}): {result.error.message}")
    return 1


async def _run_analysis(container: ServiceContainer, limit: int | None) -> int:
    outcome = await container.resolve("analysis").analyze_pending(limit)
    if not isinstance(outcome, Success):
        return _print_failure("Analysis", outcome)
    batch = outcome.data
    print(
        f"Analysed {batch.total} message(s): {batch.successful} succeeded, "
        f"{batch.failed} failed."
    )
    for item in batch.results:
        marker = "ok" if item.success else "!!"
        print(f"  [{marker}] {item.subject}: {item.message}")
    return 0 if batch.failed == 0 else 1


async def _run_todo_sync(container: ServiceContainer, list_name: str) -> int:
    outcome = await container.resolve("todos").sync_pending(list_name)
    if not isinstance(outcome, Success):
        return _print_failure("To-do sync", outcome)
    batch = outcome.data
    print(
        f"Synced to '{list_name}': {batch.successful} succeeded, "
        f"{batch.failed} failed, {batch.skipped} skipped."
    )
    for item in batch.results:
        if not item.skipped:
            marker = "ok" if item.success else "!!"
            print(f"  [{marker}] {item.subject}: {item.message}")
    return 0 if batch.failed == 0 else 1


async def _run_pipeline(container: ServiceContainer) -> int:
    report = await container.resolve("scheduler").run_pipeline()
    _print_pipeline(report)
    jobs = (report.sync, report.analysis, report.todos)
    return 0 if all(job.status is WorkStatus.SUCCESS for job in jobs) else 1


async def _run_watch(
    container: ServiceContainer, settings: AppSettings, iterations: int | None
) -> int:
    interval = settings.scheduler.interval_minutes * 60
    print(f"Running pipeline every {settings.scheduler.interval_minutes:g} minute(s).")
    await container.resolve("scheduler").run_periodic(
        interval, iterations=iterations, on_report=_print_pipeline
    )
    return 0


def _print_pipeline(report: PipelineReport) -> None:
    for job in (report.sync, report.analysis, report.todos):
        _print_report(job)


def _print_report(report: JobReport) -> None:
    detail = f" - {report.error_message}" if report.error_message else ""
    print(
        f"{report.name}: {report.status.value} after {report.attempts} attempt(s){detail}"
    )


def _print_failure(label: str, outcome: Any) -> int:
    if isinstance(outcome, (Error, SyncFailure)):
        print(f"{label} failed ({outcome.error.type.value}): {outcome.error.message}")
    elif isinstance(outcome, Loading):
        print(f"{label} did not finish.")
    return 1


if __name__ == "__main__":
    main()
