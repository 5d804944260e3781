"""Tests for delivering extracted to-dos to a list backend."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mailflow.core.config import StorageSettings
from mailflow.core.interfaces import TodoGatewayError
from mailflow.core.models import CanonicalMessage, EmailMessage, TodoList
from mailflow.core.results import Error, ErrorType, Success
from mailflow.storage import SqliteEmailStore
from mailflow.todos import TodoSyncOrchestrator


class RecordingGateway:
    """To-do gateway stub that records calls and fails on chosen texts."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.added: list[tuple[str, str]] = []

    async def add_todo(self, list_name: str, text: str) -> None:
        if text in self.failing:
            raise TodoGatewayError(f"rejected {text}")
        self.added.append((list_name, text))

    async def create_list(self, name: str) -> TodoList:
        return TodoList(list_id=name)


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[SqliteEmailStore]:
    repository = SqliteEmailStore(StorageSettings(db_path=tmp_path / "mail.db"))
    yield repository
    repository.close()


def _seed(store: SqliteEmailStore, todos: list[str | None]) -> list[EmailMessage]:
    start = datetime(2025, 10, 24, 9, 0, tzinfo=timezone.utc)
    store.insert_ignore_duplicates(
        [
            CanonicalMessage(
                message_id=f"msg-{index}",
                subject=f"Subject {index}",
                sender="boss@example.com",
                body="Body",
                received_at=start + timedelta(minutes=index),
            )
            for index in range(len(todos))
        ]
    )
    messages = store.get_unprocessed()
    for message, todo in zip(messages, todos):
        store.mark_processed(message.id, todo)
    return [store.fetch_message(message.id) for message in messages]


def test_sync_single_delivers_and_marks_synced(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, ["Pay rent"])
    gateway = RecordingGateway()
    orchestrator = TodoSyncOrchestrator(store, gateway)

    outcome = asyncio.run(orchestrator.sync_single(message, "Inbox"))

    assert outcome == Success("TODO synced: Pay rent")
    assert gateway.added == [("Inbox", "Pay rent")]
    stored = store.fetch_message(message.id)
    assert stored is not None and stored.todos_synced is True


def test_sync_single_without_todo_is_validation_error(
    store: SqliteEmailStore,
) -> None:
    (message,) = _seed(store, [None])
    gateway = RecordingGateway()

    outcome = asyncio.run(
        TodoSyncOrchestrator(store, gateway).sync_single(message, "Inbox")
    )

    assert isinstance(outcome, Error)
    assert outcome.error.type is ErrorType.VALIDATION_ERROR
    assert outcome.error.message == "No TODOs to sync"
    assert gateway.added == []


def test_already_synced_message_is_not_resent(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, ["Pay rent"])
    store.mark_synced(message.id)
    synced = store.fetch_message(message.id)
    assert synced is not None
    gateway = RecordingGateway()

    outcome = asyncio.run(
        TodoSyncOrchestrator(store, gateway).sync_single(synced, "Inbox")
    )

    assert outcome == Success("TODOs already synced")
    assert gateway.added == []


def test_gateway_failure_leaves_flag_unset(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, ["Pay rent"])
    gateway = RecordingGateway(failing={"Pay rent"})

    outcome = asyncio.run(
        TodoSyncOrchestrator(store, gateway).sync_single(message, "Inbox")
    )

    assert isinstance(outcome, Error)
    assert outcome.error.type is ErrorType.API_ERROR
    assert outcome.error.message == "Failed to sync TODO: rejected Pay rent"
    stored = store.fetch_message(message.id)
    assert stored is not None and stored.todos_synced is False
    assert [m.id for m in store.get_unsynced_todos()] == [message.id]


def test_batch_skips_ineligible_messages(store: SqliteEmailStore) -> None:
    messages = _seed(store, [None, "Call Alice", None, "Book flights", "Renew"])
    store.mark_synced(messages[4].id)
    messages[4] = store.fetch_message(messages[4].id)
    gateway = RecordingGateway()

    outcome = asyncio.run(
        TodoSyncOrchestrator(store, gateway).sync_multiple(messages, "Inbox")
    )

    assert isinstance(outcome, Success)
    batch = outcome.data
    assert (batch.total, batch.successful, batch.failed, batch.skipped) == (
        5,
        2,
        0,
        3,
    )
    assert gateway.added == [("Inbox", "Call Alice"), ("Inbox", "Book flights")]
    assert [result.skipped for result in batch.results] == [
        True,
        False,
        True,
        False,
        True,
    ]
    assert batch.results[0].message == "No TODOs"
    assert batch.results[4].message == "Already synced"


def test_batch_classifies_everything_before_first_delivery(
    store: SqliteEmailStore, caplog: pytest.LogCaptureFixture
) -> None:
    messages = _seed(store, ["Call Alice", None, "Book flights"])
    logged_before_delivery: list[str] = []

    class SnapshotGateway(RecordingGateway):
        async def add_todo(self, list_name: str, text: str) -> None:
            if not logged_before_delivery:
                logged_before_delivery.extend(r.getMessage() for r in caplog.records)
            await super().add_todo(list_name, text)

    gateway = SnapshotGateway()
    caplog.set_level("DEBUG", logger="mailflow.todos.sync")

    outcome = asyncio.run(
        TodoSyncOrchestrator(store, gateway).sync_multiple(messages, "Inbox")
    )

    assert isinstance(outcome, Success)
    assert "TODO sync to Inbox: 2 eligible, 1 skipped" in logged_before_delivery
    assert [result.message for result in outcome.data.results] == [
        "TODO synced: Call Alice",
        "No TODOs",
        "TODO synced: Book flights",
    ]


def test_sync_pending_delivers_unsynced_in_order(store: SqliteEmailStore) -> None:
    _seed(store, ["First", None, "Second"])
    gateway = RecordingGateway(failing={"First"})
    orchestrator = TodoSyncOrchestrator(store, gateway)

    outcome = asyncio.run(orchestrator.sync_pending("Inbox"))

    assert isinstance(outcome, Success)
    assert (outcome.data.total, outcome.data.successful, outcome.data.failed) == (
        2,
        1,
        1,
    )
    assert gateway.added == [("Inbox", "Second")]
    assert [m.extracted_todo for m in store.get_unsynced_todos()] == ["First"]
