"""Tests for to-do extraction over stored messages."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mailflow.core.config import StorageSettings
from mailflow.core.models import CanonicalMessage, EmailMessage
from mailflow.core.results import Error, ErrorType, ProcessingResult, Success, error
from mailflow.intelligence import AnalysisOrchestrator, parse_todo_response
from mailflow.storage import SqliteEmailStore


class StubAI:
    """AI client stub replaying queued responses."""

    def __init__(self, *responses: ProcessingResult[str]) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def generate_content(self, prompt: str) -> ProcessingResult[str]:
        self.prompts.append(prompt)
        return self.responses.pop(0)


def _seed(store: SqliteEmailStore, count: int) -> list[EmailMessage]:
    start = datetime(2025, 10, 24, 9, 0, tzinfo=timezone.utc)
    store.insert_ignore_duplicates(
        [
            CanonicalMessage(
                message_id=f"msg-{index}",
                subject=f"Subject {index}",
                sender="boss@example.com",
                body=f"Body {index}",
                received_at=start + timedelta(minutes=index),
            )
            for index in range(count)
        ]
    )
    return store.get_unprocessed()


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[SqliteEmailStore]:
    repository = SqliteEmailStore(StorageSettings(db_path=tmp_path / "mail.db"))
    yield repository
    repository.close()


def test_extracts_todo_and_marks_processed(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, 1)
    ai = StubAI(Success("Extracted Task: Pay rent by Friday"))
    orchestrator = AnalysisOrchestrator(store, ai)

    outcome = asyncio.run(orchestrator.analyze_single(message))

    assert outcome == Success("TODO extracted: Pay rent by Friday")
    stored = store.fetch_message(message.id)
    assert stored is not None
    assert stored.processed is True
    assert stored.extracted_todo == "Pay rent by Friday"
    (prompt,) = ai.prompts
    assert "Email Subject: Subject 0" in prompt
    assert "Body 0" in prompt


@pytest.mark.parametrize("response", ["NONE", "none", "  None \n"])
def test_none_response_marks_processed_without_todo(
    store: SqliteEmailStore, response: str
) -> None:
    (message,) = _seed(store, 1)
    orchestrator = AnalysisOrchestrator(store, StubAI(Success(response)))

    outcome = asyncio.run(orchestrator.analyze_single(message))

    assert outcome == Success("No TODO found")
    stored = store.fetch_message(message.id)
    assert stored is not None
    assert stored.processed is True
    assert stored.extracted_todo is None
    assert store.get_unsynced_todos() == []


def test_already_processed_message_skips_ai(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, 1)
    store.mark_processed(message.id, "Call Alice")
    processed = store.fetch_message(message.id)
    assert processed is not None
    ai = StubAI()
    orchestrator = AnalysisOrchestrator(store, ai)

    outcome = asyncio.run(orchestrator.analyze_single(processed))

    assert outcome == Success("Email already analyzed")
    assert ai.prompts == []
    stored = store.fetch_message(message.id)
    assert stored is not None and stored.extracted_todo == "Call Alice"


def test_ai_failure_leaves_message_unprocessed(store: SqliteEmailStore) -> None:
    (message,) = _seed(store, 1)
    ai = StubAI(error(ErrorType.NETWORK_ERROR, "timeout"))
    orchestrator = AnalysisOrchestrator(store, ai)

    outcome = asyncio.run(orchestrator.analyze_single(message))

    assert isinstance(outcome, Error)
    assert outcome.error.type is ErrorType.API_ERROR
    assert outcome.error.message == "AI analysis failed: timeout"
    stored = store.fetch_message(message.id)
    assert stored is not None
    assert stored.processed is False
    assert stored.extracted_todo is None


def test_batch_preserves_order_and_counts(store: SqliteEmailStore) -> None:
    messages = _seed(store, 3)
    ai = StubAI(
        Success("Reply to Bob"),
        error(ErrorType.API_ERROR, "quota"),
        Success("NONE"),
    )
    orchestrator = AnalysisOrchestrator(store, ai)

    outcome = asyncio.run(orchestrator.analyze_multiple(messages))

    assert isinstance(outcome, Success)
    batch = outcome.data
    assert (batch.total, batch.successful, batch.failed) == (3, 2, 1)
    assert [result.email_id for result in batch.results] == [m.id for m in messages]
    assert [result.success for result in batch.results] == [True, False, True]
    assert batch.results[1].message == "AI analysis failed: quota"
    assert [m.message_id for m in store.get_unprocessed()] == ["msg-1"]


def test_analyze_pending_respects_limit(store: SqliteEmailStore) -> None:
    _seed(store, 3)
    orchestrator = AnalysisOrchestrator(store, StubAI(Success("A"), Success("B")))

    outcome = asyncio.run(orchestrator.analyze_pending(limit=2))

    assert isinstance(outcome, Success)
    assert outcome.data.total == 2
    assert len(store.get_unprocessed()) == 1


def test_parse_todo_response_strips_known_prefixes() -> None:
    assert parse_todo_response("Extracted Task: Pay rent by Friday") == (
        "Pay rent by Friday"
    )
    assert parse_todo_response("task: Book flights") == "Book flights"
    assert parse_todo_response("  Action: Sign contract  ") == "Sign contract"
    assert parse_todo_response("Renew passport") == "Renew passport"


def test_parse_todo_response_truncates_long_output() -> None:
    parsed = parse_todo_response("x" * 250)

    assert len(parsed) == 200
    assert parsed == "x" * 197 + "..."


def test_parse_todo_response_treats_none_as_empty() -> None:
    assert parse_todo_response("NONE") == ""
    assert parse_todo_response(" none ") == ""
    assert parse_todo_response("") == ""
