"""Extract a single actionable to-do from stored messages."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from mailflow.core.interfaces import EmailStore, StorageError
from mailflow.core.models import EmailMessage
from mailflow.core.results import (
    BatchAnalysisResult,
    EmailAnalysisResult,
    Error,
    ErrorType,
    Loading,
    ProcessingResult,
    Success,
    error,
)

from .prompts import build_todo_extraction_prompt

LOGGER = logging.getLogger(__name__)

NO_TASK_MARKER = "NONE"
MAX_TODO_CHARS = 200
_TASK_PREFIXES = ("Extracted Task:", "Task:", "To-do:", "Action:")


class TextGenerator(Protocol):
    """The slice of :class:`~mailflow.intelligence.llm.AIClient` used here."""

    async def generate_content(self, prompt: str) -> ProcessingResult[str]:
        """Return generated text or an error outcome."""
        raise NotImplementedError


class AnalysisOrchestrator:
    """Run stored messages through the AI client and record their to-dos."""

    def __init__(self, store: EmailStore, ai_client: TextGenerator) -> None:
        self._store = store
        self._ai_client = ai_client

    async def analyze_single(self, message: EmailMessage) -> ProcessingResult[str]:
        """Analyse one message; safe to call again once it is processed."""
        if message.processed:
            return Success("Email already analyzed")
        try:
            prompt = build_todo_extraction_prompt(message.subject, message.body)
            outcome = await self._ai_client.generate_content(prompt)
            if isinstance(outcome, Error):
                LOGGER.warning(
                    "AI analysis failed for email %s: %s",
                    message.id,
                    outcome.error.message,
                )
                return error(
                    ErrorType.API_ERROR,
                    f"AI analysis failed: {outcome.error.message}",
                    outcome.error.cause,
                )
            if isinstance(outcome, Loading):
                return error(
                    ErrorType.API_ERROR, "AI analysis failed: no response produced"
                )

            todo = parse_todo_response(outcome.data)
            self._store.mark_processed(message.id, todo or None)
        except StorageError as exc:
            LOGGER.error("Failed to store analysis for email %s: %s", message.id, exc)
            return error(
                ErrorType.DATABASE_ERROR, f"Failed to store analysis: {exc}", exc
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Unexpected error analysing email %s: %s",
                message.id,
                exc,
                exc_info=True,
            )
            return error(
                ErrorType.UNKNOWN_ERROR, f"Failed to analyze email: {exc}", exc
            )

        if not todo:
            LOGGER.debug("No TODO found in email %s", message.id)
            return Success("No TODO found")
        LOGGER.debug("Extracted TODO for email %s: %s", message.id, todo)
        return Success(f"TODO extracted: {todo}")

    async def analyze_multiple(
        self, messages: Sequence[EmailMessage]
    ) -> ProcessingResult[BatchAnalysisResult]:
        """Analyse messages one after another, keeping their order."""
        results: list[EmailAnalysisResult] = []
        successful = 0
        failed = 0

        for message in messages:
            outcome = await self.analyze_single(message)
            if isinstance(outcome, Success):
                successful += 1
                results.append(
                    EmailAnalysisResult(message.id, message.subject, True, outcome.data)
                )
            elif isinstance(outcome, Error):
                failed += 1
                results.append(
                    EmailAnalysisResult(
                        message.id, message.subject, False, outcome.error.message
                    )
                )
            else:
                failed += 1
                results.append(
                    EmailAnalysisResult(
                        message.id, message.subject, False, "Analysis did not finish"
                    )
                )

        LOGGER.info(
            "Analysis batch completed: total=%s, successful=%s, failed=%s",
            len(messages),
            successful,
            failed,
        )
        return Success(
            BatchAnalysisResult(
                total=len(messages),
                successful=successful,
                failed=failed,
                results=tuple(results),
            )
        )

    async def analyze_pending(
        self, limit: int | None = None
    ) -> ProcessingResult[BatchAnalysisResult]:
        """Analyse every stored message that has not been processed yet."""
        try:
            pending = self._store.get_unprocessed(limit)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Failed to load unprocessed emails: %s", exc, exc_info=True)
            return error(
                ErrorType.DATABASE_ERROR,
                f"Failed to load unprocessed emails: {exc}",
                exc,
            )
        LOGGER.info("Analysing %s unprocessed email(s)", len(pending))
        return await self.analyze_multiple(pending)


def parse_todo_response(response: str) -> str:
    """Normalise raw model output into a to-do, or ``""`` when there is none."""
    cleaned = response.strip()
    if cleaned.upper() == NO_TASK_MARKER:
        return ""

    result = cleaned
    for prefix in _TASK_PREFIXES:
        if result.lower().startswith(prefix.lower()):
            result = result[len(prefix) :].strip()

    if len(result) > MAX_TODO_CHARS:
        return result[: MAX_TODO_CHARS - 3] + "..."
    return result


__all__ = ["AnalysisOrchestrator", "TextGenerator", "parse_todo_response"]
