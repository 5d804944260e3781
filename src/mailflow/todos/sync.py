"""Deliver extracted to-dos to the configured list backend."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from ..core.interfaces import EmailStore, StorageError, TodoGateway
from ..core.models import EmailMessage
from ..core.results import (
    BatchSyncResult,
    Error,
    ErrorType,
    ProcessingResult,
    Success,
    TodoSyncResult,
    error,
)

LOGGER = logging.getLogger(__name__)


class TodoSyncOrchestrator:
    """Push each message's extracted to-do to a named list exactly once."""

    def __init__(self, store: EmailStore, gateway: TodoGateway) -> None:
        self._store = store
        self._gateway = gateway

    async def sync_single(
        self, message: EmailMessage, list_name: str
    ) -> ProcessingResult[str]:
        """Deliver one message's to-do; already-synced messages succeed."""
        if not message.has_todo:
            return error(ErrorType.VALIDATION_ERROR, "No TODOs to sync")
        if message.todos_synced:
            return Success("TODOs already synced")

        todo = (message.extracted_todo or "").strip()
        try:
            await self._gateway.add_todo(list_name, todo)
        except httpx.TransportError as exc:
            LOGGER.warning("To-do backend unreachable for email %s: %s", message.id, exc)
            return error(ErrorType.NETWORK_ERROR, f"Failed to sync TODO: {exc}", exc)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Failed to sync TODO for email %s: %s", message.id, exc)
            return error(ErrorType.API_ERROR, f"Failed to sync TODO: {exc}", exc)

        try:
            self._store.mark_synced(message.id)
        except StorageError as exc:
            LOGGER.error("Failed to mark email %s synced: %s", message.id, exc)
            return error(
                ErrorType.DATABASE_ERROR, f"Failed to mark TODO synced: {exc}", exc
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Unexpected error marking email %s synced: %s",
                message.id,
                exc,
                exc_info=True,
            )
            return error(ErrorType.UNKNOWN_ERROR, f"Failed to sync TODO: {exc}", exc)

        LOGGER.debug("Synced TODO for email %s to list %s", message.id, list_name)
        return Success(f"TODO synced: {todo}")

    async def sync_multiple(
        self, messages: Sequence[EmailMessage], list_name: str
    ) -> ProcessingResult[BatchSyncResult]:
        """Classify all messages first, then deliver the eligible ones in order."""
        classified = [(message, _skip_reason(message)) for message in messages]
        skipped = sum(1 for _, reason in classified if reason is not None)
        LOGGER.debug(
            "TODO sync to %s: %s eligible, %s skipped",
            list_name,
            len(classified) - skipped,
            skipped,
        )

        results: list[TodoSyncResult] = []
        successful = 0
        failed = 0
        for message, skip_reason in classified:
            if skip_reason is not None:
                results.append(
                    TodoSyncResult(
                        message.id, message.subject, False, skip_reason, True
                    )
                )
                continue

            outcome = await self.sync_single(message, list_name)
            if isinstance(outcome, Success):
                successful += 1
                results.append(
                    TodoSyncResult(
                        message.id, message.subject, True, outcome.data, False
                    )
                )
            else:
                failed += 1
                detail = (
                    outcome.error.message
                    if isinstance(outcome, Error)
                    else "Sync did not finish"
                )
                results.append(
                    TodoSyncResult(message.id, message.subject, False, detail, False)
                )

        LOGGER.info(
            "TODO sync to %s completed: total=%s, successful=%s, failed=%s, skipped=%s",
            list_name,
            len(messages),
            successful,
            failed,
            skipped,
        )
        return Success(
            BatchSyncResult(
                total=len(messages),
                successful=successful,
                failed=failed,
                skipped=skipped,
                results=tuple(results),
            )
        )

    async def sync_pending(self, list_name: str) -> ProcessingResult[BatchSyncResult]:
        """Deliver every stored to-do that has not reached the backend yet."""
        try:
            pending = self._store.get_unsynced_todos()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Failed to load unsynced TODOs: %s", exc, exc_info=True)
            return error(
                ErrorType.DATABASE_ERROR, f"Failed to load unsynced TODOs: {exc}", exc
            )
        return await self.sync_multiple(pending, list_name)


def _skip_reason(message: EmailMessage) -> str | None:
    if not message.has_todo:
        return "No TODOs"
    if message.todos_synced:
        return "Already synced"
    return None


__all__ = ["TodoSyncOrchestrator"]
