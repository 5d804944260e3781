"""Mail sync orchestration: fetch, de-duplicate, persist, advance the cursor."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

import httpx

from ..core.datetime_utils import utc_now
from ..core.interfaces import (
    EmailStore,
    MailAuthError,
    MailGateway,
    MailGatewayError,
    MailNetworkError,
)
from ..core.models import CanonicalMessage, FetchResult, SyncCheckpoint
from ..core.results import (
    ErrorType,
    ProcessingError,
    SyncFailure,
    SyncPartialSuccess,
    SyncResult,
    SyncSuccess,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SyncTarget:
    """A named consumer of fetched mail, selected by a message predicate."""

    name: str
    predicate: Callable[[CanonicalMessage], bool]

    @classmethod
    def from_filters(
        cls,
        name: str,
        *,
        sender: str | None = None,
        subject: str | None = None,
    ) -> SyncTarget:
        """Match messages whose sender/subject contain the given text."""
        sender_key = sender.lower() if sender else None
        subject_key = subject.lower() if subject else None

        def predicate(message: CanonicalMessage) -> bool:
            if message.target is not None and message.target != name:
                return False
            if sender_key and sender_key not in message.sender.lower():
                return False
            if subject_key and subject_key not in message.subject.lower():
                return False
            return True

        return cls(name=name, predicate=predicate)


@dataclass(slots=True, frozen=True)
class TargetOutcome:
    """Persistence result for one sync target."""

    name: str
    inserted: int
    error: str | None = None


class SyncOrchestrator:
    """Drive one mail sync cycle against the configured store."""

    def __init__(
        self,
        gateway: MailGateway,
        store: EmailStore,
        *,
        targets: Sequence[SyncTarget] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Wire the gateway and store; ``targets`` enables per-target sync."""
        self._gateway = gateway
        self._store = store
        self._targets = tuple(targets or ())
        self._clock = clock

    async def run(self) -> SyncResult:
        """Execute a sync cycle and return its aggregated outcome."""
        try:
            return await self._run()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Sync failed: %s", exc, exc_info=True)
            return _failure(ErrorType.UNKNOWN_ERROR, f"Sync failed: {exc}", exc)

    async def _run(self) -> SyncResult:
        try:
            checkpoint = self._store.get_checkpoint()
        except Exception as exc:  # pylint: disable=broad-except
            return _failure(
                ErrorType.DATABASE_ERROR, f"Failed to read sync checkpoint: {exc}", exc
            )
        cursor = checkpoint.history_id if checkpoint else None
        LOGGER.info("Starting sync (history cursor %s)", cursor)

        try:
            fetched = await self._gateway.fetch_new_messages(cursor)
        except MailAuthError as exc:
            return _failure(ErrorType.AUTHENTICATION_ERROR, f"Not signed in: {exc}", exc)
        except (MailNetworkError, httpx.TransportError) as exc:
            return _failure(
                ErrorType.NETWORK_ERROR, f"Mail provider unreachable: {exc}", exc
            )
        except MailGatewayError as exc:
            return _failure(ErrorType.API_ERROR, f"Mail fetch failed: {exc}", exc)

        fetched_count = len(fetched.messages)
        fresh = self._filter_new(fetched.messages)
        LOGGER.debug(
            "Fetched %s message(s); %s not yet stored", fetched_count, len(fresh)
        )

        if self._targets:
            outcomes = self._persist_per_target(fresh)
            result = aggregate_target_outcomes(fetched_count, outcomes)
        else:
            result = self._persist_all(fetched_count, fresh)

        # The cursor moves with every successful fetch, whatever persistence did.
        try:
            self._advance_cursor(cursor, fetched)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Failed to store history cursor: %s", exc)
            if isinstance(result, SyncFailure):
                return result
            return _failure(
                ErrorType.DATABASE_ERROR,
                f"Failed to store history cursor: {exc}",
                exc,
            )
        LOGGER.info("Sync completed: %s", result)
        return result

    def _filter_new(
        self, messages: Sequence[CanonicalMessage]
    ) -> list[CanonicalMessage]:
        seen: set[str] = set()
        fresh: list[CanonicalMessage] = []
        for message in messages:
            if message.message_id in seen:
                continue
            seen.add(message.message_id)
            if self._store.exists_by_provider_id(message.message_id):
                continue
            fresh.append(message)
        return fresh

    def _persist_all(
        self, fetched_count: int, fresh: Sequence[CanonicalMessage]
    ) -> SyncResult:
        if not fresh:
            return SyncSuccess(messages_fetched=fetched_count, messages_processed=0)
        try:
            inserted = self._store.insert_ignore_duplicates(fresh)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Failed to save %s message(s): %s", len(fresh), exc)
            return _failure(
                ErrorType.DATABASE_ERROR, f"Failed to save messages: {exc}", exc
            )
        return SyncSuccess(messages_fetched=fetched_count, messages_processed=inserted)

    def _persist_per_target(
        self, fresh: Sequence[CanonicalMessage]
    ) -> list[TargetOutcome]:
        outcomes: list[TargetOutcome] = []
        for target in self._targets:
            selected = [message for message in fresh if target.predicate(message)]
            if not selected:
                continue
            try:
                inserted = self._store.insert_ignore_duplicates(selected)
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning("Target '%s' failed to save: %s", target.name, exc)
                outcomes.append(TargetOutcome(target.name, 0, str(exc)))
                continue
            outcomes.append(TargetOutcome(target.name, inserted))
        return outcomes

    def _advance_cursor(self, previous: str | None, fetched: FetchResult) -> None:
        new_cursor = fetched.new_checkpoint
        if new_cursor is None:
            return
        self._store.update_checkpoint(
            SyncCheckpoint(history_id=new_cursor, last_sync_at=self._clock())
        )
        if new_cursor != previous:
            LOGGER.debug("Advanced history cursor %s -> %s", previous, new_cursor)


def aggregate_target_outcomes(
    messages_fetched: int, outcomes: Sequence[TargetOutcome]
) -> SyncResult:
    """Fold per-target outcomes into a single sync result.

    No failing target yields ``SyncSuccess``; a mix of failing and succeeding
    targets yields ``SyncPartialSuccess`` carrying one message per failure;
    when every target fails the cycle is a ``SyncFailure``.
    """
    processed = sum(outcome.inserted for outcome in outcomes)
    failures = [outcome for outcome in outcomes if outcome.error is not None]
    if not failures:
        return SyncSuccess(
            messages_fetched=messages_fetched, messages_processed=processed
        )
    error_messages = tuple(
        f"Target '{outcome.name}': {outcome.error}" for outcome in failures
    )
    if len(failures) < len(outcomes):
        return SyncPartialSuccess(
            messages_fetched=messages_fetched,
            messages_processed=processed,
            errors=len(failures),
            error_messages=error_messages,
        )
    return _failure(
        ErrorType.DATABASE_ERROR,
        f"All targets failed to sync: {', '.join(error_messages)}",
    )


def _failure(
    error_type: ErrorType, message: str, cause: BaseException | None = None
) -> SyncFailure:
    return SyncFailure(ProcessingError(type=error_type, message=message, cause=cause))


__all__ = [
    "SyncOrchestrator",
    "SyncTarget",
    "TargetOutcome",
    "aggregate_target_outcomes",
]
