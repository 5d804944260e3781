"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True, frozen=True)
class CanonicalMessage:
    """Provider-neutral message produced by a mail gateway."""

    message_id: str
    subject: str
    sender: str
    body: str
    received_at: datetime | None
    target: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class EmailMessage:
    """Stored message together with its processing state."""

    id: int
    message_id: str
    subject: str
    sender: str
    body: str
    received_at: datetime | None
    processed: bool = False
    processed_at: datetime | None = None
    extracted_todo: str | None = None
    todos_synced: bool = False

    @property
    def has_todo(self) -> bool:
        """Whether analysis produced a non-blank to-do."""
        return bool(self.extracted_todo and self.extracted_todo.strip())


@dataclass(slots=True)
class SyncCheckpoint:
    """Last mail-provider history cursor and when it was recorded."""

    history_id: str | None
    last_sync_at: datetime | None


@dataclass(slots=True)
class FetchResult:
    """Messages returned by a gateway and the cursor to resume from."""

    messages: list[CanonicalMessage] = field(default_factory=list)
    new_checkpoint: str | None = None


@dataclass(slots=True, frozen=True)
class TodoList:
    """Identifier of a list created on a to-do backend."""

    list_id: str
    url: str | None = None


__all__ = [
    "CanonicalMessage",
    "EmailMessage",
    "FetchResult",
    "SyncCheckpoint",
    "TodoList",
]
