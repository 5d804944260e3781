"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .models import (
    CanonicalMessage,
    EmailMessage,
    FetchResult,
    SyncCheckpoint,
    TodoList,
)


class MailGatewayError(RuntimeError):
    """Raised when the mail provider rejects or fails a request."""


class MailAuthError(MailGatewayError):
    """Raised when no usable signed-in session is available."""


class MailNetworkError(MailGatewayError):
    """Raised when the mail provider cannot be reached."""


class TodoGatewayError(RuntimeError):
    """Raised when the to-do backend rejects or fails a request."""


class StorageError(RuntimeError):
    """Raised when a local store operation fails."""


@dataclass(slots=True, frozen=True)
class GenerationConfig:
    """Sampling parameters sent with every generation request."""

    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 2048


class MailGateway(Protocol):
    """Abstraction over a mailbox provider such as Gmail."""

    async def fetch_new_messages(self, since: str | None) -> FetchResult:
        """Return messages newer than the ``since`` cursor and the next cursor."""
        raise NotImplementedError


class TodoGateway(Protocol):
    """Abstraction over a to-do list backend."""

    async def add_todo(self, list_name: str, text: str) -> None:
        """Append ``text`` to the list named ``list_name``."""
        raise NotImplementedError

    async def create_list(self, name: str) -> TodoList:
        """Create a list named ``name`` and return its identifier."""
        raise NotImplementedError


class GenerationTransport(Protocol):
    """Raw text generation primitive wrapped by the AI client."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    async def generate(self, prompt: str, config: GenerationConfig) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


class EmailStore(Protocol):
    """Durable per-message processing state."""

    def exists_by_provider_id(self, message_id: str) -> bool:
        """Return ``True`` when a message with this provider id is stored."""
        raise NotImplementedError

    def insert_ignore_duplicates(self, messages: Sequence[CanonicalMessage]) -> int:
        """Insert messages, skipping known provider ids; return rows inserted."""
        raise NotImplementedError

    def fetch_message(self, email_id: int) -> EmailMessage | None:
        """Return the stored message with local id ``email_id``."""
        raise NotImplementedError

    def mark_processed(self, email_id: int, extracted_todo: str | None) -> None:
        """Record analysis completion and the extracted to-do, if any."""
        raise NotImplementedError

    def mark_synced(self, email_id: int) -> None:
        """Record that the message's to-do reached the backend."""
        raise NotImplementedError

    def get_unprocessed(self, limit: int | None = None) -> list[EmailMessage]:
        """Return messages awaiting analysis, oldest first."""
        raise NotImplementedError

    def get_unsynced_todos(self) -> list[EmailMessage]:
        """Return messages with an extracted to-do not yet delivered."""
        raise NotImplementedError

    def get_checkpoint(self) -> SyncCheckpoint | None:
        """Return the stored sync checkpoint."""
        raise NotImplementedError

    def update_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        """Overwrite the stored sync checkpoint."""
        raise NotImplementedError


__all__ = [
    "EmailStore",
    "GenerationConfig",
    "GenerationTransport",
    "MailAuthError",
    "MailGateway",
    "MailGatewayError",
    "MailNetworkError",
    "StorageError",
    "TodoGateway",
    "TodoGatewayError",
]
