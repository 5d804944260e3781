"""Result values returned across orchestrator boundaries.

Orchestrators never raise to their callers. Each public operation returns one
of the tagged unions defined here and callers branch on the concrete class:

* :data:`ProcessingResult` - ``Success`` | ``Error`` | ``Loading``
* :data:`SyncResult` - ``SyncSuccess`` | ``SyncPartialSuccess`` | ``SyncFailure``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")


class ErrorType(Enum):
    """Classification of failures surfaced by the pipeline."""

    NETWORK_ERROR = "network_error"
    API_ERROR = "api_error"
    VALIDATION_ERROR = "validation_error"
    DATABASE_ERROR = "database_error"
    AUTHENTICATION_ERROR = "authentication_error"
    PARSING_ERROR = "parsing_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass(slots=True, frozen=True)
class ProcessingError:
    """Typed failure description with an optional underlying exception."""

    type: ErrorType
    message: str
    cause: BaseException | None = field(default=None, compare=False)


@dataclass(slots=True, frozen=True)
class Success(Generic[T]):
    """Operation completed and produced ``data``."""

    data: T


@dataclass(slots=True, frozen=True)
class Error:
    """Operation failed with ``error``."""

    error: ProcessingError


@dataclass(slots=True, frozen=True)
class Loading:
    """Operation has not produced a value yet."""


ProcessingResult: TypeAlias = Success[T] | Error | Loading


def error(
    error_type: ErrorType, message: str, cause: BaseException | None = None
) -> Error:
    """Shorthand for building an :class:`Error` outcome."""
    return Error(ProcessingError(type=error_type, message=message, cause=cause))


@dataclass(slots=True, frozen=True)
class SyncSuccess:
    """Sync cycle finished without errors."""

    messages_fetched: int
    messages_processed: int
    errors: int = 0


@dataclass(slots=True, frozen=True)
class SyncPartialSuccess:
    """Some sync targets failed while others made progress."""

    messages_fetched: int
    messages_processed: int
    errors: int
    error_messages: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class SyncFailure:
    """Sync cycle failed as a whole."""

    error: ProcessingError


SyncResult: TypeAlias = SyncSuccess | SyncPartialSuccess | SyncFailure


@dataclass(slots=True, frozen=True)
class EmailAnalysisResult:
    """Outcome of analysing one stored message."""

    email_id: int
    subject: str
    success: bool
    message: str


@dataclass(slots=True, frozen=True)
class BatchAnalysisResult:
    """Aggregate outcome of an analysis batch, in input order."""

    total: int
    successful: int
    failed: int
    results: tuple[EmailAnalysisResult, ...]
    skipped: int = 0


@dataclass(slots=True, frozen=True)
class TodoSyncResult:
    """Outcome of delivering one message's to-do."""

    email_id: int
    subject: str
    success: bool
    message: str
    skipped: bool


@dataclass(slots=True, frozen=True)
class BatchSyncResult:
    """Aggregate outcome of a to-do delivery batch, in input order."""

    total: int
    successful: int
    failed: int
    skipped: int
    results: tuple[TodoSyncResult, ...]


__all__ = [
    "BatchAnalysisResult",
    "BatchSyncResult",
    "EmailAnalysisResult",
    "Error",
    "ErrorType",
    "Loading",
    "ProcessingError",
    "ProcessingResult",
    "Success",
    "SyncFailure",
    "SyncPartialSuccess",
    "SyncResult",
    "SyncSuccess",
    "TodoSyncResult",
    "error",
]
