"""SQLite-backed email store implementation."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from types import TracebackType

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime, utc_now
from ..core.interfaces import EmailStore, StorageError
from ..core.models import CanonicalMessage, EmailMessage, SyncCheckpoint

LOGGER = logging.getLogger(__name__)

_MESSAGE_COLUMNS = """
    id,
    message_id,
    subject,
    sender,
    body,
    received_at,
    processed,
    processed_at,
    extracted_todo,
    todos_synced
"""


class SqliteEmailStore(EmailStore):
    """Persist messages, processing state, and the sync checkpoint in SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and apply the bundled schema."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(
            db_path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._apply_migrations()
        self._ensure_indexes()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteEmailStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # EmailStore API ----------------------------------------------------------
    def exists_by_provider_id(self, message_id: str) -> bool:
        """Return ``True`` when ``message_id`` is already stored."""
        cur = self._execute(
            "SELECT 1 FROM email_messages WHERE message_id = ? LIMIT 1",
            (message_id,),
        )
        return cur.fetchone() is not None

    def insert_ignore_duplicates(self, messages: Sequence[CanonicalMessage]) -> int:
        """Insert ``messages``; rows whose provider id exists are skipped."""
        if not messages:
            return 0
        rows = [
            (
                message.message_id,
                message.subject,
                message.sender,
                message.body,
                serialize_datetime(message.received_at),
            )
            for message in messages
        ]
        try:
            with self._connection:
                before = self._connection.total_changes
                self._connection.executemany(
                    """
                    INSERT OR IGNORE INTO email_messages (
                        message_id,
                        subject,
                        sender,
                        body,
                        received_at
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                inserted = self._connection.total_changes - before
        except sqlite3.Error as exc:
            LOGGER.error("Failed to insert %s message(s): %s", len(rows), exc)
            raise StorageError(f"Failed to save messages: {exc}") from exc
        LOGGER.debug(
            "Inserted %s of %s message(s); %s already stored",
            inserted,
            len(rows),
            len(rows) - inserted,
        )
        return inserted

    def fetch_message(self, email_id: int) -> EmailMessage | None:
        """Retrieve a stored message by local id."""
        cur = self._execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM email_messages WHERE id = ?",
            (email_id,),
        )
        row = cur.fetchone()
        return _row_to_message(row) if row is not None else None

    def fetch_by_provider_id(self, message_id: str) -> EmailMessage | None:
        """Retrieve a stored message by provider message id."""
        cur = self._execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM email_messages WHERE message_id = ?",
            (message_id,),
        )
        row = cur.fetchone()
        return _row_to_message(row) if row is not None else None

    def mark_processed(self, email_id: int, extracted_todo: str | None) -> None:
        """Set ``processed`` once, storing the extracted to-do if present."""
        todo = extracted_todo.strip() if extracted_todo else None
        cur = self._execute_write(
            """
            UPDATE email_messages
            SET processed = 1,
                processed_at = ?,
                extracted_todo = ?
            WHERE id = ? AND processed = 0
            """,
            (serialize_datetime(utc_now()), todo or None, email_id),
        )
        if cur.rowcount == 0:
            existing = self.fetch_message(email_id)
            if existing is None:
                raise StorageError(f"Email {email_id} not found")
            LOGGER.debug("Email %s already processed; keeping stored result", email_id)

    def mark_synced(self, email_id: int) -> None:
        """Flag the message's to-do as delivered."""
        cur = self._execute_write(
            """
            UPDATE email_messages
            SET todos_synced = 1
            WHERE id = ?
              AND extracted_todo IS NOT NULL
              AND extracted_todo <> ''
            """,
            (email_id,),
        )
        if cur.rowcount == 0:
            raise StorageError(f"Email {email_id} has no stored TODO to mark synced")

    def get_unprocessed(self, limit: int | None = None) -> list[EmailMessage]:
        """Return unprocessed messages, oldest first."""
        query = (
            f"SELECT {_MESSAGE_COLUMNS} FROM email_messages "
            "WHERE processed = 0 ORDER BY received_at ASC, id ASC"
        )
        params: tuple[object, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        cur = self._execute(query, params)
        return [_row_to_message(row) for row in cur.fetchall()]

    def get_unsynced_todos(self) -> list[EmailMessage]:
        """Return messages whose extracted to-do has not been delivered."""
        cur = self._execute(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM email_messages
            WHERE extracted_todo IS NOT NULL
              AND extracted_todo <> ''
              AND todos_synced = 0
            ORDER BY received_at ASC, id ASC
            """
        )
        return [_row_to_message(row) for row in cur.fetchall()]

    def list_messages(self, limit: int = 50) -> list[EmailMessage]:
        """Return recently received messages, newest first."""
        cur = self._execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM email_messages "
            "ORDER BY received_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_message(row) for row in cur.fetchall()]

    def count_messages(self) -> int:
        """Return the number of stored messages."""
        cur = self._execute("SELECT COUNT(*) FROM email_messages")
        return int(cur.fetchone()[0])

    def get_checkpoint(self) -> SyncCheckpoint | None:
        """Return the single stored checkpoint row."""
        cur = self._execute(
            "SELECT history_id, last_sync_at FROM sync_state WHERE id = 1"
        )
        row = cur.fetchone()
        if row is None:
            return None
        return SyncCheckpoint(
            history_id=row["history_id"],
            last_sync_at=parse_datetime(row["last_sync_at"], assume_utc=True),
        )

    def update_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        """Overwrite the checkpoint row."""
        LOGGER.debug("Updating checkpoint history_id=%s", checkpoint.history_id)
        self._execute_write(
            """
            INSERT INTO sync_state (id, history_id, last_sync_at)
            VALUES (1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                history_id = excluded.history_id,
                last_sync_at = excluded.last_sync_at
            """,
            (checkpoint.history_id, serialize_datetime(checkpoint.last_sync_at)),
        )

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _execute(
        self, query: str, params: Sequence[object] = ()
    ) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, params)
        except sqlite3.Error as exc:
            raise StorageError(f"Database query failed: {exc}") from exc

    def _execute_write(
        self, query: str, params: Sequence[object] = ()
    ) -> sqlite3.Cursor:
        try:
            with self._connection:
                return self._connection.execute(query, params)
        except sqlite3.Error as exc:
            raise StorageError(f"Database update failed: {exc}") from exc

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)

    def _ensure_indexes(self) -> None:
        """Create supporting indexes for the pipeline's lookups."""
        index_statements = (
            "CREATE INDEX IF NOT EXISTS idx_email_messages_processed "
            "ON email_messages(processed, received_at)",
            "CREATE INDEX IF NOT EXISTS idx_email_messages_unsynced "
            "ON email_messages(todos_synced, extracted_todo)",
        )
        with self._connection:
            for statement in index_statements:
                self._connection.execute(statement)


def _row_to_message(row: sqlite3.Row) -> EmailMessage:
    return EmailMessage(
        id=row["id"],
        message_id=row["message_id"],
        subject=row["subject"],
        sender=row["sender"],
        body=row["body"],
        received_at=parse_datetime(row["received_at"], assume_utc=True),
        processed=bool(row["processed"]),
        processed_at=parse_datetime(row["processed_at"], assume_utc=True),
        extracted_todo=row["extracted_todo"],
        todos_synced=bool(row["todos_synced"]),
    )


__all__ = ["SqliteEmailStore"]
