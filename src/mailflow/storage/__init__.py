"""Persistence adapters."""

from .sqlite import SqliteEmailStore

__all__ = ["SqliteEmailStore"]
