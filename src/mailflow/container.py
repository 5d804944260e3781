"""Service container and the default wiring of pipeline components."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .core.config import AppSettings
from .ingestion import SyncOrchestrator
from .intelligence import AIClient, AnalysisOrchestrator, GeminiTransport
from .scheduler import JobScheduler
from .storage import SqliteEmailStore
from .todos import TodoSyncOrchestrator
from .transport import GmailGateway, build_todo_gateway

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceContainer:
    """Minimal dependency container with lazy singleton semantics."""

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under ``key``, replacing any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already constructed object under ``key``."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    def try_resolve(self, key: str) -> Any | None:
        """Resolve a dependency if available; return None otherwise."""
        try:
            return self.resolve(key)
        except KeyError:
            return None

    async def aclose(self) -> None:
        """Close resolved services that hold connections, newest first."""
        for key, instance in reversed(list(self._instances.items())):
            closer = getattr(instance, "aclose", None) or getattr(
                instance, "close", None
            )
            if closer is None:
                continue
            LOGGER.debug("Closing service %s", key)
            result = closer()
            if inspect.isawaitable(result):
                await result
        self._instances.clear()


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register the default production wiring for ``settings``."""
    container = ServiceContainer()
    container.register_instance("settings", settings)
    container.register("store", lambda c: SqliteEmailStore(settings.storage))
    container.register("mail_gateway", lambda c: GmailGateway(settings.gmail))
    container.register("todo_gateway", lambda c: build_todo_gateway(settings.todo))
    container.register("ai_transport", lambda c: GeminiTransport(settings.ai))
    container.register(
        "ai_client",
        lambda c: AIClient.from_settings(settings.ai, c.resolve("ai_transport")),
    )
    container.register(
        "sync",
        lambda c: SyncOrchestrator(c.resolve("mail_gateway"), c.resolve("store")),
    )
    container.register(
        "analysis",
        lambda c: AnalysisOrchestrator(c.resolve("store"), c.resolve("ai_client")),
    )
    container.register(
        "todos",
        lambda c: TodoSyncOrchestrator(c.resolve("store"), c.resolve("todo_gateway")),
    )
    container.register(
        "scheduler",
        lambda c: JobScheduler(
            c.resolve("sync"),
            c.resolve("analysis"),
            c.resolve("todos"),
            list_name=settings.todo.list_name,
            max_attempts=settings.scheduler.max_attempts,
            retry_backoff_seconds=settings.scheduler.retry_backoff_seconds,
        ),
    )
    return container


__all__ = ["ServiceContainer", "build_container"]
