"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, model_validator


class ConfigError(ValueError):
    """Raised when configuration values cannot be validated."""


class GmailSettings(BaseModel):
    """Settings controlling Gmail REST connectivity."""

    base_url: str = Field(
        default="https://gmail.googleapis.com/gmail/v1",
        description="Gmail REST API root",
    )
    access_token: str | None = Field(
        default=None, description="OAuth access token for the signed-in account"
    )
    user_id: str = Field(default="me", description="Mailbox owner identifier")
    query: str = Field(
        default="newer_than:1d",
        description="Search query used when no history cursor is stored",
    )
    max_results: int = Field(
        default=100, ge=1, le=500, description="Page size for message and history listings"
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout")


class AiSettings(BaseModel):
    """Settings for the Gemini generation provider."""

    base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Generative Language API root",
    )
    api_key: str | None = Field(default=None, description="Gemini API key")
    model: str = Field(default="gemini-2.0-flash-exp", description="Model name")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_k: int = Field(default=40, ge=1)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    max_output_tokens: int = Field(default=2048, ge=32)
    timeout_seconds: float = Field(default=60.0, description="HTTP timeout")
    requests_per_minute: int = Field(
        default=10, ge=1, description="Sliding window admission limit"
    )
    jitter_min_ms: int = Field(
        default=2000, ge=0, description="Lower bound of the post-call delay"
    )
    jitter_max_ms: int = Field(
        default=3000, ge=0, description="Upper bound of the post-call delay"
    )

    @model_validator(mode="after")
    def _check_jitter_band(self) -> AiSettings:
        if self.jitter_max_ms < self.jitter_min_ms:
            raise ValueError("jitter_max_ms must not be lower than jitter_min_ms")
        return self


class TodoSettings(BaseModel):
    """Settings for the to-do delivery backend."""

    backend: Literal["external_api", "google_tasks"] = Field(
        default="external_api", description="Which to-do backend receives items"
    )
    base_url: str = Field(
        default="http://localhost:8080/api", description="External list API root"
    )
    api_key: str | None = Field(default=None, description="External API key")
    list_name: str = Field(default="MailFlow", description="Destination list")
    creator_name: str = Field(default="MailFlow", description="Reported creator")
    tasks_base_url: str = Field(
        default="https://tasks.googleapis.com/tasks/v1",
        description="Google Tasks REST API root",
    )
    tasks_access_token: str | None = Field(
        default=None, description="OAuth access token for Google Tasks"
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout")


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./mailflow.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class SchedulerSettings(BaseModel):
    """Settings controlling job retry and cadence."""

    max_attempts: int = Field(
        default=3, ge=1, description="Attempts before a job failure is terminal"
    )
    retry_backoff_seconds: float = Field(
        default=5.0, ge=0.0, description="Base delay between attempts"
    )
    interval_minutes: float = Field(
        default=30.0, gt=0.0, description="Period of the background pipeline"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    gmail: GmailSettings = Field(default_factory=GmailSettings)
    ai: AiSettings = Field(default_factory=AiSettings)
    todo: TodoSettings = Field(default_factory=TodoSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


ENV_PREFIX = "MAILFLOW_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    try:
        return AppSettings.model_validate(collected)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


__all__ = [
    "AiSettings",
    "AppSettings",
    "ConfigError",
    "GmailSettings",
    "LoggingSettings",
    "SchedulerSettings",
    "StorageSettings",
    "TodoSettings",
    "load_app_settings",
]
