"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from mailflow.core.config import ConfigError, load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.storage.db_path == Path("./mailflow.db")
    assert settings.ai.model == "gemini-2.0-flash-exp"
    assert settings.ai.requests_per_minute == 10
    assert (settings.ai.jitter_min_ms, settings.ai.jitter_max_ms) == (2000, 3000)
    assert settings.todo.backend == "external_api"
    assert settings.scheduler.max_attempts == 3


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "MAILFLOW_AI__REQUESTS_PER_MINUTE=4\n"
        "MAILFLOW_TODO__BACKEND=google_tasks\n"
        "MAILFLOW_LOGGING__STRUCTURED=true\n"
        "UNRELATED_KEY=ignored\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.ai.requests_per_minute == 4
    assert settings.todo.backend == "google_tasks"
    assert settings.logging.structured is True


def test_environment_takes_precedence_over_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Process environment values should win over the env file."""

    env_file = tmp_path / "test.env"
    env_file.write_text("MAILFLOW_TODO__LIST_NAME=FromFile\n", encoding="utf-8")
    monkeypatch.setenv("MAILFLOW_TODO__LIST_NAME", "FromEnv")

    settings = load_app_settings(env_file=env_file)
    assert settings.todo.list_name == "FromEnv"


def test_invalid_values_raise_config_error(tmp_path: Path) -> None:
    """Validation failures should surface as ConfigError."""

    env_file = tmp_path / "bad.env"
    env_file.write_text(
        "MAILFLOW_AI__JITTER_MIN_MS=3000\nMAILFLOW_AI__JITTER_MAX_MS=1000\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError):
        load_app_settings(env_file=env_file, include_environment=False)
