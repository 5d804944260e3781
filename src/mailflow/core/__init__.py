"""Core models, settings, and shared primitives."""

from .config import AppSettings, ConfigError, load_app_settings
from .logging import configure_logging
from .rate_limiter import RateLimiter

__all__ = [
    "AppSettings",
    "ConfigError",
    "RateLimiter",
    "configure_logging",
    "load_app_settings",
]
