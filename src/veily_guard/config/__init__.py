"""Configuration module for veily-guard."""

from veily_guard.config.loader import load_config_from_yaml
from veily_guard.config.settings import (
    DEFAULT_ANONYMIZE_PATH,
    DEFAULT_BASE_URL,
    DEFAULT_RESTORE_PATH,
    DEFAULT_TIMEOUT_MS,
    MAX_TTL_SECONDS,
    AnonymizeOptions,
    GuardConfig,
    ensure_config,
    ensure_options,
)

__all__ = [
    "GuardConfig",
    "AnonymizeOptions",
    "ensure_config",
    "ensure_options",
    "load_config_from_yaml",
    "DEFAULT_BASE_URL",
    "DEFAULT_ANONYMIZE_PATH",
    "DEFAULT_RESTORE_PATH",
    "DEFAULT_TIMEOUT_MS",
    "MAX_TTL_SECONDS",
]
