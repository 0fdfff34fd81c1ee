"""Utility functions."""

from veily_guard.utils.text import (
    fingerprint_secret,
    redact_secret,
    sanitize_for_logging,
    truncate_text,
)

__all__ = [
    "truncate_text",
    "sanitize_for_logging",
    "fingerprint_secret",
    "redact_secret",
]
