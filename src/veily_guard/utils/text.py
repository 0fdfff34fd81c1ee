"""Text helpers for building log lines and error messages."""

import hashlib
import re
from typing import Optional


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate text to a maximum length, adding suffix if truncated.

    Args:
        text: Input text to truncate.
        max_length: Maximum length of the output text including suffix.
        suffix: Suffix to add if text is truncated (default: "...").

    Returns:
        Truncated text with suffix if needed, or original text if short enough.

    Raises:
        ValueError: If max_length is less than suffix length.

    Examples:
        >>> truncate_text("This is a long text", 10)
        'This is...'
    """
    if not text:
        return ""

    if max_length < len(suffix):
        raise ValueError(f"max_length ({max_length}) must be >= suffix length ({len(suffix)})")

    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def sanitize_for_logging(text: str, max_length: int = 200) -> str:
    """Sanitize remote text (e.g. an error body) for logs and exceptions.

    Error bodies may echo parts of the request, so bearer tokens, emails and
    phone-like digit runs are masked after truncation.

    Args:
        text: Input text to sanitize.
        max_length: Maximum length after sanitization.

    Returns:
        Sanitized text.

    Examples:
        >>> sanitize_for_logging("bad mail juan@example.com")
        'bad mail [EMAIL]'
    """
    if not text:
        return ""

    result = truncate_text(text, max_length, suffix="...")

    result = re.sub(r"(?i)bearer\s+\S+", "Bearer [REDACTED]", result)
    result = re.sub(r"\b[\w.+-]+@[\w.-]+\.\w+\b", "[EMAIL]", result)
    result = re.sub(r"\+?\d[\d \-]{7,}\d", "[PHONE]", result)

    return result


def fingerprint_secret(secret: Optional[str]) -> Optional[str]:
    """Return a short, non-reversible fingerprint of a secret for logging.

    Examples:
        >>> fingerprint_secret("test-api-key")[:4]
        'sha:'
    """
    if not secret:
        return None
    return "sha:" + hashlib.sha256(secret.encode()).hexdigest()[:12]


def redact_secret(text: str, secret: Optional[str]) -> str:
    """Remove every occurrence of ``secret`` from ``text``."""
    if not text or not secret:
        return text
    return text.replace(secret, "[REDACTED]")
