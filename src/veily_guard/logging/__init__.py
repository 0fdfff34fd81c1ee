"""Logging configuration module for veily-guard."""

from veily_guard.logging.setup import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
