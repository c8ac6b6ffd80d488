"""Startup-time errors surfaced to the entry point."""

from __future__ import annotations


class ConfigError(ValueError):
    """Raised when the resolved configuration cannot be used."""


class StartupError(RuntimeError):
    """Raised when no usable probe execution path exists."""
