"""Errors raised while reading connector and application settings."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when settings, schedules, filter rules or mapping tables are unusable.

    A connector whose settings raise this refuses to start.
    """


class MissingConfigurationError(ConfigurationError):
    """Raised when a required property is absent or blank after all overrides."""
