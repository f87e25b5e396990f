"""Errors raised while building the megaverse configuration."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a config value such as a reconcile bound is out of range."""


class MissingConfigurationError(ConfigurationError):
    """Raised when a required environment variable (e.g. ``CANDIDATE_ID``) is unset or blank."""
