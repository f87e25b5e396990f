"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .megaverse import (
    DEFAULT_MEGAVERSE_BASE_URL,
    MegaverseConfig,
    ReconcileConfig,
    default_resilience_config,
    get_megaverse_config,
)

__all__ = [
    "DEFAULT_MEGAVERSE_BASE_URL",
    "ConfigurationError",
    "MegaverseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconcileConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "default_resilience_config",
    "get_megaverse_config",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
