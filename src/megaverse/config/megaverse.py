"""Megaverse API and reconciliation configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_MEGAVERSE_BASE_URL = "https://challenge.crossmint.io/api"
MEGAVERSE_TIMEOUT_SECONDS = 15.0

DEFAULT_BATCH_SIZE = 2
DEFAULT_MAX_REQUEST_RETRIES = 10
DEFAULT_INITIAL_BACKOFF_SECONDS = 0.2
DEFAULT_BACKOFF_INCREMENT_SECONDS = 0.2
DEFAULT_MAX_BACKOFF_SECONDS = 3.0
DEFAULT_MAX_VERIFICATION_RETRIES = 3


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    """Bounds for the submit/verify cycle."""

    batch_size: int = DEFAULT_BATCH_SIZE
    max_request_retries: int = DEFAULT_MAX_REQUEST_RETRIES
    initial_backoff_seconds: float = DEFAULT_INITIAL_BACKOFF_SECONDS
    backoff_increment_seconds: float = DEFAULT_BACKOFF_INCREMENT_SECONDS
    max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS
    max_verification_retries: int = DEFAULT_MAX_VERIFICATION_RETRIES

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.max_request_retries < 1:
            raise ConfigurationError("max_request_retries must be at least 1")
        if self.max_verification_retries < 0:
            raise ConfigurationError("max_verification_retries must be non-negative")
        if self.initial_backoff_seconds < 0 or self.backoff_increment_seconds < 0:
            raise ConfigurationError("Backoff durations must be non-negative")
        if self.max_backoff_seconds < self.initial_backoff_seconds:
            raise ConfigurationError("max_backoff_seconds must not be below the initial backoff")


@dataclass(frozen=True, slots=True)
class MegaverseConfig:
    candidate_id: str
    resilience: ResilienceConfig
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)


def default_resilience_config(base_url: str = DEFAULT_MEGAVERSE_BASE_URL) -> ResilienceConfig:
    return ResilienceConfig(
        name="megaverse",
        base_url=base_url,
        timeout_seconds=MEGAVERSE_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=3),
        ratelimit=RateLimit(max_calls=4, per_seconds=1.0),
        default_headers={"Accept": "application/json"},
    )


def get_megaverse_config(
    *,
    candidate_id: str | None = None,
    resilience: ResilienceConfig | None = None,
    reconcile: ReconcileConfig | None = None,
) -> MegaverseConfig:
    if candidate_id is None:
        candidate_id = require_env_vars(("CANDIDATE_ID",))["CANDIDATE_ID"]
    elif not candidate_id.strip():
        raise ConfigurationError("Candidate id must not be blank")

    base_url = optional_env_var("MEGAVERSE_BASE_URL", DEFAULT_MEGAVERSE_BASE_URL)
    return MegaverseConfig(
        candidate_id=candidate_id.strip(),
        resilience=resilience or default_resilience_config(base_url),
        reconcile=reconcile or ReconcileConfig(),
    )
