"""Configuration for Porthor.

Applications embedding Porthor normally configure it with environment
variables. The token cache settings use the prefix ``PORTHOR_CACHE_`` and all
other settings use the prefix ``PORTHOR_``. Durations accept either a number
of seconds or a human-readable interval such as ``5m`` or ``1h30m``.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from safir.logging import LogLevel, Profile, configure_logging
from safir.pydantic import HumanTimedelta

from .constants import (
    CACHE_ACTION_TIMEOUT,
    CACHE_INTERVAL,
    CACHE_MAX_ENTRIES,
    CACHE_TTL,
    DEFAULT_LEEWAY,
    LOGGER_NAME,
)

__all__ = [
    "CacheConfig",
    "Config",
]


class CacheConfig(BaseSettings):
    """Configuration for the token cache."""

    model_config = SettingsConfigDict(
        env_prefix="PORTHOR_CACHE_", extra="forbid"
    )

    ttl: HumanTimedelta = Field(
        CACHE_TTL,
        title="Idle lifetime",
        description=(
            "How long a cached token may go unused before it is evicted"
        ),
    )

    leeway: HumanTimedelta = Field(
        DEFAULT_LEEWAY,
        title="Clock skew leeway",
        description=(
            "Tolerance for clock skew when checking whether cached tokens"
            " are still valid"
        ),
    )

    interval: HumanTimedelta = Field(
        CACHE_INTERVAL,
        title="Cleanup interval",
        description="How often to evict invalid and unused tokens",
    )

    max_entries: int = Field(
        CACHE_MAX_ENTRIES,
        title="Maximum entries",
        description=(
            "Soft limit on the number of cached tokens. Above this limit,"
            " unused tokens are evicted more aggressively."
        ),
        ge=1,
    )

    timeout: HumanTimedelta = Field(
        CACHE_ACTION_TIMEOUT,
        title="Action timeout",
        description="How long to wait for the cache to answer a request",
    )


class Config(BaseSettings):
    """Configuration for Porthor."""

    model_config = SettingsConfigDict(env_prefix="PORTHOR_", extra="forbid")

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Logging level",
        description="Python logging level",
    )

    log_profile: Profile = Field(
        Profile.production,
        title="Logging profile",
        description=(
            "Use ``production`` for JSON log messages and ``development``"
            " for human-readable messages"
        ),
    )

    leeway: HumanTimedelta = Field(
        DEFAULT_LEEWAY,
        title="Clock skew leeway",
        description=(
            "Tolerance for clock skew when checking the ``nbf`` and ``exp``"
            " claims of incoming tokens"
        ),
    )

    allow_none_algorithm: bool = Field(
        False,
        title="Allow unsigned tokens",
        description=(
            "Whether tokens using the ``none`` algorithm are accepted by the"
            " middleware. Such tokens are not authenticated in any way."
        ),
    )

    cache: CacheConfig = Field(
        default_factory=CacheConfig,
        title="Token cache",
        description="Configuration of the cache of verified tokens",
    )

    def configure_logging(self) -> None:
        """Configure logging based on the Porthor configuration."""
        configure_logging(
            name=LOGGER_NAME,
            profile=self.log_profile,
            log_level=self.log_level,
        )
