"""
Configuration management for the Verum indexer and writer.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Misconfiguration raises ValueError; nothing else in the indexer
      raises for expected conditions
    - Retry settings are converted to a RetryPolicy value shared by the
      fetch adapter and the segmented writer

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep cache TTLs short; views are rebuilt from the ledger on expiry
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class Network(Enum):
    """Ledger networks the indexer can read from."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


DEFAULT_API_URLS = {
    Network.MAINNET: "https://api.kaspa.org",
    Network.TESTNET: "https://api-tn10.kaspa.org",
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger REST API configuration.

    Attributes:
        api_url: Base URL of the ledger REST API
        network: Network the API serves
        timeout_seconds: Per-request timeout
        page_size: Transactions requested per page
        max_history: Upper bound on transactions pulled per address
        user_agent: User-Agent header sent with every request
    """

    api_url: str = DEFAULT_API_URLS[Network.MAINNET]
    network: Network = Network.MAINNET
    timeout_seconds: float = 10.0
    page_size: int = 100
    max_history: int = 1000
    user_agent: str = "verum-index/0.1"

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If VERUM_NETWORK names an unknown network
        """
        network_str = os.getenv("VERUM_NETWORK", "mainnet").lower()
        try:
            network = Network(network_str)
        except ValueError:
            raise ValueError(
                f"Invalid VERUM_NETWORK '{network_str}'. Must be one of: mainnet, testnet"
            )
        return cls(
            api_url=os.getenv("VERUM_API_URL", DEFAULT_API_URLS[network]),
            network=network,
            timeout_seconds=float(os.getenv("VERUM_FETCH_TIMEOUT", "10")),
            page_size=int(os.getenv("VERUM_PAGE_SIZE", "100")),
            max_history=int(os.getenv("VERUM_MAX_HISTORY", "1000")),
            user_agent=os.getenv("VERUM_USER_AGENT", "verum-index/0.1"),
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry settings for ledger fetches and segment submission.

    Attributes:
        max_attempts: Attempts per operation, including the first
        base_delay_seconds: Delay before the first retry
        multiplier: Backoff multiplier between retries
        max_delay_seconds: Cap on any single delay
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    @classmethod
    def from_env(cls, prefix: str = "VERUM_RETRY") -> RetryConfig:
        """Load configuration from environment variables."""
        return cls(
            max_attempts=int(os.getenv(f"{prefix}_MAX_ATTEMPTS", "3")),
            base_delay_seconds=float(os.getenv(f"{prefix}_BASE_DELAY", "1.0")),
            multiplier=float(os.getenv(f"{prefix}_MULTIPLIER", "2.0")),
            max_delay_seconds=float(os.getenv(f"{prefix}_MAX_DELAY", "30.0")),
        )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            multiplier=self.multiplier,
            max_delay=self.max_delay_seconds,
        )


@dataclass(frozen=True)
class CacheConfig:
    """View cache configuration.

    Attributes:
        enabled: Whether views are cached at all
        feed_ttl_seconds: TTL of feed pages
        profile_ttl_seconds: TTL of reconstructed profiles
        story_ttl_seconds: TTL of reconstructed stories
        incomplete_story_ttl_seconds: TTL of stories still missing segments
        engagement_ttl_seconds: TTL of like/comment counts
        transaction_ttl_seconds: TTL of single fetched transactions
        recent_ttl_seconds: TTL of the network-wide recent list
    """

    enabled: bool = True
    feed_ttl_seconds: float = 30.0
    profile_ttl_seconds: float = 60.0
    story_ttl_seconds: float = 120.0
    incomplete_story_ttl_seconds: float = 10.0
    engagement_ttl_seconds: float = 30.0
    transaction_ttl_seconds: float = 30.0
    recent_ttl_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("VERUM_CACHE_ENABLED", "true"),
            feed_ttl_seconds=float(os.getenv("VERUM_CACHE_FEED_TTL", "30")),
            profile_ttl_seconds=float(os.getenv("VERUM_CACHE_PROFILE_TTL", "60")),
            story_ttl_seconds=float(os.getenv("VERUM_CACHE_STORY_TTL", "120")),
            incomplete_story_ttl_seconds=float(
                os.getenv("VERUM_CACHE_INCOMPLETE_STORY_TTL", "10")
            ),
            engagement_ttl_seconds=float(os.getenv("VERUM_CACHE_ENGAGEMENT_TTL", "30")),
            transaction_ttl_seconds=float(os.getenv("VERUM_CACHE_TRANSACTION_TTL", "30")),
            recent_ttl_seconds=float(os.getenv("VERUM_CACHE_RECENT_TTL", "10")),
        )


@dataclass(frozen=True)
class WriterConfig:
    """Segmented writer configuration.

    Attributes:
        segment_delay_seconds: Pause after each published segment
        retry: Per-segment retry settings
    """

    segment_delay_seconds: float = 2.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_env(cls) -> WriterConfig:
        """Load configuration from environment variables."""
        return cls(
            segment_delay_seconds=float(os.getenv("VERUM_SEGMENT_DELAY", "2.0")),
            retry=RetryConfig.from_env("VERUM_WRITER_RETRY"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass(frozen=True)
class IndexerConfig:
    """Complete indexer configuration.

    Attributes:
        ledger: Ledger API configuration
        retry: Fetch retry configuration
        cache: View cache configuration
        writer: Segmented writer configuration
        observability: Logging configuration
    """

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> IndexerConfig:
        """Load complete configuration from environment variables.

        Returns:
            IndexerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            ledger=LedgerConfig.from_env(),
            retry=RetryConfig.from_env(),
            cache=CacheConfig.from_env(),
            writer=WriterConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.ledger.api_url:
            raise ValueError("VERUM_API_URL must not be empty")
        if self.ledger.timeout_seconds <= 0:
            raise ValueError("VERUM_FETCH_TIMEOUT must be positive")
        if self.ledger.page_size < 1:
            raise ValueError("VERUM_PAGE_SIZE must be at least 1")
        if self.ledger.max_history < 1:
            raise ValueError("VERUM_MAX_HISTORY must be at least 1")

        for name, retry in (("fetch", self.retry), ("writer", self.writer.retry)):
            if retry.max_attempts < 1:
                raise ValueError(f"{name} retry max_attempts must be at least 1")
            if retry.base_delay_seconds < 0 or retry.max_delay_seconds < 0:
                raise ValueError(f"{name} retry delays must not be negative")

        if self.writer.segment_delay_seconds < 0:
            raise ValueError("VERUM_SEGMENT_DELAY must not be negative")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Indexer configuration loaded",
            extra={
                "api_url": self.ledger.api_url,
                "network": self.ledger.network.value,
                "fetch_timeout": self.ledger.timeout_seconds,
                "max_history": self.ledger.max_history,
                "retry_attempts": self.retry.max_attempts,
                "cache_enabled": self.cache.enabled,
                "segment_delay": self.writer.segment_delay_seconds,
                "log_level": self.observability.log_level,
            },
        )
