"""
Tick Feed Configuration
All tunable parameters in one place.
"""

import os
from dataclasses import dataclass, field

from archive.transport import DEFAULT_BASE_URL
from core.retry import RetryPolicy


@dataclass
class ArchiveConfig:
    base_url: str = DEFAULT_BASE_URL


@dataclass
class FetchConfig:
    timeout_sec: float = 30.0           # Per attempt
    max_attempts: int = 4               # Total attempts per segment
    base_delay_sec: float = 0.5         # First retry delay, doubles each attempt
    max_delay_sec: float = 8.0          # Backoff cap
    jitter: float = 0.25                # Up to +25% random extra delay

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_sec,
            max_delay=self.max_delay_sec,
            jitter=self.jitter,
        )


@dataclass
class CollectConfig:
    concurrency_limit: int = 4          # Parallel segment downloads; keep low for fair use
    fail_fast: bool = False             # Abort the whole range on first failed hour


@dataclass
class StorageConfig:
    db_path: str = "./data/ticks.db"


@dataclass
class FeedConfig:
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    collect: CollectConfig = field(default_factory=CollectConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FeedConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.archive.base_url = os.getenv("DUKA_BASE_URL", config.archive.base_url)
        config.fetch.timeout_sec = float(os.getenv("FETCH_TIMEOUT_SEC", config.fetch.timeout_sec))
        config.fetch.max_attempts = int(os.getenv("FETCH_MAX_ATTEMPTS", config.fetch.max_attempts))
        config.fetch.base_delay_sec = float(os.getenv("FETCH_BASE_DELAY_SEC", config.fetch.base_delay_sec))
        config.fetch.max_delay_sec = float(os.getenv("FETCH_MAX_DELAY_SEC", config.fetch.max_delay_sec))
        config.fetch.jitter = float(os.getenv("FETCH_JITTER", config.fetch.jitter))
        config.collect.concurrency_limit = int(
            os.getenv("CONCURRENCY_LIMIT", config.collect.concurrency_limit)
        )
        config.collect.fail_fast = os.getenv("FAIL_FAST", "false").lower() == "true"
        config.storage.db_path = os.getenv("DB_PATH", config.storage.db_path)
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        return config
