"""
LedgerSettings schema.

The frozen runtime configuration of the stock ledger.  YAML sets are parsed
into this type by the loader; nothing else reads configuration files.
"""

from __future__ import annotations

from dataclasses import dataclass

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerSettings:
    """Validated ledger configuration."""

    config_id: str = "STOCK-LEDGER-DEFAULT"
    version: int = 1

    # Alerts
    default_minimum_level: int = 5
    expiry_window_days: int = 7

    # Concurrency
    max_conflict_retries: int = 5
    conflict_backoff_seconds: float = 0.02
    lock_timeout_seconds: int = 30

    # Integrity
    verify_replay_on_write: bool = True

    # Persistence
    database_url: str = "sqlite:///stock_ledger.db"
    echo_sql: bool = False

    log_level: str = "INFO"

    # SHA-256 of the source set, filled in by the loader
    checksum: str = ""

    def __post_init__(self) -> None:
        if self.default_minimum_level < 0:
            raise ValueError(
                f"default_minimum_level must be >= 0, got {self.default_minimum_level}"
            )
        if self.expiry_window_days < 0:
            raise ValueError(
                f"expiry_window_days must be >= 0, got {self.expiry_window_days}"
            )
        if self.max_conflict_retries < 1:
            raise ValueError(
                f"max_conflict_retries must be >= 1, got {self.max_conflict_retries}"
            )
        if self.conflict_backoff_seconds < 0:
            raise ValueError(
                f"conflict_backoff_seconds must be >= 0, got {self.conflict_backoff_seconds}"
            )
        if self.lock_timeout_seconds <= 0:
            raise ValueError(
                f"lock_timeout_seconds must be > 0, got {self.lock_timeout_seconds}"
            )
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")
