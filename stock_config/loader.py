"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into a ``LedgerSettings``
instance.  Runtime code obtains settings through
``stock_config.get_active_config()``, never from this module directly.

Invariants enforced
-------------------
* Unknown top-level sections are rejected (``ValueError``) so that typos do
  not silently fall back to defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``LedgerSettings``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import LedgerSettings

_SECTIONS = frozenset(
    {"config_id", "version", "alerts", "concurrency", "integrity", "database", "logging"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from a parsed configuration set."""
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    alerts = data.get("alerts") or {}
    concurrency = data.get("concurrency") or {}
    integrity = data.get("integrity") or {}
    database = data.get("database") or {}
    logging_section = data.get("logging") or {}
    defaults = LedgerSettings()

    return LedgerSettings(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        default_minimum_level=int(
            alerts.get("default_minimum_level", defaults.default_minimum_level)
        ),
        expiry_window_days=int(alerts.get("expiry_window_days", defaults.expiry_window_days)),
        max_conflict_retries=int(
            concurrency.get("max_conflict_retries", defaults.max_conflict_retries)
        ),
        conflict_backoff_seconds=float(
            concurrency.get("conflict_backoff_seconds", defaults.conflict_backoff_seconds)
        ),
        lock_timeout_seconds=int(
            concurrency.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
        ),
        verify_replay_on_write=bool(
            integrity.get("verify_replay_on_write", defaults.verify_replay_on_write)
        ),
        database_url=str(database.get("url", defaults.database_url)),
        echo_sql=bool(database.get("echo", defaults.echo_sql)),
        log_level=str(logging_section.get("level", defaults.log_level)).upper(),
    )


def compute_checksum(settings: LedgerSettings | dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON serialization.

    The ``checksum`` field itself is excluded so that a settings object and
    its checksummed copy hash identically.
    """
    data = asdict(settings) if isinstance(settings, LedgerSettings) else dict(settings)
    data.pop("checksum", None)
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_settings(path: Path, database_url: str | None = None) -> LedgerSettings:
    """Load, override and checksum one configuration set."""
    settings = parse_settings(load_yaml_file(path))
    if database_url:
        settings = replace(settings, database_url=database_url)
    return replace(settings, checksum=compute_checksum(settings))
