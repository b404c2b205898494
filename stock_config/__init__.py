"""
stock_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside ``stock_kernel`` and below
    ``stock_services``.  The kernel MUST NEVER import from ``stock_config``;
    the services layer translates settings into kernel inputs
    (AlertThresholds, retry limits, engine parameters).

Failure modes:
    - ``FileNotFoundError`` -- the configuration set does not exist.
    - ``ValueError`` -- unknown sections or out-of-range values.

Every successful call emits a ``stock_config_loaded`` log entry with the
config_id, version and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from stock_config.loader import compute_checksum, load_settings
from stock_config.schema import LedgerSettings
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "STOCK_LEDGER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Resolution order for the set: ``config_path`` argument, then the
    ``STOCK_LEDGER_CONFIG`` environment variable, then the bundled
    ``sets/default.yaml``.  ``DATABASE_URL`` overrides ``database.url``.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    settings = load_settings(path, database_url=os.environ.get(DATABASE_URL_ENV))

    logger.info(
        "stock_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
        },
    )
    return settings


__all__ = [
    "LedgerSettings",
    "compute_checksum",
    "get_active_config",
]
