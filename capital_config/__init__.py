"""
capital_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services and scripts obtain
    settings.  The result is built once per process and cached;
    ``reset_active_config()`` drops the cache (tests, reloads).

Failure modes:
    - ``FileNotFoundError`` -- ``CAPITAL_CONFIG_FILE`` names a missing file.
    - ``ValueError`` -- invalid values in YAML or environment.
"""

from __future__ import annotations

import logging
from pathlib import Path

from capital_config.loader import load_config
from capital_config.schema import (
    BankImportSettings,
    CapitalConfig,
    DatabaseSettings,
    DividendSettings,
    LedgerSettings,
    LoggingSettings,
)

_logger = logging.getLogger("capital_kernel.config")

_active: CapitalConfig | None = None


def get_active_config(config_file: Path | None = None) -> CapitalConfig:
    """
    Return the process-wide configuration, loading it on first use.

    Passing ``config_file`` forces a reload from that file.
    """
    global _active
    if _active is None or config_file is not None:
        _active = load_config(config_file)
        _logger.info(
            "CAPITAL_CONFIG_TRACE",
            extra={
                "checksum": _active.checksum,
                "database_dialect": _active.database.url.split(":", 1)[0],
                "log_level": _active.logging.level,
            },
        )
    return _active


def reset_active_config() -> None:
    global _active
    _active = None


__all__ = [
    "BankImportSettings",
    "CapitalConfig",
    "DatabaseSettings",
    "DividendSettings",
    "LedgerSettings",
    "LoggingSettings",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
