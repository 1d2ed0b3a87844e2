"""
Configuration Loader (``capital_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults/settings.yaml``, merges an optional override
file and environment variables on top, and parses the result into the
frozen dataclasses of ``capital_config.schema``.

Precedence (lowest first)
-------------------------
1. ``capital_config/defaults/settings.yaml``
2. The YAML file named by ``CAPITAL_CONFIG_FILE`` (or passed explicitly)
3. ``CAPITAL_DATABASE_URL``, ``CAPITAL_LOG_LEVEL``, ``CAPITAL_DB_ECHO``

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from capital_config.schema import (
    BankImportSettings,
    CapitalConfig,
    DatabaseSettings,
    DividendSettings,
    LedgerSettings,
    LoggingSettings,
)

DEFAULTS_FILE = Path(__file__).parent / "defaults" / "settings.yaml"

ENV_CONFIG_FILE = "CAPITAL_CONFIG_FILE"
ENV_DATABASE_URL = "CAPITAL_DATABASE_URL"
ENV_LOG_LEVEL = "CAPITAL_LOG_LEVEL"
ENV_DB_ECHO = "CAPITAL_DB_ECHO"

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})
_PAYMENT_METHODS = frozenset({"BANK_TRANSFER", "MOLLIE", "STRIPE"})
_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def parse_positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key}: expected an integer, got {value!r}") from exc
    if number < 0:
        raise ValueError(f"{key}: must not be negative, got {number}")
    return number


def parse_rate(value: Any, key: str) -> Decimal:
    """A fraction in [0, 1].  Floats go through ``str`` to keep their literal value."""
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: expected a decimal rate, got {value!r}") from exc
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValueError(f"{key}: must be between 0 and 1, got {value!r}")
    return rate


def apply_environment(raw: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if environ.get(ENV_DATABASE_URL):
        overrides.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_DB_ECHO):
        overrides.setdefault("database", {})["echo"] = environ[ENV_DB_ECHO]
    if environ.get(ENV_LOG_LEVEL):
        overrides.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    return merge(raw, overrides)


def parse_config(raw: Mapping[str, Any]) -> CapitalConfig:
    """
    Build a ``CapitalConfig`` from a merged dict.

    Raises:
        ValueError: on any invalid or missing value.
    """
    db = raw.get("database") or {}
    if not db.get("url"):
        raise ValueError("database.url: required")
    database = DatabaseSettings(
        url=str(db["url"]),
        echo=parse_bool(db.get("echo", False), "database.echo"),
        pool_size=parse_positive_int(db.get("pool_size", 5), "database.pool_size"),
        max_overflow=parse_positive_int(db.get("max_overflow", 10), "database.max_overflow"),
        pool_timeout=parse_positive_int(db.get("pool_timeout", 30), "database.pool_timeout"),
    )

    level = str((raw.get("logging") or {}).get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level: unknown level {level!r}")

    bank = raw.get("bank_import") or {}
    delimiter = str(bank.get("delimiter", ";"))
    if len(delimiter) != 1:
        raise ValueError(f"bank_import.delimiter: must be one character, got {delimiter!r}")
    date_formats = tuple(str(f) for f in bank.get("date_formats") or ())
    if not date_formats:
        raise ValueError("bank_import.date_formats: at least one format is required")

    dividends = raw.get("dividends") or {}
    ledger = raw.get("ledger") or {}
    method = str(ledger.get("default_payment_method", "BANK_TRANSFER")).upper()
    if method not in _PAYMENT_METHODS:
        raise ValueError(f"ledger.default_payment_method: unknown method {method!r}")

    return CapitalConfig(
        database=database,
        logging=LoggingSettings(level=level),
        bank_import=BankImportSettings(
            delimiter=delimiter,
            date_formats=date_formats,
            encoding=str(bank.get("encoding", "utf-8")),
        ),
        dividends=DividendSettings(
            default_withholding_tax_rate=parse_rate(
                dividends.get("default_withholding_tax_rate", "0.30"),
                "dividends.default_withholding_tax_rate",
            ),
        ),
        ledger=LedgerSettings(
            default_payment_method=method,
            currency=str(ledger.get("currency", "EUR")),
        ),
        checksum=compute_checksum(raw),
    )


def compute_checksum(raw: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of the merged configuration."""
    canonical = json.dumps(raw, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CapitalConfig:
    environ = os.environ if environ is None else environ
    raw = load_yaml_file(DEFAULTS_FILE)
    override_path = config_file or environ.get(ENV_CONFIG_FILE)
    if override_path:
        raw = merge(raw, load_yaml_file(Path(override_path)))
    raw = apply_environment(raw, environ)
    return parse_config(raw)
