"""
CapitalConfig schema.

Frozen dataclasses the loader builds from the packaged defaults, an
optional override file and environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class BankImportSettings:
    """How bank exports are read."""

    delimiter: str = ";"
    date_formats: tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")
    encoding: str = "utf-8"


@dataclass(frozen=True)
class DividendSettings:
    default_withholding_tax_rate: Decimal = Decimal("0.30")


@dataclass(frozen=True)
class LedgerSettings:
    default_payment_method: str = "BANK_TRANSFER"
    currency: str = "EUR"


@dataclass(frozen=True)
class CapitalConfig:
    """Runtime configuration of the capital kernel."""

    database: DatabaseSettings
    logging: LoggingSettings
    bank_import: BankImportSettings
    dividends: DividendSettings
    ledger: LedgerSettings
    checksum: str = ""
