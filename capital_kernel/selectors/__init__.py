"""Selectors for the capital kernel (read side)."""

from capital_kernel.selectors.bank_selector import (
    BankImportDTO,
    BankSelector,
    BankTransactionDTO,
)
from capital_kernel.selectors.dividend_selector import (
    DividendSelector,
    PayoutDTO,
    PeriodSummary,
)
from capital_kernel.selectors.ledger_selector import (
    CapitalSummary,
    LedgerSelector,
    Page,
    PendingPaymentDTO,
    ShareDTO,
    TransactionDTO,
)

__all__ = [
    "BankImportDTO",
    "BankSelector",
    "BankTransactionDTO",
    "CapitalSummary",
    "DividendSelector",
    "LedgerSelector",
    "Page",
    "PayoutDTO",
    "PendingPaymentDTO",
    "PeriodSummary",
    "ShareDTO",
    "TransactionDTO",
]
