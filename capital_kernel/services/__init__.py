"""Services for the capital kernel (write side)."""

from capital_kernel.services.bank_import_service import BankImportService
from capital_kernel.services.dividend_service import DividendRun, DividendService
from capital_kernel.services.ledger_service import (
    LedgerService,
    PurchaseResult,
    TransferResult,
)
from capital_kernel.services.ogm_allocator import OgmAllocator
from capital_kernel.services.payment_service import PaymentService
from capital_kernel.services.registry_service import RegistryService
from capital_kernel.services.unit_of_work import (
    LedgerOutcome,
    OutcomeStatus,
    UnitOfWork,
)

__all__ = [
    "BankImportService",
    "DividendRun",
    "DividendService",
    "LedgerOutcome",
    "LedgerService",
    "OgmAllocator",
    "OutcomeStatus",
    "PaymentService",
    "PurchaseResult",
    "RegistryService",
    "TransferResult",
    "UnitOfWork",
]
