"""ORM models for the capital kernel."""

from capital_kernel.models.bank_import import BankImport, BankTransaction
from capital_kernel.models.coop import Coop, OgmSequenceCounter, Project
from capital_kernel.models.dividend import DividendPayout, DividendPeriod
from capital_kernel.models.payment import Payment
from capital_kernel.models.share import Share, ShareClass
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.models.transaction import Transaction

__all__ = [
    "BankImport",
    "BankTransaction",
    "Coop",
    "DividendPayout",
    "DividendPeriod",
    "OgmSequenceCounter",
    "Payment",
    "Project",
    "Share",
    "ShareClass",
    "Shareholder",
    "Transaction",
]
