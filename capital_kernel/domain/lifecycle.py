"""
Ledger lifecycle types (``capital_kernel.domain.lifecycle``).

Responsibility
--------------
Status enums and the allowed-transition tables for shares, ledger
transactions, payments, bank rows and dividend periods.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Models import
the enums from here; services consult the transition tables before every
compare-and-set update.

Invariants enforced
-------------------
* Transaction status only advances: PENDING -> {APPROVED, REJECTED},
  APPROVED -> COMPLETED.  COMPLETED and REJECTED are terminal.
* Transfer transactions are created COMPLETED and never transition.
* A payment may only be MATCHED or CONFIRMED while its transaction is
  APPROVED or COMPLETED (``PAYMENT_SETTLED_STATUSES`` /
  ``TRANSACTION_SETTLEABLE_STATUSES``).
* A PAID dividend period is terminal.
"""

from __future__ import annotations

from enum import Enum

from capital_kernel.exceptions import InvalidStateError


class ShareStatus(str, Enum):
    """Share lifecycle states."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    TRANSFERRED = "TRANSFERRED"


class TransactionType(str, Enum):
    """Kinds of ledger transactions."""

    PURCHASE = "PURCHASE"
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"


class TransactionStatus(str, Enum):
    """Ledger transaction lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    MOLLIE = "MOLLIE"
    STRIPE = "STRIPE"


class PaymentStatus(str, Enum):
    """Payment lifecycle states."""

    PENDING = "PENDING"
    MATCHED = "MATCHED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class MatchStatus(str, Enum):
    """Resolution state of an imported bank statement row."""

    UNMATCHED = "UNMATCHED"
    AUTO_MATCHED = "AUTO_MATCHED"
    MANUAL_MATCHED = "MANUAL_MATCHED"


class DividendPeriodStatus(str, Enum):
    DRAFT = "DRAFT"
    CALCULATED = "CALCULATED"
    PAID = "PAID"


class ShareholderType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    COMPANY = "COMPANY"
    MINOR = "MINOR"


class ShareholderStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# =========================================================================
# Transition tables
# =========================================================================


TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.APPROVED: frozenset({
        TransactionStatus.COMPLETED,
    }),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}

TERMINAL_TRANSACTION_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.REJECTED,
})

SHARE_TRANSITIONS: dict[ShareStatus, frozenset[ShareStatus]] = {
    ShareStatus.PENDING: frozenset({ShareStatus.ACTIVE}),
    ShareStatus.ACTIVE: frozenset({ShareStatus.SOLD, ShareStatus.TRANSFERRED}),
    ShareStatus.SOLD: frozenset(),
    ShareStatus.TRANSFERRED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.MATCHED,
        PaymentStatus.CONFIRMED,
        PaymentStatus.FAILED,
    }),
    PaymentStatus.MATCHED: frozenset({PaymentStatus.CONFIRMED}),
    PaymentStatus.CONFIRMED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

DIVIDEND_PERIOD_TRANSITIONS: dict[DividendPeriodStatus, frozenset[DividendPeriodStatus]] = {
    DividendPeriodStatus.DRAFT: frozenset({DividendPeriodStatus.CALCULATED}),
    # Recalculation keeps a period CALCULATED
    DividendPeriodStatus.CALCULATED: frozenset({
        DividendPeriodStatus.CALCULATED,
        DividendPeriodStatus.PAID,
    }),
    DividendPeriodStatus.PAID: frozenset(),
}

PAYMENT_SETTLED_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.MATCHED,
    PaymentStatus.CONFIRMED,
})

TRANSACTION_SETTLEABLE_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.APPROVED,
    TransactionStatus.COMPLETED,
})

# Sale transactions that still hold quantity against a share
SALE_COMMITTING_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.PENDING,
    TransactionStatus.APPROVED,
})


def can_transition(table: dict, current: Enum | str, target: Enum | str) -> bool:
    """Return True if ``table`` allows ``current`` -> ``target``."""
    enum_type = type(next(iter(table)))
    try:
        current_member = enum_type(current)
        target_member = enum_type(target)
    except ValueError:
        return False
    return target_member in table.get(current_member, frozenset())


def require_transition(
    table: dict,
    *,
    entity_type: str,
    entity_id: object,
    current: Enum | str,
    target: Enum | str,
    attempted: str,
) -> None:
    """
    Raise ``InvalidStateError`` unless ``table`` allows ``current`` -> ``target``.

    The check runs before the compare-and-set update; the update itself
    re-asserts ``current`` in its WHERE clause.
    """
    if not can_transition(table, current, target):
        raise InvalidStateError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            current_status=str(getattr(current, "value", current)),
            attempted=attempted,
        )
