"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Two kinds of ledger data must never change once written:

  * Price snapshots.  ``Share.purchase_price_per_share`` and
    ``Transaction.price_per_share`` record the price at the moment of the
    purchase.  Sale totals, transfers and dividends are computed from the
    snapshot, so rewriting it would silently change history.

  * Paid dividends.  Once a ``DividendPeriod`` is PAID, the period and its
    ``DividendPayout`` rows are the record of money that left the coop.

Services never attempt these writes.  These listeners catch application
bugs that do.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()``/``delete()`` statements bypass mapper events; the
services only use those for compare-and-set status changes, which never
touch the protected columns.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | When Immutable                 | What
-------------------|--------------------------------|----------------------------
Share              | ALWAYS                         | purchase_price_per_share
Transaction        | ALWAYS                         | price_per_share
DividendPeriod     | After status = PAID            | every field
DividendPayout     | After paid_at is set           | every field, and DELETE

===============================================================================
USAGE
===============================================================================

    from capital_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import PASSIVE_NO_INITIALIZE, get_history

from capital_kernel.exceptions import ImmutabilityViolationError
from capital_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata may still be touched on a frozen row
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    from sqlalchemy import inspect

    changed = []
    for attr in inspect(target).mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if get_history(target, attr.key, passive=PASSIVE_NO_INITIALIZE).has_changes():
            changed.append(attr.key)
    return changed


def _check_share_price_snapshot(mapper, connection, target):
    if get_history(target, "purchase_price_per_share").has_changes():
        _block("Share", target, "UPDATE", "purchase price snapshot is immutable")


def _check_transaction_price_snapshot(mapper, connection, target):
    if get_history(target, "price_per_share").has_changes():
        _block("Transaction", target, "UPDATE", "price snapshot is immutable")


def _check_dividend_period_immutability(mapper, connection, target):
    """
    Block changes to a period that was already PAID before this flush.

    The transition CALCULATED -> PAID itself (with paid_at and
    payment_reference) is allowed.
    """
    from capital_kernel.domain.lifecycle import DividendPeriodStatus

    paid = DividendPeriodStatus.PAID.value
    history = get_history(target, "status")
    if history.deleted:
        was_paid = history.deleted[0] == paid
    else:
        was_paid = target.status == paid

    if was_paid and _changed_fields(target):
        _block("DividendPeriod", target, "UPDATE", "period is PAID")


def _check_dividend_payout_immutability(mapper, connection, target):
    history = get_history(target, "paid_at")
    if history.deleted:
        was_paid = history.deleted[0] is not None
    else:
        was_paid = target.paid_at is not None and not history.added

    if was_paid and _changed_fields(target):
        _block("DividendPayout", target, "UPDATE", "payout is paid")


def _check_dividend_payout_delete(mapper, connection, target):
    if target.paid_at is not None:
        _block("DividendPayout", target, "DELETE", "payout is paid")


_LISTENERS = (
    ("Share", "before_update", _check_share_price_snapshot),
    ("Transaction", "before_update", _check_transaction_price_snapshot),
    ("DividendPeriod", "before_update", _check_dividend_period_immutability),
    ("DividendPayout", "before_update", _check_dividend_payout_immutability),
    ("DividendPayout", "before_delete", _check_dividend_payout_delete),
)


def _targets() -> dict:
    from capital_kernel.models import DividendPayout, DividendPeriod, Share, Transaction

    return {
        "Share": Share,
        "Transaction": Transaction,
        "DividendPeriod": DividendPeriod,
        "DividendPayout": DividendPayout,
    }


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        if not event.contains(targets[name], event_name, listener_fn):
            event.listen(targets[name], event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        if event.contains(targets[name], event_name, listener_fn):
            event.remove(targets[name], event_name, listener_fn)
