"""Tests for LedgerSelector read models."""

from decimal import Decimal
from uuid import uuid4

from capital_kernel.domain.lifecycle import (
    PaymentStatus,
    ShareStatus,
    TransactionStatus,
    TransactionType,
)
from capital_kernel.selectors.ledger_selector import LedgerSelector


def test_available_quantity(session, ledger_service, make_active_share, coop, shareholder, test_actor_id):
    share = make_active_share(quantity=10)
    selector = LedgerSelector(session)
    assert selector.available_quantity(share) == 10

    ledger_service.initiate_sale(coop.id, shareholder.id, share.id, 3, test_actor_id)
    assert selector.committed_sale_quantity(share.id) == 3
    assert selector.available_quantity(share) == 7


def test_pending_share_has_nothing_available(
    session, ledger_service, coop, shareholder, share_class, test_actor_id
):
    result = ledger_service.initiate_purchase(
        coop.id, shareholder.id, share_class.id, 5, test_actor_id
    )
    assert LedgerSelector(session).available_quantity(result.share) == 0


def test_get_transaction_includes_payment(
    session, ledger_service, coop, shareholder, share_class, test_actor_id
):
    result = ledger_service.initiate_purchase(
        coop.id, shareholder.id, share_class.id, 2, test_actor_id
    )

    dto = LedgerSelector(session).get_transaction(result.transaction.id)

    assert dto.transaction_type == TransactionType.PURCHASE.value
    assert dto.status == TransactionStatus.PENDING.value
    assert dto.ogm_code == "+++001/0000/00177+++"
    assert dto.payment_status == PaymentStatus.PENDING.value
    assert dto.total_amount == Decimal("500.00")


def test_get_missing_transaction(session):
    assert LedgerSelector(session).get_transaction(uuid4()) is None


def test_list_transactions_filters_and_pages(
    session, ledger_service, make_active_share, coop, shareholder, second_shareholder,
    test_actor_id,
):
    for _ in range(3):
        make_active_share(quantity=1)
    make_active_share(quantity=1, owner=second_shareholder)
    selector = LedgerSelector(session)

    everything = selector.list_transactions(coop.id)
    assert everything.total == 4

    first_page = selector.list_transactions(coop.id, shareholder_id=shareholder.id, page_size=2)
    second_page = selector.list_transactions(
        coop.id, shareholder_id=shareholder.id, page=2, page_size=2
    )
    assert first_page.total == 3
    assert len(first_page.items) == 2
    assert len(second_page.items) == 1
    ids = {t.id for t in first_page.items} | {t.id for t in second_page.items}
    assert len(ids) == 3

    pending = selector.list_transactions(coop.id, status=TransactionStatus.PENDING.value)
    assert pending.total == 0


def test_shares_for_shareholder(
    session, ledger_service, make_active_share, coop, shareholder, second_shareholder,
    test_actor_id,
):
    share = make_active_share(quantity=5)
    ledger_service.execute_transfer(
        coop.id, shareholder.id, second_shareholder.id, share.id, 5, test_actor_id
    )
    selector = LedgerSelector(session)

    assert selector.shares_for_shareholder(shareholder.id) == []
    [closed] = selector.shares_for_shareholder(shareholder.id, include_closed=True)
    assert closed.status == ShareStatus.TRANSFERRED.value
    assert closed.available_quantity == 0

    [received] = selector.shares_for_shareholder(second_shareholder.id)
    assert received.share_class_code == "A"
    assert received.quantity == 5
    assert received.available_quantity == 5


def test_pending_payments(session, ledger_service, coop, shareholder, share_class, test_actor_id):
    first = ledger_service.initiate_purchase(coop.id, shareholder.id, share_class.id, 1, test_actor_id)
    second = ledger_service.initiate_purchase(coop.id, shareholder.id, share_class.id, 2, test_actor_id)
    ledger_service.reject(first.transaction.id, test_actor_id, "duplicate")

    [pending] = LedgerSelector(session).pending_payments(coop.id)

    assert pending.id == second.payment.id
    assert pending.shareholder_id == shareholder.id
    assert pending.amount == Decimal("500.00")


def test_capital_summary(
    session, ledger_service, make_active_share, coop, shareholder, share_class,
    second_shareholder, test_actor_id,
):
    make_active_share(quantity=10)
    make_active_share(quantity=2, owner=second_shareholder)
    ledger_service.initiate_purchase(coop.id, shareholder.id, share_class.id, 1, test_actor_id)

    summary = LedgerSelector(session).capital_summary(coop.id)

    assert summary.active_shareholders == 2
    assert summary.active_shares == 12
    assert summary.total_capital == Decimal("3000")
    assert summary.pending_transactions == 1
    assert summary.pending_payments == 3


def test_capital_summary_is_coop_scoped(session, make_active_share, other_coop):
    make_active_share(quantity=10)
    summary = LedgerSelector(session).capital_summary(other_coop.id)
    assert summary.active_shares == 0
    assert summary.total_capital == Decimal("0")
