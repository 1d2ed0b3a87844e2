"""
Tests for ORM-level immutability of price snapshots and paid dividends.
"""

from datetime import date
from decimal import Decimal

import pytest

from capital_kernel.exceptions import ImmutabilityViolationError
from capital_kernel.selectors.dividend_selector import DividendSelector


class TestPriceSnapshots:

    def test_share_price_cannot_change(self, session, make_active_share):
        share = make_active_share()
        share.purchase_price_per_share = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Share"

    def test_transaction_price_cannot_change(
        self, session, ledger_service, coop, shareholder, share_class, test_actor_id
    ):
        result = ledger_service.initiate_purchase(
            coop.id, shareholder.id, share_class.id, 1, test_actor_id
        )
        result.transaction.price_per_share = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_other_share_fields_may_change(self, session, make_active_share):
        share = make_active_share()
        share.certificate_number = "CERT-0001"
        session.flush()


class TestPaidDividends:

    @pytest.fixture
    def paid_period(self, dividend_service, make_active_share, coop, test_actor_id):
        make_active_share(quantity=10)
        period = dividend_service.create_period(
            coop.id, 2024, Decimal("0.03"), date(2024, 1, 2), test_actor_id
        )
        dividend_service.calculate(period.id, test_actor_id)
        return dividend_service.mark_as_paid(period.id, test_actor_id, "BATCH-1")

    def test_calculated_period_can_still_change(
        self, session, dividend_service, make_active_share, coop, test_actor_id
    ):
        make_active_share()
        period = dividend_service.create_period(
            coop.id, 2024, Decimal("0.03"), date(2024, 1, 2), test_actor_id
        )
        dividend_service.calculate(period.id, test_actor_id)
        period.payment_date = date(2024, 6, 30)
        session.flush()

    def test_paid_period_is_frozen(self, session, paid_period):
        assert paid_period.status == "PAID"
        paid_period.dividend_rate = Decimal("0.10")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "DividendPeriod"

    def test_paid_payout_is_frozen(self, session, paid_period):
        [payout] = DividendSelector(session).payouts_for_period(paid_period.id)
        payout.net_amount = Decimal("0")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "DividendPayout"

    def test_paid_payout_cannot_be_deleted(self, session, paid_period):
        [payout] = DividendSelector(session).payouts_for_period(paid_period.id)
        session.delete(payout)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_is_logged(self, session, paid_period, captured_logs):
        assert paid_period.status == "PAID"
        paid_period.name = "renamed"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        [record] = [
            r for r in captured_logs() if r["message"] == "immutability_violation_blocked"
        ]
        assert record["entity_type"] == "DividendPeriod"
        assert record["operation"] == "UPDATE"
