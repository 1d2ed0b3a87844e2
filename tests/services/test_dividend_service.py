"""
Tests for DividendService: periods, calculation runs, payment and export.
"""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest

from capital_kernel.domain.lifecycle import DividendPeriodStatus
from capital_kernel.exceptions import (
    DuplicateDividendPeriodError,
    InvalidRateError,
    InvalidStateError,
    NotFoundError,
    NothingToExportError,
)
from capital_kernel.selectors.dividend_selector import DividendSelector

# Clock date is 2024-01-01; shares bought that day are eligible for this ex-date
EX_DATE = date(2024, 1, 2)


@pytest.fixture
def period(dividend_service, coop, test_actor_id):
    return dividend_service.create_period(
        coop.id,
        2024,
        Decimal("0.03"),
        EX_DATE,
        test_actor_id,
        withholding_tax_rate=Decimal("0.30"),
    )


class TestCreatePeriod:

    def test_creates_draft(self, period):
        assert period.status == DividendPeriodStatus.DRAFT.value
        assert period.calculation_count == 0
        assert period.dividend_rate == Decimal("0.03")
        assert period.label == "2024"

    def test_default_withholding_rate_from_config(
        self, dividend_service, coop, test_actor_id
    ):
        period = dividend_service.create_period(
            coop.id, 2023, "0.02", date(2023, 12, 31), test_actor_id, name="FY 2023"
        )
        assert period.withholding_tax_rate == Decimal("0.30")
        assert period.label == "FY 2023"

    def test_duplicate_year(self, dividend_service, coop, period, test_actor_id):
        with pytest.raises(DuplicateDividendPeriodError) as exc_info:
            dividend_service.create_period(
                coop.id, 2024, Decimal("0.01"), EX_DATE, test_actor_id
            )
        assert exc_info.value.year == 2024

    def test_same_year_in_other_coop(
        self, dividend_service, other_coop, period, test_actor_id
    ):
        other = dividend_service.create_period(
            other_coop.id, 2024, Decimal("0.01"), EX_DATE, test_actor_id
        )
        assert other.id != period.id

    @pytest.mark.parametrize("rate", ["-0.01", "1.5", "abc"])
    def test_invalid_dividend_rate(self, dividend_service, coop, test_actor_id, rate):
        with pytest.raises(InvalidRateError) as exc_info:
            dividend_service.create_period(coop.id, 2024, rate, EX_DATE, test_actor_id)
        assert exc_info.value.field == "dividend_rate"

    def test_invalid_withholding_rate(self, dividend_service, coop, test_actor_id):
        with pytest.raises(InvalidRateError) as exc_info:
            dividend_service.create_period(
                coop.id, 2024, "0.02", EX_DATE, test_actor_id, withholding_tax_rate="2"
            )
        assert exc_info.value.field == "withholding_tax_rate"


class TestCalculate:

    def test_calculates_payouts(
        self, dividend_service, make_active_share, period, shareholder, test_actor_id
    ):
        make_active_share(quantity=10)

        run = dividend_service.calculate(period.id, test_actor_id)

        assert run.period.status == DividendPeriodStatus.CALCULATED.value
        assert run.period.calculation_count == 1
        assert run.period.calculated_at is not None
        [payout] = run.payouts
        assert payout.shareholder_id == shareholder.id
        assert payout.gross_amount == Decimal("75.00")
        assert payout.withholding_tax == Decimal("22.50")
        assert payout.net_amount == Decimal("52.50")
        assert run.totals.payout_count == 1
        assert run.totals.total_net == Decimal("52.50")

    def test_stores_line_breakdown(
        self, session, dividend_service, make_active_share, period, share_class, test_actor_id
    ):
        make_active_share(quantity=10)
        run = dividend_service.calculate(period.id, test_actor_id)
        session.expire(run.payouts[0])

        [line] = run.payouts[0].lines
        assert line.share_class_id == share_class.id
        assert line.quantity == 10
        assert line.total_value == Decimal("2500.00")
        assert line.dividend_amount == Decimal("75.00")

    def test_class_override_rate(
        self, registry, dividend_service, make_active_share, coop, period, test_actor_id
    ):
        class_b = registry.create_share_class(
            coop.id, "B", "Class B", Decimal("100"), test_actor_id,
            dividend_rate_override=Decimal("0.05"),
        )
        make_active_share(quantity=4, share_class_id=class_b.id)

        [payout] = dividend_service.calculate(period.id, test_actor_id).payouts

        assert payout.gross_amount == Decimal("20.00")
        assert payout.withholding_tax == Decimal("6.00")
        assert payout.net_amount == Decimal("14.00")

    def test_ex_dividend_date_boundary(
        self, dividend_service, make_active_share, coop, test_actor_id
    ):
        make_active_share(quantity=10)
        period = dividend_service.create_period(
            coop.id, 2023, Decimal("0.03"), date(2024, 1, 1), test_actor_id
        )

        run = dividend_service.calculate(period.id, test_actor_id)

        assert run.payouts == ()
        assert run.totals.total_gross == Decimal("0")

    def test_share_bought_the_day_before_ex_date_is_included(
        self, deterministic_clock, dividend_service, make_active_share, coop,
        test_actor_id,
    ):
        early = make_active_share(quantity=10)
        deterministic_clock.advance(days=1)
        make_active_share(quantity=5)
        period = dividend_service.create_period(
            coop.id, 2023, Decimal("0.03"), date(2024, 1, 2), test_actor_id
        )

        [payout] = dividend_service.calculate(period.id, test_actor_id).payouts

        [line] = payout.lines
        assert early.purchase_date == date(2024, 1, 1)
        assert line.quantity == 10
        assert payout.gross_amount == Decimal("75.00")

    def test_pending_and_sold_shares_are_excluded(
        self, ledger_service, dividend_service, make_active_share, coop, shareholder,
        share_class, period, test_actor_id,
    ):
        ledger_service.initiate_purchase(
            coop.id, shareholder.id, share_class.id, 5, test_actor_id
        )
        sold = make_active_share(quantity=2)
        sale = ledger_service.initiate_sale(coop.id, shareholder.id, sold.id, 2, test_actor_id)
        ledger_service.approve(sale.id, test_actor_id)

        run = dividend_service.calculate(period.id, test_actor_id)

        assert run.payouts == ()

    def test_one_payout_per_shareholder(
        self, dividend_service, make_active_share, period, second_shareholder, test_actor_id
    ):
        make_active_share(quantity=2)
        make_active_share(quantity=3)
        make_active_share(quantity=1, owner=second_shareholder)

        run = dividend_service.calculate(period.id, test_actor_id)

        by_holder = {p.shareholder_id: p for p in run.payouts}
        assert len(by_holder) == 2
        assert by_holder[second_shareholder.id].gross_amount == Decimal("7.50")
        assert run.totals.total_gross == Decimal("45.00")

    def test_recalculation_replaces_payouts(
        self, session, dividend_service, make_active_share, period, test_actor_id
    ):
        make_active_share(quantity=10)

        def amounts(run):
            return [
                (p.shareholder_id, p.gross_amount, p.withholding_tax, p.net_amount)
                for p in run.payouts
            ]

        first = amounts(dividend_service.calculate(period.id, test_actor_id))
        second = dividend_service.calculate(period.id, test_actor_id)

        stored = DividendSelector(session).payouts_for_period(period.id)
        assert len(stored) == 1
        assert stored[0].id == second.payouts[0].id
        assert second.period.calculation_count == 2
        assert amounts(second) == first

    def test_recalculation_picks_up_new_shares(
        self, dividend_service, make_active_share, period, test_actor_id
    ):
        make_active_share(quantity=10)
        dividend_service.calculate(period.id, test_actor_id)
        make_active_share(quantity=10)

        run = dividend_service.calculate(period.id, test_actor_id)

        assert run.totals.total_gross == Decimal("150.00")

    def test_paid_period_cannot_be_recalculated(
        self, dividend_service, make_active_share, period, test_actor_id
    ):
        make_active_share()
        dividend_service.calculate(period.id, test_actor_id)
        dividend_service.mark_as_paid(period.id, test_actor_id)

        with pytest.raises(InvalidStateError) as exc_info:
            dividend_service.calculate(period.id, test_actor_id)
        assert exc_info.value.current_status == "PAID"

    def test_period_of_other_coop(
        self, dividend_service, other_coop, period, test_actor_id
    ):
        with pytest.raises(NotFoundError):
            dividend_service.calculate(period.id, test_actor_id, coop_id=other_coop.id)


class TestMarkAsPaid:

    def test_marks_period_and_payouts(
        self, session, dividend_service, make_active_share, period, test_actor_id
    ):
        make_active_share()
        dividend_service.calculate(period.id, test_actor_id)

        paid = dividend_service.mark_as_paid(period.id, test_actor_id, "BATCH-2024")

        assert paid.status == DividendPeriodStatus.PAID.value
        assert paid.paid_at is not None
        assert paid.payment_reference == "BATCH-2024"
        for payout in DividendSelector(session).payouts_for_period(period.id):
            assert payout.paid_at is not None
            assert payout.payment_reference == "BATCH-2024"

    def test_draft_cannot_be_paid(self, dividend_service, period, test_actor_id):
        with pytest.raises(InvalidStateError):
            dividend_service.mark_as_paid(period.id, test_actor_id)

    def test_paid_twice(self, dividend_service, make_active_share, period, test_actor_id):
        make_active_share()
        dividend_service.calculate(period.id, test_actor_id)
        dividend_service.mark_as_paid(period.id, test_actor_id)
        with pytest.raises(InvalidStateError):
            dividend_service.mark_as_paid(period.id, test_actor_id)


class TestExport:

    def test_csv_layout(
        self, dividend_service, make_active_share, period, shareholder,
        second_shareholder, test_actor_id,
    ):
        make_active_share(quantity=10)
        make_active_share(quantity=4, owner=second_shareholder)
        dividend_service.calculate(period.id, test_actor_id)

        lines = dividend_service.export_csv(period.id).splitlines()

        assert lines[0] == (
            '"Shareholder ID";"Name";"Type";"Email";'
            '"Gross Amount";"Withholding Tax";"Net Amount";"Reference"'
        )
        # Sorted by name: "Anna Peeters" before "Windkracht BV"
        assert lines[1] == (
            f'"{shareholder.id}";"Anna Peeters";"INDIVIDUAL";"anna@example.org";'
            '75.00;22.50;52.50;"Dividend 2024 - Zonnecoop"'
        )
        assert lines[2] == (
            f'"{second_shareholder.id}";"Windkracht BV";"COMPANY";"info@windkracht.example";'
            '30.00;9.00;21.00;"Dividend 2024 - Zonnecoop"'
        )
        assert len(lines) == 3

    def test_quotes_are_escaped(
        self, registry, dividend_service, make_active_share, coop, period, test_actor_id
    ):
        holder = registry.create_shareholder(
            coop.id,
            test_actor_id,
            shareholder_type="COMPANY",
            company_name='De "Zon" CV',
        )
        make_active_share(quantity=1, owner=holder)
        dividend_service.calculate(period.id, test_actor_id)

        [row] = dividend_service.export_csv(period.id).splitlines()[1:]

        assert ';"De ""Zon"" CV";"COMPANY";"";' in row

    def test_export_reads_back_with_csv_reader(
        self, registry, dividend_service, make_active_share, coop, period, test_actor_id
    ):
        holder = registry.create_shareholder(
            coop.id,
            test_actor_id,
            shareholder_type="COMPANY",
            company_name='Zon; "Wind" & Water',
        )
        make_active_share(quantity=1, owner=holder)
        dividend_service.calculate(period.id, test_actor_id)

        text = dividend_service.export_csv(period.id)
        header, row = list(csv.reader(io.StringIO(text), delimiter=";"))

        assert len(header) == 8
        assert row[1] == 'Zon; "Wind" & Water'
        assert row[3] == ""
        assert row[4:7] == ["7.50", "2.25", "5.25"]

    def test_nothing_to_export(self, dividend_service, period):
        with pytest.raises(NothingToExportError):
            dividend_service.export_csv(period.id)
