"""
Tests for the pure dividend calculation (capital_kernel.domain.dividend).

Covers:
- Ex-dividend date boundary (strictly before)
- Share class rate override
- Rounding: per-line and tax half-up to 2 decimals, net exact difference
- Grouping and deterministic ordering
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import given
from hypothesis import strategies as st

from capital_kernel.domain.dividend import (
    DividendLine,
    EligibleShare,
    calculate_dividend,
    calculate_payouts,
    dividend_line,
    is_eligible,
    summarize,
)

EX_DATE = date(2024, 12, 31)
CLASS_A = uuid4()
CLASS_B = uuid4()


def _share(holder, quantity=10, price="250.00", purchased=date(2024, 6, 1), **kwargs):
    return EligibleShare(
        share_id=kwargs.pop("share_id", uuid4()),
        shareholder_id=holder,
        share_class_id=kwargs.pop("share_class_id", CLASS_A),
        share_class_name=kwargs.pop("share_class_name", "Class A"),
        quantity=quantity,
        purchase_price_per_share=Decimal(price),
        purchase_date=purchased,
        **kwargs,
    )


class TestEligibility:

    def test_purchase_on_ex_date_is_excluded(self):
        assert not is_eligible(_share(uuid4(), purchased=EX_DATE), EX_DATE)

    def test_purchase_day_before_is_included(self):
        assert is_eligible(_share(uuid4(), purchased=date(2024, 12, 30)), EX_DATE)

    def test_inactive_share_is_excluded(self):
        assert not is_eligible(_share(uuid4(), status="SOLD"), EX_DATE)

    def test_boundary_in_calculation(self):
        holder = uuid4()
        shares = [
            _share(holder, quantity=1, purchased=EX_DATE),
            _share(holder, quantity=2, purchased=date(2024, 12, 30)),
        ]
        [payout] = calculate_payouts(shares, Decimal("0.10"), Decimal("0"), EX_DATE)
        assert len(payout.lines) == 1
        assert payout.lines[0].quantity == 2
        assert payout.gross_amount == Decimal("50.00")


class TestAmounts:

    def test_single_shareholder(self):
        holder = uuid4()
        [payout] = calculate_payouts(
            [_share(holder)], Decimal("0.03"), Decimal("0.30"), EX_DATE
        )
        assert payout.gross_amount == Decimal("75.00")
        assert payout.withholding_tax == Decimal("22.50")
        assert payout.net_amount == Decimal("52.50")

    def test_override_rate_wins(self):
        line = dividend_line(
            _share(uuid4(), quantity=4, price="100", dividend_rate_override=Decimal("0.05")),
            Decimal("0.03"),
        )
        assert line.dividend_rate == Decimal("0.05")
        assert line.total_value == Decimal("400")
        assert line.dividend_amount == Decimal("20.00")

    def test_snapshot_price_is_used(self):
        line = dividend_line(_share(uuid4(), quantity=3, price="99.99"), Decimal("0.1"))
        assert line.price_per_share == Decimal("99.99")
        assert line.dividend_amount == Decimal("30.00")  # 29.997

    def test_rounding_half_up_per_line(self):
        # 1 x 0.25 x 0.1 = 0.025 -> 0.03 on each line
        holder = uuid4()
        shares = [_share(holder, quantity=1, price="0.25") for _ in range(2)]
        [payout] = calculate_payouts(shares, Decimal("0.1"), Decimal("0"), EX_DATE)
        assert [line.dividend_amount for line in payout.lines] == [Decimal("0.03")] * 2
        assert payout.gross_amount == Decimal("0.06")

    def test_tax_rounded_and_net_exact(self):
        holder = uuid4()
        [payout] = calculate_payouts(
            [_share(holder, quantity=1, price="33.33")],
            Decimal("1"),
            Decimal("0.30"),
            EX_DATE,
        )
        assert payout.gross_amount == Decimal("33.33")
        assert payout.withholding_tax == Decimal("10.00")  # 9.999
        assert payout.net_amount == Decimal("23.33")

    def test_calculate_dividend_rounds(self):
        assert calculate_dividend(Decimal("10.05"), Decimal("0.5")) == Decimal("5.03")


class TestGrouping:

    def test_one_payout_per_shareholder(self):
        anna, bart = uuid4(), uuid4()
        shares = [
            _share(anna, quantity=2),
            _share(anna, quantity=3, share_class_id=CLASS_B, share_class_name="Class B"),
            _share(bart, quantity=1),
        ]
        payouts = calculate_payouts(shares, Decimal("0.02"), Decimal("0.30"), EX_DATE)
        by_holder = {p.shareholder_id: p for p in payouts}

        assert set(by_holder) == {anna, bart}
        assert len(by_holder[anna].lines) == 2
        assert by_holder[anna].gross_amount == Decimal("25.00")
        assert by_holder[bart].gross_amount == Decimal("5.00")

    def test_order_is_deterministic(self):
        holders = [uuid4() for _ in range(5)]
        shares = [_share(h) for h in holders]
        first = calculate_payouts(shares, Decimal("0.02"), Decimal("0.3"), EX_DATE)
        second = calculate_payouts(list(reversed(shares)), Decimal("0.02"), Decimal("0.3"), EX_DATE)
        assert first == second
        assert [p.shareholder_id for p in first] == sorted(holders, key=str)

    def test_no_eligible_shares(self):
        assert calculate_payouts([], Decimal("0.02"), Decimal("0.3"), EX_DATE) == []

    def test_summarize(self):
        shares = [_share(uuid4()), _share(uuid4(), quantity=4)]
        totals = summarize(calculate_payouts(shares, Decimal("0.03"), Decimal("0.30"), EX_DATE))
        assert totals.payout_count == 2
        assert totals.total_gross == Decimal("105.00")
        assert totals.total_tax == Decimal("31.50")
        assert totals.total_net == Decimal("73.50")


class TestDividendLineSerialization:

    def test_to_dict_uses_strings_for_decimals(self):
        line = dividend_line(_share(uuid4()), Decimal("0.03"))
        data = line.to_dict()
        assert data["dividend_amount"] == "75.00"
        assert data["share_class_id"] == str(CLASS_A)
        assert DividendLine.from_dict(data) == line


@given(
    quantities=st.lists(st.integers(min_value=1, max_value=1000), min_size=1, max_size=8),
    rate=st.decimals(min_value=0, max_value=1, places=4),
    withholding=st.decimals(min_value=0, max_value=1, places=2),
)
def test_net_plus_tax_equals_gross(quantities, rate, withholding):
    holder = uuid4()
    shares = [_share(holder, quantity=q) for q in quantities]
    [payout] = calculate_payouts(shares, rate, withholding, EX_DATE)
    assert payout.net_amount + payout.withholding_tax == payout.gross_amount
    assert payout.gross_amount == sum(line.dividend_amount for line in payout.lines)
