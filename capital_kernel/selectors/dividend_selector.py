"""
Module: capital_kernel.selectors.dividend_selector
Responsibility: Read-only queries over dividend periods and payouts.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from capital_kernel.db.types import ZERO
from capital_kernel.domain.dividend import DividendLine
from capital_kernel.models.dividend import DividendPayout, DividendPeriod
from capital_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PeriodSummary:
    id: UUID
    name: str | None
    year: int
    status: str
    dividend_rate: Decimal
    withholding_tax_rate: Decimal
    ex_dividend_date: date
    payout_count: int
    total_gross: Decimal
    total_tax: Decimal
    total_net: Decimal


@dataclass(frozen=True)
class PayoutDTO:
    id: UUID
    dividend_period_id: UUID
    year: int
    shareholder_id: UUID
    gross_amount: Decimal
    withholding_tax: Decimal
    net_amount: Decimal
    lines: tuple[DividendLine, ...]
    paid_at: datetime | None
    payment_reference: str | None


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


class DividendSelector(BaseSelector):

    def _summary(self, period: DividendPeriod) -> PeriodSummary:
        count, gross, tax, net = self.session.execute(
            select(
                func.count(DividendPayout.id),
                func.sum(DividendPayout.gross_amount),
                func.sum(DividendPayout.withholding_tax),
                func.sum(DividendPayout.net_amount),
            ).where(DividendPayout.dividend_period_id == period.id)
        ).one()
        return PeriodSummary(
            id=period.id,
            name=period.name,
            year=period.year,
            status=period.status,
            dividend_rate=period.dividend_rate,
            withholding_tax_rate=period.withholding_tax_rate,
            ex_dividend_date=period.ex_dividend_date,
            payout_count=int(count),
            total_gross=_dec(gross),
            total_tax=_dec(tax),
            total_net=_dec(net),
        )

    def period_summary(self, period_id: UUID) -> PeriodSummary | None:
        period = self.session.get(DividendPeriod, period_id)
        if period is None:
            return None
        return self._summary(period)

    def list_periods(self, coop_id: UUID) -> list[PeriodSummary]:
        """Periods of a coop, most recent year first."""
        periods = self.session.execute(
            select(DividendPeriod)
            .where(DividendPeriod.coop_id == coop_id)
            .order_by(DividendPeriod.year.desc())
        ).scalars().all()
        return [self._summary(p) for p in periods]

    def payouts_for_period(self, period_id: UUID) -> list[DividendPayout]:
        return list(
            self.session.execute(
                select(DividendPayout)
                .where(DividendPayout.dividend_period_id == period_id)
                .order_by(DividendPayout.shareholder_id)
            ).scalars()
        )

    def payouts_for_shareholder(self, shareholder_id: UUID) -> list[PayoutDTO]:
        rows = self.session.execute(
            select(DividendPayout, DividendPeriod.year)
            .join(DividendPeriod, DividendPeriod.id == DividendPayout.dividend_period_id)
            .where(DividendPayout.shareholder_id == shareholder_id)
            .order_by(DividendPeriod.year.desc())
        ).all()
        return [
            PayoutDTO(
                id=payout.id,
                dividend_period_id=payout.dividend_period_id,
                year=year,
                shareholder_id=payout.shareholder_id,
                gross_amount=payout.gross_amount,
                withholding_tax=payout.withholding_tax,
                net_amount=payout.net_amount,
                lines=payout.lines,
                paid_at=payout.paid_at,
                payment_reference=payout.payment_reference,
            )
            for payout, year in rows
        ]
