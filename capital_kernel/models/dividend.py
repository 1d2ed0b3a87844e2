"""
Module: capital_kernel.models.dividend
Responsibility: ORM persistence for dividend periods and per-shareholder
    payouts.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - One period per coop and year (uq_dividend_period_coop_year).
    - One payout per period and shareholder (uq_dividend_payout_shareholder).
    - A PAID period and its payouts are immutable (db/immutability.py).
    - calculation_count is bumped by compare-and-set on every calculation
      run, serializing recalculation of a period.

The per-share breakdown (``calculation_details``) is a list of
``DividendLine`` dicts; use ``lines`` / ``set_lines`` rather than touching
the JSON directly.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.dividend import DividendLine
from capital_kernel.domain.lifecycle import DividendPeriodStatus


class DividendPeriod(TrackedBase):
    """
    A dividend declaration for one financial year.

    Rates are fractions: ``dividend_rate = 0.025`` is 2.5%.
    """

    __tablename__ = "dividend_periods"

    __table_args__ = (
        UniqueConstraint("coop_id", "year", name="uq_dividend_period_coop_year"),
        CheckConstraint(
            "status IN ('DRAFT', 'CALCULATED', 'PAID')",
            name="ck_dividend_period_status",
        ),
        CheckConstraint(
            "dividend_rate >= 0 AND dividend_rate <= 1",
            name="ck_dividend_period_rate",
        ),
        CheckConstraint(
            "withholding_tax_rate >= 0 AND withholding_tax_rate <= 1",
            name="ck_dividend_period_withholding",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    year: Mapped[int] = mapped_column(BigInteger, nullable=False)

    dividend_rate: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)

    withholding_tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 9),
        nullable=False,
    )

    ex_dividend_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DividendPeriodStatus.DRAFT.value,
        nullable=False,
    )

    calculation_count: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    @property
    def label(self) -> str:
        """Name if set, otherwise the year."""
        return self.name or str(self.year)

    def __repr__(self) -> str:
        return f"<DividendPeriod {self.year} {self.status}>"


class DividendPayout(TrackedBase):
    """Gross, withholding tax and net dividend for one shareholder in one period."""

    __tablename__ = "dividend_payouts"

    __table_args__ = (
        UniqueConstraint(
            "dividend_period_id",
            "shareholder_id",
            name="uq_dividend_payout_shareholder",
        ),
        Index("idx_dividend_payout_shareholder", "shareholder_id"),
    )

    dividend_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("dividend_periods.id"),
        nullable=False,
    )

    shareholder_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shareholders.id"),
        nullable=False,
    )

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    withholding_tax: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    net_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    calculation_details: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    @property
    def lines(self) -> tuple[DividendLine, ...]:
        return tuple(DividendLine.from_dict(d) for d in self.calculation_details or ())

    def set_lines(self, lines) -> None:
        self.calculation_details = [line.to_dict() for line in lines]

    def __repr__(self) -> str:
        return f"<DividendPayout {self.shareholder_id} net={self.net_amount}>"
