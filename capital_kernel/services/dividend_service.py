"""
DividendService -- dividend periods, calculation runs, payment and export.

Responsibility:
    Declares dividend periods, runs the calculation over the coop's share
    register, marks periods as paid and exports payout lists for the bank.

Architecture position:
    Kernel > Services -- imperative shell around the pure calculation in
    ``capital_kernel.domain.dividend``.

Invariants enforced:
    - One period per coop and year.
    - A PAID period is never recalculated or changed.
    - Each calculation run replaces all payouts of the period; running it
      twice over unchanged data yields identical payouts.
    - Calculation runs of one period are serialized: the period row is
      locked and ``calculation_count`` bumped by compare-and-set.

Failure modes:
    - InvalidRateError, DuplicateDividendPeriodError on creation.
    - InvalidStateError for calculate on PAID, mark_as_paid on non-CALCULATED.
    - OptimisticLockError if a concurrent run bumped the counter first.
    - NothingToExportError when exporting a period without payouts.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from capital_kernel.db.types import round_money, to_decimal
from capital_kernel.domain.clock import Clock
from capital_kernel.domain.dividend import (
    DividendTotals,
    EligibleShare,
    calculate_payouts,
    summarize,
)
from capital_kernel.domain.lifecycle import (
    DIVIDEND_PERIOD_TRANSITIONS,
    DividendPeriodStatus,
    ShareStatus,
    require_transition,
)
from capital_kernel.exceptions import (
    DuplicateDividendPeriodError,
    InvalidRateError,
    InvalidStateError,
    NothingToExportError,
    OptimisticLockError,
)
from capital_kernel.logging_config import get_logger
from capital_kernel.models.coop import Coop
from capital_kernel.models.dividend import DividendPayout, DividendPeriod
from capital_kernel.models.share import Share, ShareClass
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.selectors.dividend_selector import DividendSelector
from capital_kernel.services.base import BaseService

logger = get_logger("services.dividend")

CSV_DELIMITER = ";"
CSV_HEADER = (
    "Shareholder ID",
    "Name",
    "Type",
    "Email",
    "Gross Amount",
    "Withholding Tax",
    "Net Amount",
    "Reference",
)


@dataclass(frozen=True)
class DividendRun:
    period: DividendPeriod
    payouts: tuple[DividendPayout, ...]
    totals: DividendTotals


def _default_withholding_rate() -> Decimal:
    from capital_config import get_active_config

    return get_active_config().dividends.default_withholding_tax_rate


def _validate_rate(field: str, value) -> Decimal:
    try:
        rate = to_decimal(value)
    except ValueError as exc:
        raise InvalidRateError(field, str(value)) from exc
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise InvalidRateError(field, str(value))
    return rate


class DividendService(BaseService):

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = DividendSelector(session)

    def create_period(
        self,
        coop_id: UUID,
        year: int,
        dividend_rate,
        ex_dividend_date: date,
        actor_id: UUID,
        *,
        name: str | None = None,
        withholding_tax_rate=None,
        payment_date: date | None = None,
    ) -> DividendPeriod:
        """
        Declare a DRAFT dividend period.

        Rates are fractions in [0, 1].  The withholding rate defaults to
        ``dividends.default_withholding_tax_rate`` from configuration.
        """
        self._get_scoped(Coop, coop_id, None)
        rate = _validate_rate("dividend_rate", dividend_rate)
        if withholding_tax_rate is None:
            withholding_tax_rate = _default_withholding_rate()
        withholding = _validate_rate("withholding_tax_rate", withholding_tax_rate)

        existing = self.session.execute(
            select(DividendPeriod.id)
            .where(DividendPeriod.coop_id == coop_id)
            .where(DividendPeriod.year == year)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateDividendPeriodError(str(coop_id), year)

        period = DividendPeriod(
            coop_id=coop_id,
            name=name,
            year=year,
            dividend_rate=rate,
            withholding_tax_rate=withholding,
            ex_dividend_date=ex_dividend_date,
            payment_date=payment_date,
            status=DividendPeriodStatus.DRAFT.value,
            calculation_count=0,
            created_by_id=actor_id,
        )
        self.session.add(period)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateDividendPeriodError(str(coop_id), year) from exc

        logger.info(
            "dividend_period_created",
            extra={
                "coop_id": str(coop_id),
                "period_id": str(period.id),
                "year": year,
                "dividend_rate": str(rate),
                "withholding_tax_rate": str(withholding),
            },
        )
        return period

    def calculate(
        self,
        period_id: UUID,
        actor_id: UUID,
        coop_id: UUID | None = None,
    ) -> DividendRun:
        """
        (Re)calculate all payouts of a period.

        Eligible: ACTIVE shares purchased strictly before the ex-dividend
        date.  Existing payouts are deleted and replaced.
        """
        period = self._get_scoped(DividendPeriod, period_id, coop_id, for_update=True)
        require_transition(
            DIVIDEND_PERIOD_TRANSITIONS,
            entity_type="DividendPeriod",
            entity_id=period.id,
            current=period.status,
            target=DividendPeriodStatus.CALCULATED,
            attempted="calculate",
        )

        expected = period.calculation_count
        if not self._compare_and_set(
            DividendPeriod,
            period.id,
            {"calculation_count": expected, "status": period.status},
            {
                "calculation_count": expected + 1,
                "status": DividendPeriodStatus.CALCULATED.value,
                "calculated_at": self._clock.now(),
                "updated_by_id": actor_id,
            },
        ):
            logger.warning(
                "dividend_calculation_conflict",
                extra={"period_id": str(period.id), "expected_count": expected},
            )
            raise OptimisticLockError("DividendPeriod", str(period.id), expected)

        shares = self._eligible_shares(period)
        results = calculate_payouts(
            shares,
            dividend_rate=period.dividend_rate,
            withholding_rate=period.withholding_tax_rate,
            ex_dividend_date=period.ex_dividend_date,
        )

        self.session.execute(
            delete(DividendPayout)
            .where(DividendPayout.dividend_period_id == period.id)
            .execution_options(synchronize_session="fetch")
        )

        payouts = []
        for result in results:
            payout = DividendPayout(
                dividend_period_id=period.id,
                shareholder_id=result.shareholder_id,
                gross_amount=result.gross_amount,
                withholding_tax=result.withholding_tax,
                net_amount=result.net_amount,
                created_by_id=actor_id,
            )
            payout.set_lines(result.lines)
            payouts.append(payout)
        self.session.add_all(payouts)
        self.session.flush()

        totals = summarize(results)
        logger.info(
            "dividends_calculated",
            extra={
                "period_id": str(period.id),
                "calculation_count": expected + 1,
                "payout_count": totals.payout_count,
                "total_gross": str(totals.total_gross),
                "total_tax": str(totals.total_tax),
                "total_net": str(totals.total_net),
            },
        )
        return DividendRun(period=period, payouts=tuple(payouts), totals=totals)

    def mark_as_paid(
        self,
        period_id: UUID,
        actor_id: UUID,
        payment_reference: str | None = None,
        coop_id: UUID | None = None,
    ) -> DividendPeriod:
        """CALCULATED -> PAID; stamps every payout with ``paid_at`` and the reference."""
        period = self._get_scoped(DividendPeriod, period_id, coop_id, for_update=True)
        require_transition(
            DIVIDEND_PERIOD_TRANSITIONS,
            entity_type="DividendPeriod",
            entity_id=period.id,
            current=period.status,
            target=DividendPeriodStatus.PAID,
            attempted="mark as paid",
        )

        now = self._clock.now()
        payouts = self._selector.payouts_for_period(period.id)
        for payout in payouts:
            payout.paid_at = now
            payout.payment_reference = payment_reference
            payout.updated_by_id = actor_id
        self.session.flush()

        if not self._compare_and_set(
            DividendPeriod,
            period.id,
            {"status": DividendPeriodStatus.CALCULATED.value},
            {
                "status": DividendPeriodStatus.PAID.value,
                "paid_at": now,
                "payment_reference": payment_reference,
                "updated_by_id": actor_id,
            },
        ):
            self.session.refresh(period, ["status"])
            raise InvalidStateError(
                "DividendPeriod", str(period.id), period.status, "mark as paid"
            )

        logger.info(
            "dividends_marked_paid",
            extra={
                "period_id": str(period.id),
                "payout_count": len(payouts),
                "payment_reference": payment_reference,
            },
        )
        return period

    def export_csv(self, period_id: UUID, coop_id: UUID | None = None) -> str:
        """
        Semicolon-separated payout list, one row per shareholder.

        Text columns are quoted, amounts are bare with two decimals.
        """
        period = self._get_scoped(DividendPeriod, period_id, coop_id)
        coop = self.session.get(Coop, period.coop_id)
        rows = self.session.execute(
            select(DividendPayout, Shareholder)
            .join(Shareholder, Shareholder.id == DividendPayout.shareholder_id)
            .where(DividendPayout.dividend_period_id == period.id)
        ).all()
        if not rows:
            raise NothingToExportError(str(period.id))

        reference = f"Dividend {period.label} - {coop.name}"
        buffer = io.StringIO()
        writer = csv.writer(
            buffer,
            delimiter=CSV_DELIMITER,
            quoting=csv.QUOTE_NONNUMERIC,
            lineterminator="\n",
        )
        writer.writerow(CSV_HEADER)
        for payout, shareholder in sorted(
            rows, key=lambda r: (r[1].display_name.lower(), str(r[1].id))
        ):
            writer.writerow(
                (
                    str(shareholder.id),
                    shareholder.display_name,
                    shareholder.shareholder_type,
                    shareholder.email or "",
                    round_money(payout.gross_amount),
                    round_money(payout.withholding_tax),
                    round_money(payout.net_amount),
                    reference,
                )
            )

        logger.info(
            "dividends_exported",
            extra={"period_id": str(period.id), "row_count": len(rows)},
        )
        return buffer.getvalue()

    def _eligible_shares(self, period: DividendPeriod) -> list[EligibleShare]:
        rows = self.session.execute(
            select(Share, ShareClass)
            .join(ShareClass, ShareClass.id == Share.share_class_id)
            .where(Share.coop_id == period.coop_id)
            .where(Share.status == ShareStatus.ACTIVE.value)
            .where(Share.purchase_date < period.ex_dividend_date)
        ).all()
        return [
            EligibleShare(
                share_id=share.id,
                shareholder_id=share.shareholder_id,
                share_class_id=share_class.id,
                share_class_name=share_class.name,
                quantity=share.quantity,
                purchase_price_per_share=share.purchase_price_per_share,
                purchase_date=share.purchase_date,
                status=share.status,
                dividend_rate_override=share_class.dividend_rate_override,
            )
            for share, share_class in rows
        ]
