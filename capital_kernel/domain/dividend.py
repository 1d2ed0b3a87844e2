"""
Dividend calculation (``capital_kernel.domain.dividend``).

Responsibility
--------------
Pure computation of per-shareholder dividend payouts for one period from a
snapshot of eligible shares.  The service layer loads the shares and
persists the result; nothing here touches the database.

Architecture position
---------------------
**Kernel domain layer** -- frozen dataclasses and pure functions.  ZERO I/O.

Invariants enforced
-------------------
* Only shares with ``status == ACTIVE`` and ``purchase_date`` strictly
  before the ex-dividend date qualify.
* Value uses the purchase-price snapshot, never the current class price.
* Each per-share dividend amount is rounded half-up to 2 decimals, the
  gross is their sum, tax is rounded half-up to 2 decimals and net is the
  exact difference ``gross - tax``.
* Output is deterministic: shareholders and lines are ordered, so two runs
  over the same input produce identical results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from capital_kernel.db.types import ZERO, round_money
from capital_kernel.domain.lifecycle import ShareStatus


@dataclass(frozen=True)
class EligibleShare:
    """Snapshot of one share as read for a dividend run."""

    share_id: UUID
    shareholder_id: UUID
    share_class_id: UUID
    share_class_name: str
    quantity: int
    purchase_price_per_share: Decimal
    purchase_date: date
    status: str = ShareStatus.ACTIVE.value
    dividend_rate_override: Decimal | None = None


@dataclass(frozen=True)
class DividendLine:
    """Per-share breakdown stored with a payout."""

    share_class_id: UUID
    share_class_name: str
    quantity: int
    price_per_share: Decimal
    total_value: Decimal
    dividend_rate: Decimal
    dividend_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "share_class_id": str(self.share_class_id),
            "share_class_name": self.share_class_name,
            "quantity": self.quantity,
            "price_per_share": str(self.price_per_share),
            "total_value": str(self.total_value),
            "dividend_rate": str(self.dividend_rate),
            "dividend_amount": str(self.dividend_amount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> DividendLine:
        return cls(
            share_class_id=UUID(data["share_class_id"]),
            share_class_name=data["share_class_name"],
            quantity=int(data["quantity"]),
            price_per_share=Decimal(data["price_per_share"]),
            total_value=Decimal(data["total_value"]),
            dividend_rate=Decimal(data["dividend_rate"]),
            dividend_amount=Decimal(data["dividend_amount"]),
        )


@dataclass(frozen=True)
class ShareholderDividend:
    """Computed payout for one shareholder."""

    shareholder_id: UUID
    gross_amount: Decimal
    withholding_tax: Decimal
    net_amount: Decimal
    lines: tuple[DividendLine, ...]


@dataclass(frozen=True)
class DividendTotals:
    payout_count: int
    total_gross: Decimal
    total_tax: Decimal
    total_net: Decimal


def calculate_dividend(amount: Decimal, rate: Decimal) -> Decimal:
    """Return ``amount * rate`` rounded half-up to 2 decimals."""
    return round_money(amount * rate)


def is_eligible(share: EligibleShare, ex_dividend_date: date) -> bool:
    """True if the share is ACTIVE and was purchased strictly before the ex-date."""
    return (
        share.status == ShareStatus.ACTIVE.value
        and share.purchase_date < ex_dividend_date
    )


def dividend_line(share: EligibleShare, period_rate: Decimal) -> DividendLine:
    rate = (
        share.dividend_rate_override
        if share.dividend_rate_override is not None
        else period_rate
    )
    total_value = share.purchase_price_per_share * share.quantity
    return DividendLine(
        share_class_id=share.share_class_id,
        share_class_name=share.share_class_name,
        quantity=share.quantity,
        price_per_share=share.purchase_price_per_share,
        total_value=total_value,
        dividend_rate=rate,
        dividend_amount=calculate_dividend(total_value, rate),
    )


def calculate_payouts(
    shares: list[EligibleShare] | tuple[EligibleShare, ...],
    dividend_rate: Decimal,
    withholding_rate: Decimal,
    ex_dividend_date: date,
) -> list[ShareholderDividend]:
    """
    Compute one ``ShareholderDividend`` per shareholder with eligible shares.

    Ineligible shares in ``shares`` are ignored, so callers may pass an
    unfiltered snapshot.  Shareholders appear in ``str(shareholder_id)``
    order and lines in (share class name, share id) order.
    """
    grouped: dict[UUID, list[EligibleShare]] = {}
    for share in shares:
        if not is_eligible(share, ex_dividend_date):
            continue
        grouped.setdefault(share.shareholder_id, []).append(share)

    results: list[ShareholderDividend] = []
    for shareholder_id in sorted(grouped, key=str):
        holdings = sorted(
            grouped[shareholder_id],
            key=lambda s: (s.share_class_name, str(s.share_id)),
        )
        lines = tuple(dividend_line(s, dividend_rate) for s in holdings)
        gross = sum((line.dividend_amount for line in lines), ZERO)
        tax = round_money(gross * withholding_rate)
        results.append(
            ShareholderDividend(
                shareholder_id=shareholder_id,
                gross_amount=gross,
                withholding_tax=tax,
                net_amount=gross - tax,
                lines=lines,
            )
        )
    return results


def summarize(payouts: list[ShareholderDividend]) -> DividendTotals:
    return DividendTotals(
        payout_count=len(payouts),
        total_gross=sum((p.gross_amount for p in payouts), ZERO),
        total_tax=sum((p.withholding_tax for p in payouts), ZERO),
        total_net=sum((p.net_amount for p in payouts), ZERO),
    )
