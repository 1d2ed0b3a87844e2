"""
Module: capital_kernel.selectors.ledger_selector
Responsibility: Read-only queries over shares, transactions and payments.
Architecture position: Kernel > Selectors.

``committed_sale_quantity`` is also used by LedgerService for the
over-commitment check; it must see rows flushed in the caller's
transaction, so it always queries the database.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from capital_kernel.db.types import ZERO
from capital_kernel.domain.lifecycle import (
    SALE_COMMITTING_STATUSES,
    PaymentStatus,
    ShareStatus,
    TransactionStatus,
    TransactionType,
)
from capital_kernel.models.payment import Payment
from capital_kernel.models.share import Share, ShareClass
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.models.transaction import Transaction
from capital_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransactionDTO:
    id: UUID
    coop_id: UUID
    transaction_type: str
    status: str
    shareholder_id: UUID
    share_id: UUID | None
    quantity: int
    price_per_share: Decimal
    total_amount: Decimal
    processed_by_id: UUID | None
    processed_at: datetime | None
    rejection_reason: str | None
    from_shareholder_id: UUID | None
    to_shareholder_id: UUID | None
    ogm_code: str | None = None
    payment_status: str | None = None


@dataclass(frozen=True)
class ShareDTO:
    id: UUID
    shareholder_id: UUID
    share_class_id: UUID
    share_class_code: str
    project_id: UUID | None
    quantity: int
    purchase_price_per_share: Decimal
    purchase_date: date
    status: str
    available_quantity: int


@dataclass(frozen=True)
class PendingPaymentDTO:
    id: UUID
    transaction_id: UUID
    shareholder_id: UUID
    amount: Decimal
    ogm_code: str | None


@dataclass(frozen=True)
class CapitalSummary:
    coop_id: UUID
    active_shareholders: int
    active_shares: int
    total_capital: Decimal
    pending_transactions: int
    pending_payments: int


@dataclass(frozen=True)
class Page:
    items: tuple
    total: int
    page: int
    page_size: int


def _to_transaction_dto(txn: Transaction, payment: Payment | None) -> TransactionDTO:
    return TransactionDTO(
        id=txn.id,
        coop_id=txn.coop_id,
        transaction_type=txn.transaction_type,
        status=txn.status,
        shareholder_id=txn.shareholder_id,
        share_id=txn.share_id,
        quantity=txn.quantity,
        price_per_share=txn.price_per_share,
        total_amount=txn.total_amount,
        processed_by_id=txn.processed_by_id,
        processed_at=txn.processed_at,
        rejection_reason=txn.rejection_reason,
        from_shareholder_id=txn.from_shareholder_id,
        to_shareholder_id=txn.to_shareholder_id,
        ogm_code=payment.ogm_code if payment else None,
        payment_status=payment.status if payment else None,
    )


class LedgerSelector(BaseSelector):
    """Read access to the share ledger of a coop."""

    def sale_quantity(self, share_id: UUID, statuses) -> int:
        """Sum of SALE quantities on ``share_id`` in ``statuses``."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.quantity), 0))
            .where(Transaction.share_id == share_id)
            .where(Transaction.transaction_type == TransactionType.SALE.value)
            .where(Transaction.status.in_([s.value for s in statuses]))
        ).scalar_one()
        return int(total)

    def committed_sale_quantity(self, share_id: UUID) -> int:
        """Quantity held by PENDING and APPROVED sales on the share."""
        return self.sale_quantity(share_id, SALE_COMMITTING_STATUSES)

    def available_quantity(self, share: Share) -> int:
        """Quantity that a new sale or transfer may still take from ``share``."""
        if share.status != ShareStatus.ACTIVE.value:
            return 0
        return max(share.quantity - self.committed_sale_quantity(share.id), 0)

    def get_transaction(self, transaction_id: UUID) -> TransactionDTO | None:
        row = self.session.execute(
            select(Transaction, Payment)
            .outerjoin(Payment, Payment.transaction_id == Transaction.id)
            .where(Transaction.id == transaction_id)
        ).first()
        if row is None:
            return None
        return _to_transaction_dto(row[0], row[1])

    def list_transactions(
        self,
        coop_id: UUID,
        *,
        status: str | None = None,
        transaction_type: str | None = None,
        shareholder_id: UUID | None = None,
        page: int = 1,
        page_size: int = 25,
    ) -> Page:
        """Transactions of a coop, newest first."""
        stmt = (
            select(Transaction, Payment)
            .outerjoin(Payment, Payment.transaction_id == Transaction.id)
            .where(Transaction.coop_id == coop_id)
        )
        if status is not None:
            stmt = stmt.where(Transaction.status == status)
        if transaction_type is not None:
            stmt = stmt.where(Transaction.transaction_type == transaction_type)
        if shareholder_id is not None:
            stmt = stmt.where(Transaction.shareholder_id == shareholder_id)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        rows = self.session.execute(
            stmt.order_by(Transaction.created_at.desc(), Transaction.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return Page(
            items=tuple(_to_transaction_dto(t, p) for t, p in rows),
            total=total,
            page=page,
            page_size=page_size,
        )

    def shares_for_shareholder(
        self,
        shareholder_id: UUID,
        *,
        include_closed: bool = False,
    ) -> list[ShareDTO]:
        stmt = (
            select(Share, ShareClass.code)
            .join(ShareClass, ShareClass.id == Share.share_class_id)
            .where(Share.shareholder_id == shareholder_id)
        )
        if not include_closed:
            stmt = stmt.where(
                Share.status.in_([ShareStatus.PENDING.value, ShareStatus.ACTIVE.value])
            )
        result = []
        for share, class_code in self.session.execute(
            stmt.order_by(Share.purchase_date, Share.id)
        ).all():
            result.append(
                ShareDTO(
                    id=share.id,
                    shareholder_id=share.shareholder_id,
                    share_class_id=share.share_class_id,
                    share_class_code=class_code,
                    project_id=share.project_id,
                    quantity=share.quantity,
                    purchase_price_per_share=share.purchase_price_per_share,
                    purchase_date=share.purchase_date,
                    status=share.status,
                    available_quantity=self.available_quantity(share),
                )
            )
        return result

    def pending_payments(self, coop_id: UUID) -> list[PendingPaymentDTO]:
        rows = self.session.execute(
            select(Payment, Transaction.shareholder_id)
            .join(Transaction, Transaction.id == Payment.transaction_id)
            .where(Payment.coop_id == coop_id)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .order_by(Payment.ogm_code)
        ).all()
        return [
            PendingPaymentDTO(
                id=payment.id,
                transaction_id=payment.transaction_id,
                shareholder_id=shareholder_id,
                amount=payment.amount,
                ogm_code=payment.ogm_code,
            )
            for payment, shareholder_id in rows
        ]

    def capital_summary(self, coop_id: UUID) -> CapitalSummary:
        active = ShareStatus.ACTIVE.value
        share_count, capital = self.session.execute(
            select(
                func.coalesce(func.sum(Share.quantity), 0),
                func.coalesce(
                    func.sum(Share.quantity * Share.purchase_price_per_share), 0
                ),
            )
            .where(Share.coop_id == coop_id)
            .where(Share.status == active)
        ).one()

        holders = self.session.execute(
            select(func.count(func.distinct(Share.shareholder_id)))
            .join(Shareholder, Shareholder.id == Share.shareholder_id)
            .where(Share.coop_id == coop_id)
            .where(Share.status == active)
        ).scalar_one()

        pending_txns = self.session.execute(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.coop_id == coop_id)
            .where(Transaction.status == TransactionStatus.PENDING.value)
        ).scalar_one()

        pending_payments = self.session.execute(
            select(func.count())
            .select_from(Payment)
            .where(Payment.coop_id == coop_id)
            .where(Payment.status == PaymentStatus.PENDING.value)
        ).scalar_one()

        return CapitalSummary(
            coop_id=coop_id,
            active_shareholders=int(holders),
            active_shares=int(share_count),
            total_capital=Decimal(str(capital)) if capital else ZERO,
            pending_transactions=int(pending_txns),
            pending_payments=int(pending_payments),
        )
