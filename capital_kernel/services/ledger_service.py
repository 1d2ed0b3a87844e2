"""
LedgerService -- share purchase, sale and transfer state machine.

Responsibility:
    Creates and advances ledger transactions.  Owns the Share, Transaction
    and Payment writes for purchases, sales and transfers, and the
    side effects of approval, rejection and completion.

Architecture position:
    Kernel > Services -- imperative shell.
    Called directly or through ``UnitOfWork``; BankImportService calls
    ``approve``/``complete`` when a bank row settles a purchase.

Invariants enforced:
    - Transaction status only advances along TRANSACTION_TRANSITIONS.
      Every transition is a compare-and-set ``UPDATE ... WHERE status=<from>``;
      losing the race raises InvalidStateError.
    - A sale or transfer never takes more than the share quantity net of
      PENDING and APPROVED sales.  The share row is locked and its
      ``version`` bumped by compare-and-set so concurrent commitments
      serialize.
    - Prices are snapshots: purchases use the share class price at
      initiation, sales and transfers the share's purchase price.
    - Multi-row operations (purchase, transfer) are flushed together and
      committed by the caller as one unit.

Failure modes:
    - NotFoundError: entity missing, inactive, or in another coop.
    - QuantityOutOfRangeError: quantity < 1 or outside share class bounds.
    - WrongOwnerError, OverCommittedError, InvalidStateError,
      MissingRejectionReasonError, OptimisticLockError.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from capital_kernel.domain.clock import Clock
from capital_kernel.domain.lifecycle import (
    SHARE_TRANSITIONS,
    TRANSACTION_TRANSITIONS,
    PaymentMethod,
    PaymentStatus,
    ShareholderStatus,
    ShareStatus,
    TransactionStatus,
    TransactionType,
    require_transition,
)
from capital_kernel.exceptions import (
    DuplicateOgmError,
    InvalidStateError,
    MissingRejectionReasonError,
    NotFoundError,
    OptimisticLockError,
    OverCommittedError,
    QuantityOutOfRangeError,
    WrongOwnerError,
)
from capital_kernel.logging_config import get_logger
from capital_kernel.models.coop import Coop, Project
from capital_kernel.models.payment import Payment
from capital_kernel.models.share import Share, ShareClass
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.models.transaction import Transaction
from capital_kernel.selectors.ledger_selector import LedgerSelector
from capital_kernel.services.base import BaseService
from capital_kernel.services.ogm_allocator import OgmAllocator

logger = get_logger("services.ledger")


def _default_settings():
    from capital_config import get_active_config

    return get_active_config().ledger


@dataclass(frozen=True)
class PurchaseResult:
    share: Share
    transaction: Transaction
    payment: Payment


@dataclass(frozen=True)
class TransferResult:
    source_share: Share
    new_share: Share
    transfer_out: Transaction
    transfer_in: Transaction


class LedgerService(BaseService):
    """
    Write side of the share ledger.

    Contract:
        Every public method flushes but never commits.  Run it inside
        ``UnitOfWork.run`` (or any caller-owned transaction) so a failure
        midway leaves nothing behind.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ogm_allocator: OgmAllocator | None = None,
        settings=None,
    ):
        super().__init__(session, clock)
        self._ogm = ogm_allocator or OgmAllocator(session)
        self._selector = LedgerSelector(session)
        self._settings = settings or _default_settings()

    # =====================================================================
    # Purchase
    # =====================================================================

    def initiate_purchase(
        self,
        coop_id: UUID,
        shareholder_id: UUID,
        share_class_id: UUID,
        quantity: int,
        actor_id: UUID,
        project_id: UUID | None = None,
        method: PaymentMethod | None = None,
    ) -> PurchaseResult:
        """
        Create a PENDING share, PURCHASE transaction and payment with an OGM.

        Postconditions:
            - share.status == PENDING, transaction.status == PENDING,
              payment.status == PENDING with a fresh OGM code.
            - total_amount == quantity * share_class.price_per_share.
        """
        coop = self._get_scoped(Coop, coop_id, None)
        self._require_positive(quantity)
        shareholder = self._active_shareholder(coop_id, shareholder_id)
        share_class = self._get_scoped(ShareClass, share_class_id, coop_id)
        if not share_class.is_active:
            raise NotFoundError("ShareClass", str(share_class_id), "inactive")
        if quantity < share_class.min_shares or (
            share_class.max_shares is not None and quantity > share_class.max_shares
        ):
            raise QuantityOutOfRangeError(
                quantity,
                minimum=share_class.min_shares,
                maximum=share_class.max_shares,
            )
        if project_id is not None:
            project = self._get_scoped(Project, project_id, coop_id)
            if not project.is_active:
                raise NotFoundError("Project", str(project_id), "inactive")

        price = share_class.price_per_share
        total = price * quantity

        share = Share(
            coop_id=coop_id,
            shareholder_id=shareholder.id,
            share_class_id=share_class.id,
            project_id=project_id,
            quantity=quantity,
            purchase_price_per_share=price,
            purchase_date=self._clock.today(),
            status=ShareStatus.PENDING.value,
            version=1,
            created_by_id=actor_id,
        )
        self.session.add(share)
        self.session.flush()

        transaction = Transaction(
            coop_id=coop_id,
            transaction_type=TransactionType.PURCHASE.value,
            status=TransactionStatus.PENDING.value,
            shareholder_id=shareholder.id,
            share_id=share.id,
            quantity=quantity,
            price_per_share=price,
            total_amount=total,
            created_by_id=actor_id,
        )
        self.session.add(transaction)
        self.session.flush()

        ogm_code = self._ogm.next_code(coop)
        payment = Payment(
            coop_id=coop_id,
            transaction_id=transaction.id,
            method=PaymentMethod(method or self._settings.default_payment_method).value,
            status=PaymentStatus.PENDING.value,
            amount=total,
            ogm_code=ogm_code,
            currency=self._settings.currency,
            created_by_id=actor_id,
        )
        self.session.add(payment)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateOgmError(ogm_code) from exc

        logger.info(
            "purchase_initiated",
            extra={
                "coop_id": str(coop_id),
                "shareholder_id": str(shareholder.id),
                "share_id": str(share.id),
                "transaction_id": str(transaction.id),
                "quantity": quantity,
                "total_amount": str(total),
                "ogm_code": ogm_code,
            },
        )
        return PurchaseResult(share=share, transaction=transaction, payment=payment)

    # =====================================================================
    # Sale
    # =====================================================================

    def initiate_sale(
        self,
        coop_id: UUID,
        shareholder_id: UUID,
        share_id: UUID,
        quantity: int,
        actor_id: UUID,
    ) -> Transaction:
        """
        Create a PENDING SALE transaction against an ACTIVE share.

        The coop pays the seller outside the system, so no Payment row is
        created.  Minimum holding periods are checked by the caller.
        """
        self._require_positive(quantity)
        shareholder = self._get_scoped(Shareholder, shareholder_id, coop_id)
        share = self._lock_share(share_id, coop_id)
        if share.shareholder_id != shareholder.id:
            raise WrongOwnerError(str(share.id), str(shareholder.id))
        if share.status != ShareStatus.ACTIVE.value:
            raise InvalidStateError("Share", str(share.id), share.status, "sell")

        self._commit_quantity(share, quantity)

        transaction = Transaction(
            coop_id=coop_id,
            transaction_type=TransactionType.SALE.value,
            status=TransactionStatus.PENDING.value,
            shareholder_id=shareholder.id,
            share_id=share.id,
            quantity=quantity,
            price_per_share=share.purchase_price_per_share,
            total_amount=share.purchase_price_per_share * quantity,
            created_by_id=actor_id,
        )
        self.session.add(transaction)
        self.session.flush()

        logger.info(
            "sale_initiated",
            extra={
                "coop_id": str(coop_id),
                "share_id": str(share.id),
                "transaction_id": str(transaction.id),
                "quantity": quantity,
            },
        )
        return transaction

    # =====================================================================
    # Approval workflow
    # =====================================================================

    def approve(
        self,
        transaction_id: UUID,
        approver_id: UUID,
        coop_id: UUID | None = None,
    ) -> Transaction:
        """
        PENDING -> APPROVED.

        PURCHASE activates its share.  SALE marks the share SOLD once the
        APPROVED sale quantity covers the whole share.
        """
        transaction = self._get_scoped(Transaction, transaction_id, coop_id)
        self._advance(
            transaction,
            TransactionStatus.APPROVED,
            "approve",
            processed_by_id=approver_id,
            processed_at=self._clock.now(),
        )

        if transaction.transaction_type == TransactionType.PURCHASE.value:
            share = self.session.get(Share, transaction.share_id)
            self._set_share_status(share, ShareStatus.ACTIVE, "activate", approver_id)
        elif transaction.transaction_type == TransactionType.SALE.value:
            share = self.session.get(Share, transaction.share_id)
            self._mark_sold_if_covered(share, approver_id)

        logger.info(
            "transaction_approved",
            extra={
                "transaction_id": str(transaction.id),
                "transaction_type": transaction.transaction_type,
                "approver_id": str(approver_id),
            },
        )
        return transaction

    def reject(
        self,
        transaction_id: UUID,
        approver_id: UUID,
        reason: str | None,
        coop_id: UUID | None = None,
    ) -> Transaction:
        """
        PENDING -> REJECTED.

        An attached PENDING payment is marked FAILED so a later bank row can
        no longer match it.  Shares are left untouched.
        """
        if reason is None or not reason.strip():
            raise MissingRejectionReasonError(str(transaction_id))

        transaction = self._get_scoped(Transaction, transaction_id, coop_id)
        self._advance(
            transaction,
            TransactionStatus.REJECTED,
            "reject",
            processed_by_id=approver_id,
            processed_at=self._clock.now(),
            rejection_reason=reason.strip(),
        )

        payment = self._payment_for(transaction.id)
        if payment is not None:
            self._compare_and_set(
                Payment,
                payment.id,
                {"status": PaymentStatus.PENDING.value},
                {"status": PaymentStatus.FAILED.value, "updated_by_id": approver_id},
            )

        logger.info(
            "transaction_rejected",
            extra={
                "transaction_id": str(transaction.id),
                "approver_id": str(approver_id),
                "reason": reason.strip(),
            },
        )
        return transaction

    def complete(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        coop_id: UUID | None = None,
    ) -> Transaction:
        """
        APPROVED -> COMPLETED.

        An attached payment becomes CONFIRMED.  A SALE against a share that
        is still ACTIVE (partial sale) reduces the share quantity; a sale
        that takes the whole remaining quantity marks the share SOLD instead.
        """
        transaction = self._get_scoped(Transaction, transaction_id, coop_id)
        now = self._clock.now()
        self._advance(
            transaction,
            TransactionStatus.COMPLETED,
            "complete",
            processed_by_id=actor_id,
            processed_at=now,
        )

        payment = self._payment_for(transaction.id)
        if payment is not None and payment.status in (
            PaymentStatus.PENDING.value,
            PaymentStatus.MATCHED.value,
        ):
            values = {
                "status": PaymentStatus.CONFIRMED.value,
                "confirmed_at": now,
                "updated_by_id": actor_id,
            }
            if payment.matched_at is None:
                values["matched_at"] = now
            self._compare_and_set(
                Payment, payment.id, {"status": payment.status}, values
            )

        if transaction.transaction_type == TransactionType.SALE.value:
            share = self._lock_share(transaction.share_id, None)
            if share.status == ShareStatus.ACTIVE.value:
                if transaction.quantity >= share.quantity:
                    self._set_share_status(share, ShareStatus.SOLD, "sell", actor_id)
                else:
                    share.quantity = share.quantity - transaction.quantity
                    share.updated_by_id = actor_id
                    self.session.flush()

        logger.info(
            "transaction_completed",
            extra={
                "transaction_id": str(transaction.id),
                "transaction_type": transaction.transaction_type,
                "actor_id": str(actor_id),
            },
        )
        return transaction

    # =====================================================================
    # Transfer
    # =====================================================================

    def execute_transfer(
        self,
        coop_id: UUID,
        from_shareholder_id: UUID,
        to_shareholder_id: UUID,
        share_id: UUID,
        quantity: int,
        actor_id: UUID,
    ) -> TransferResult:
        """
        Move ``quantity`` shares to another shareholder in one step.

        Creates COMPLETED TRANSFER_OUT and TRANSFER_IN transactions and a new
        ACTIVE share for the recipient with the same class, project and
        price snapshot.  The source share is marked TRANSFERRED when fully
        transferred, otherwise its quantity is reduced.
        """
        self._require_positive(quantity)
        sender = self._get_scoped(Shareholder, from_shareholder_id, coop_id)
        recipient = self._active_shareholder(coop_id, to_shareholder_id)
        share = self._lock_share(share_id, coop_id)
        if share.shareholder_id != sender.id:
            raise WrongOwnerError(str(share.id), str(sender.id))
        if share.status != ShareStatus.ACTIVE.value:
            raise InvalidStateError("Share", str(share.id), share.status, "transfer")

        self._commit_quantity(share, quantity)

        now = self._clock.now()
        price = share.purchase_price_per_share
        total = price * quantity

        transfer_out = Transaction(
            coop_id=coop_id,
            transaction_type=TransactionType.TRANSFER_OUT.value,
            status=TransactionStatus.COMPLETED.value,
            shareholder_id=sender.id,
            share_id=share.id,
            quantity=quantity,
            price_per_share=price,
            total_amount=total,
            processed_by_id=actor_id,
            processed_at=now,
            from_shareholder_id=sender.id,
            to_shareholder_id=recipient.id,
            created_by_id=actor_id,
        )
        new_share = Share(
            coop_id=coop_id,
            shareholder_id=recipient.id,
            share_class_id=share.share_class_id,
            project_id=share.project_id,
            quantity=quantity,
            purchase_price_per_share=price,
            purchase_date=self._clock.today(),
            status=ShareStatus.ACTIVE.value,
            version=1,
            created_by_id=actor_id,
        )
        self.session.add_all([transfer_out, new_share])
        self.session.flush()

        transfer_in = Transaction(
            coop_id=coop_id,
            transaction_type=TransactionType.TRANSFER_IN.value,
            status=TransactionStatus.COMPLETED.value,
            shareholder_id=recipient.id,
            share_id=new_share.id,
            quantity=quantity,
            price_per_share=price,
            total_amount=total,
            processed_by_id=actor_id,
            processed_at=now,
            from_shareholder_id=sender.id,
            to_shareholder_id=recipient.id,
            created_by_id=actor_id,
        )
        self.session.add(transfer_in)

        if quantity == share.quantity:
            self._set_share_status(share, ShareStatus.TRANSFERRED, "transfer", actor_id)
        else:
            share.quantity = share.quantity - quantity
            share.updated_by_id = actor_id
            self.session.flush()
            # Approved sales may now cover what is left
            self._mark_sold_if_covered(share, actor_id)
        self.session.flush()

        logger.info(
            "transfer_executed",
            extra={
                "coop_id": str(coop_id),
                "source_share_id": str(share.id),
                "new_share_id": str(new_share.id),
                "from_shareholder_id": str(sender.id),
                "to_shareholder_id": str(recipient.id),
                "quantity": quantity,
            },
        )
        return TransferResult(
            source_share=share,
            new_share=new_share,
            transfer_out=transfer_out,
            transfer_in=transfer_in,
        )

    # =====================================================================
    # Helpers
    # =====================================================================

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise QuantityOutOfRangeError(quantity, minimum=1)

    def _active_shareholder(self, coop_id: UUID, shareholder_id: UUID) -> Shareholder:
        shareholder = self._get_scoped(Shareholder, shareholder_id, coop_id)
        if shareholder.status == ShareholderStatus.INACTIVE.value:
            raise NotFoundError("Shareholder", str(shareholder_id), "inactive")
        return shareholder

    def _lock_share(self, share_id: UUID, coop_id: UUID | None) -> Share:
        return self._get_scoped(Share, share_id, coop_id, for_update=True)

    def _payment_for(self, transaction_id: UUID) -> Payment | None:
        return self.session.execute(
            select(Payment).where(Payment.transaction_id == transaction_id)
        ).scalar_one_or_none()

    def _commit_quantity(self, share: Share, quantity: int) -> None:
        """
        Check availability and bump ``share.version``.

        Raises:
            OverCommittedError: If ``quantity`` exceeds what is left after
                PENDING and APPROVED sales.
            OptimisticLockError: If another transaction changed the share
                since it was read.
        """
        available = share.quantity - self._selector.committed_sale_quantity(share.id)
        if quantity > available:
            raise OverCommittedError(str(share.id), quantity, max(available, 0))

        expected = share.version
        if not self._compare_and_set(
            Share,
            share.id,
            {"version": expected},
            {"version": expected + 1},
        ):
            logger.warning(
                "share_version_conflict",
                extra={"share_id": str(share.id), "expected_version": expected},
            )
            raise OptimisticLockError("Share", str(share.id), expected)

    def _mark_sold_if_covered(self, share: Share, actor_id: UUID) -> None:
        """ACTIVE -> SOLD once APPROVED sales take the whole remaining quantity."""
        if share.status != ShareStatus.ACTIVE.value:
            return
        approved = self._selector.sale_quantity(share.id, (TransactionStatus.APPROVED,))
        if approved >= share.quantity:
            self._set_share_status(share, ShareStatus.SOLD, "sell", actor_id)

    def _advance(
        self,
        transaction: Transaction,
        target: TransactionStatus,
        attempted: str,
        **values,
    ) -> None:
        current = transaction.status
        require_transition(
            TRANSACTION_TRANSITIONS,
            entity_type="Transaction",
            entity_id=transaction.id,
            current=current,
            target=target,
            attempted=attempted,
        )
        values["status"] = target.value
        if "processed_by_id" in values:
            values["updated_by_id"] = values["processed_by_id"]
        if not self._compare_and_set(
            Transaction, transaction.id, {"status": current}, values
        ):
            self.session.refresh(transaction, ["status"])
            logger.warning(
                "transaction_transition_lost",
                extra={
                    "transaction_id": str(transaction.id),
                    "expected_status": current,
                    "actual_status": transaction.status,
                    "attempted": attempted,
                },
            )
            raise InvalidStateError(
                "Transaction", str(transaction.id), transaction.status, attempted
            )

    def _set_share_status(
        self,
        share: Share,
        target: ShareStatus,
        attempted: str,
        actor_id: UUID,
    ) -> None:
        require_transition(
            SHARE_TRANSITIONS,
            entity_type="Share",
            entity_id=share.id,
            current=share.status,
            target=target,
            attempted=attempted,
        )
        share.status = target.value
        share.updated_by_id = actor_id
        self.session.flush()