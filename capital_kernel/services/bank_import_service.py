"""
BankImportService -- bank statement import and payment matching.

Responsibility:
    Stores every parseable row of a bank export as a BankTransaction and
    matches rows carrying an OGM to the PENDING payment with that code.
    A match settles the purchase: the payment becomes MATCHED and the
    linked transaction is completed (approved first if still PENDING).

Architecture position:
    Kernel > Services -- imperative shell.
    Parsing lives in ``capital_kernel.domain.bank_statement``; state changes
    of the transaction go through ``LedgerService``.

Invariants enforced:
    - A malformed row never aborts the batch; it is logged at DEBUG and
      counted in ``skipped_count``.
    - row_count == matched_count + unmatched_count + skipped_count.
    - Automatic and manual matching share ``_apply_match``.  Payment
      PENDING -> MATCHED and row UNMATCHED -> *_MATCHED are both
      compare-and-set updates; a payment claimed by a concurrent import
      leaves the row UNMATCHED (automatic) or raises InvalidStateError
      (manual).

Failure modes:
    - EmptyStatementError before anything is written.
    - AlreadyMatchedError when manually matching a resolved row.
    - NotFoundError / InvalidStateError for an unusable payment.
"""

from pathlib import Path
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from capital_kernel.domain.bank_statement import parse_bank_csv
from capital_kernel.domain.clock import Clock
from capital_kernel.domain.lifecycle import (
    MatchStatus,
    PaymentStatus,
    TransactionStatus,
)
from capital_kernel.exceptions import AlreadyMatchedError, InvalidStateError
from capital_kernel.logging_config import LogContext, get_logger
from capital_kernel.models.bank_import import BankImport, BankTransaction
from capital_kernel.models.coop import Coop
from capital_kernel.models.payment import Payment
from capital_kernel.models.transaction import Transaction
from capital_kernel.services.base import BaseService
from capital_kernel.services.ledger_service import LedgerService

logger = get_logger("services.bank_import")


def _default_settings():
    from capital_config import get_active_config

    return get_active_config().bank_import


class BankImportService(BaseService):
    """
    Imports bank statements for one coop at a time.

    Rows are processed sequentially inside the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
        settings=None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or LedgerService(session, self._clock)
        self._settings = settings or _default_settings()

    def import_file(self, coop_id: UUID, path: Path, actor_id: UUID) -> BankImport:
        """Read ``path`` with the configured encoding and import it."""
        encoding = self._settings.encoding
        if encoding.lower() == "utf-8":
            encoding = "utf-8-sig"
        content = Path(path).read_text(encoding=encoding)
        return self.import_statement(coop_id, content, Path(path).name, actor_id)

    def import_statement(
        self,
        coop_id: UUID,
        content: str,
        file_name: str,
        actor_id: UUID,
    ) -> BankImport:
        """
        Import one bank export.

        Returns:
            The BankImport with its row/matched/unmatched/skipped counts.

        Raises:
            EmptyStatementError: If the export has no data rows.
        """
        self._get_scoped(Coop, coop_id, None)
        parsed = parse_bank_csv(
            content,
            file_name=file_name,
            delimiter=self._settings.delimiter,
            date_formats=tuple(self._settings.date_formats),
        )

        bank_import = BankImport(
            coop_id=coop_id,
            file_name=file_name,
            imported_by_id=actor_id,
            imported_at=self._clock.now(),
            row_count=parsed.row_count,
            matched_count=0,
            unmatched_count=0,
            skipped_count=parsed.skipped_count,
            created_by_id=actor_id,
        )
        self.session.add(bank_import)
        self.session.flush()

        with LogContext.bind(batch_id=str(bank_import.id), coop_id=str(coop_id)):
            for error in parsed.skipped:
                logger.debug(
                    "bank_row_skipped",
                    extra={
                        "file_name": file_name,
                        "line_number": error.line_number,
                        "reason": error.reason,
                    },
                )

            matched = 0
            for row in parsed.rows:
                bank_txn = BankTransaction(
                    coop_id=coop_id,
                    bank_import_id=bank_import.id,
                    line_number=row.line_number,
                    transaction_date=row.transaction_date,
                    amount=row.amount,
                    counterparty=row.counterparty,
                    reference_text=row.reference_text,
                    ogm_code=row.ogm_code,
                    match_status=MatchStatus.UNMATCHED.value,
                    created_by_id=actor_id,
                )
                self.session.add(bank_txn)
                self.session.flush()

                if row.ogm_code is None:
                    continue
                payment = self.session.execute(
                    select(Payment)
                    .where(Payment.coop_id == coop_id)
                    .where(Payment.ogm_code == row.ogm_code)
                    .where(Payment.status == PaymentStatus.PENDING.value)
                ).scalar_one_or_none()
                if payment is None:
                    logger.debug(
                        "bank_row_unmatched",
                        extra={"line_number": row.line_number, "ogm_code": row.ogm_code},
                    )
                    continue
                if self._apply_match(
                    bank_txn, payment, MatchStatus.AUTO_MATCHED, actor_id, strict=False
                ):
                    matched += 1

            bank_import.matched_count = matched
            bank_import.unmatched_count = len(parsed.rows) - matched
            self.session.flush()

            logger.info(
                "bank_import_completed",
                extra={
                    "file_name": file_name,
                    "row_count": bank_import.row_count,
                    "matched_count": bank_import.matched_count,
                    "unmatched_count": bank_import.unmatched_count,
                    "skipped_count": bank_import.skipped_count,
                },
            )
        return bank_import

    def manual_match(
        self,
        bank_transaction_id: UUID,
        payment_id: UUID,
        actor_id: UUID,
        coop_id: UUID | None = None,
    ) -> BankTransaction:
        """
        Match an UNMATCHED bank row to a PENDING payment by hand.

        Raises:
            AlreadyMatchedError: If the row is not UNMATCHED.
            NotFoundError: If the payment is missing or in another coop.
            InvalidStateError: If the payment is not PENDING.
        """
        bank_txn = self._get_scoped(BankTransaction, bank_transaction_id, coop_id)
        if bank_txn.match_status != MatchStatus.UNMATCHED.value:
            raise AlreadyMatchedError(str(bank_txn.id), bank_txn.match_status)

        payment = self._get_scoped(Payment, payment_id, bank_txn.coop_id)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidStateError("Payment", str(payment.id), payment.status, "match")

        self._apply_match(
            bank_txn, payment, MatchStatus.MANUAL_MATCHED, actor_id, strict=True
        )

        self.session.execute(
            update(BankImport)
            .where(BankImport.id == bank_txn.bank_import_id)
            .values(
                matched_count=BankImport.matched_count + 1,
                unmatched_count=BankImport.unmatched_count - 1,
            )
            .execution_options(synchronize_session=False)
        )
        bank_import = self.session.get(BankImport, bank_txn.bank_import_id)
        if bank_import is not None:
            self.session.expire(bank_import, ["matched_count", "unmatched_count"])

        logger.info(
            "bank_transaction_manually_matched",
            extra={
                "bank_transaction_id": str(bank_txn.id),
                "payment_id": str(payment.id),
                "actor_id": str(actor_id),
            },
        )
        return bank_txn

    def _apply_match(
        self,
        bank_txn: BankTransaction,
        payment: Payment,
        match_status: MatchStatus,
        actor_id: UUID,
        *,
        strict: bool,
    ) -> bool:
        """
        Settle ``payment`` with ``bank_txn``.

        Returns False only in non-strict mode when the payment was claimed
        concurrently; the row then stays UNMATCHED.
        """
        now = self._clock.now()

        if not self._compare_and_set(
            Payment,
            payment.id,
            {"status": PaymentStatus.PENDING.value},
            {
                "status": PaymentStatus.MATCHED.value,
                "matched_at": now,
                "updated_by_id": actor_id,
            },
        ):
            self.session.refresh(payment, ["status"])
            logger.warning(
                "payment_match_lost",
                extra={
                    "payment_id": str(payment.id),
                    "bank_transaction_id": str(bank_txn.id),
                    "payment_status": payment.status,
                },
            )
            if strict:
                raise InvalidStateError("Payment", str(payment.id), payment.status, "match")
            return False

        if not self._compare_and_set(
            BankTransaction,
            bank_txn.id,
            {"match_status": MatchStatus.UNMATCHED.value},
            {
                "match_status": match_status.value,
                "matched_payment_id": payment.id,
                "matched_at": now,
                "updated_by_id": actor_id,
            },
        ):
            self.session.refresh(bank_txn, ["match_status"])
            raise AlreadyMatchedError(str(bank_txn.id), bank_txn.match_status)

        if bank_txn.amount != payment.amount:
            logger.warning(
                "bank_amount_mismatch",
                extra={
                    "bank_transaction_id": str(bank_txn.id),
                    "payment_id": str(payment.id),
                    "bank_amount": str(bank_txn.amount),
                    "expected_amount": str(payment.amount),
                },
            )

        transaction = self.session.get(Transaction, payment.transaction_id)
        if transaction.status == TransactionStatus.PENDING.value:
            self._ledger.approve(transaction.id, actor_id, transaction.coop_id)
        if transaction.status == TransactionStatus.APPROVED.value:
            self._ledger.complete(transaction.id, actor_id, transaction.coop_id)

        logger.info(
            "payment_matched",
            extra={
                "payment_id": str(payment.id),
                "bank_transaction_id": str(bank_txn.id),
                "match_status": match_status.value,
                "ogm_code": payment.ogm_code,
            },
        )
        return True
