"""
PaymentService -- payment instructions for ledger transactions.

Responsibility:
    Builds the ``PaymentDetails`` view for a purchase (money coming in to
    the coop, identified by its OGM) or a sale (money going out to the
    shareholder), and the matching EPC QR payload.

Architecture position:
    Kernel > Services.  Read-mostly; performs no writes.

Failure modes:
    - NotFoundError if the transaction is missing or in another coop.
    - InvalidStateError for transfers, which involve no money.
"""

from uuid import UUID

from sqlalchemy import select

from capital_kernel.domain.lifecycle import TransactionType
from capital_kernel.domain.payment_details import (
    PaymentDetails,
    PaymentDirection,
    epc_qr_payload,
)
from capital_kernel.exceptions import InvalidStateError
from capital_kernel.logging_config import get_logger
from capital_kernel.models.coop import Coop
from capital_kernel.models.payment import Payment
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.models.transaction import Transaction
from capital_kernel.services.base import BaseService

logger = get_logger("services.payment")


class PaymentService(BaseService):

    def get_payment_details(
        self,
        transaction_id: UUID,
        coop_id: UUID | None = None,
    ) -> PaymentDetails:
        """
        Where the money for ``transaction_id`` should go.

        PURCHASE: INCOMING to the coop account with the payment OGM.
        SALE: OUTGOING to the shareholder account, no OGM.
        """
        transaction = self._get_scoped(Transaction, transaction_id, coop_id)

        if transaction.transaction_type == TransactionType.PURCHASE.value:
            coop = self.session.get(Coop, transaction.coop_id)
            payment = self.session.execute(
                select(Payment).where(Payment.transaction_id == transaction.id)
            ).scalar_one_or_none()
            return PaymentDetails(
                direction=PaymentDirection.INCOMING,
                beneficiary_name=coop.name,
                iban=coop.bank_iban,
                bic=coop.bank_bic,
                amount=transaction.total_amount,
                ogm_code=payment.ogm_code if payment else None,
                currency=payment.currency if payment else "EUR",
            )

        if transaction.transaction_type == TransactionType.SALE.value:
            shareholder = self.session.get(Shareholder, transaction.shareholder_id)
            return PaymentDetails(
                direction=PaymentDirection.OUTGOING,
                beneficiary_name=shareholder.display_name,
                iban=shareholder.bank_iban,
                bic=shareholder.bank_bic,
                amount=transaction.total_amount,
                ogm_code=None,
            )

        raise InvalidStateError(
            "Transaction",
            str(transaction.id),
            transaction.transaction_type,
            "get payment details for",
        )

    def payment_qr_payload(
        self,
        transaction_id: UUID,
        coop_id: UUID | None = None,
    ) -> str:
        """EPC QR text for the payment of ``transaction_id``."""
        details = self.get_payment_details(transaction_id, coop_id)
        unstructured = f"Shares {transaction_id}"
        payload = epc_qr_payload(details, unstructured=unstructured)
        logger.debug(
            "payment_qr_built",
            extra={
                "transaction_id": str(transaction_id),
                "direction": details.direction.value,
            },
        )
        return payload
