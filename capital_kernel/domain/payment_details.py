"""
Payment instructions for a ledger transaction.

``PaymentDetails`` tells a shareholder where to send money for a purchase
(INCOMING: coop account + OGM) or tells the coop where to pay a sale
(OUTGOING: shareholder account, no OGM).  ``epc_qr_payload`` renders the
EPC069-12 "SEPA Credit Transfer" QR text; drawing the QR image is left to
an external renderer.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from capital_kernel.db.types import round_money

EPC_SERVICE_TAG = "BCD"
EPC_VERSION = "002"
EPC_CHARACTER_SET = "1"  # UTF-8
EPC_IDENTIFICATION = "SCT"
EPC_MAX_NAME_LENGTH = 70


class PaymentDirection(str, Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


@dataclass(frozen=True)
class PaymentDetails:
    direction: PaymentDirection
    beneficiary_name: str
    iban: str | None
    bic: str | None
    amount: Decimal
    ogm_code: str | None
    currency: str = "EUR"


def epc_qr_payload(details: PaymentDetails, unstructured: str = "") -> str:
    """
    Build the EPC QR text for ``details``.

    The structured reference line carries the OGM; the unstructured
    remittance line is only used when there is no OGM.

    Raises:
        ValueError: If the beneficiary has no IBAN.
    """
    if not details.iban:
        raise ValueError("EPC QR payload requires a beneficiary IBAN")
    amount = round_money(details.amount)
    lines = [
        EPC_SERVICE_TAG,
        EPC_VERSION,
        EPC_CHARACTER_SET,
        EPC_IDENTIFICATION,
        details.bic or "",
        details.beneficiary_name[:EPC_MAX_NAME_LENGTH],
        details.iban.replace(" ", ""),
        f"{details.currency}{amount:.2f}",
        "",
        details.ogm_code or "",
        "" if details.ogm_code else unstructured,
    ]
    return "\n".join(lines)
