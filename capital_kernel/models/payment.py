"""
Module: capital_kernel.models.payment
Responsibility: ORM persistence for expected and received payments.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - One payment per transaction (uq_payment_transaction).
    - ogm_code is unique (uq_payment_ogm_code); a lost allocation race
      surfaces as an IntegrityError that the allocator maps to
      DuplicateOgmError.
    - status MATCHED or CONFIRMED implies the linked transaction is
      APPROVED or COMPLETED (enforced by the ledger and bank import
      services).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.lifecycle import PaymentMethod, PaymentStatus


class Payment(TrackedBase):
    """Money expected for (or received against) one transaction."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_payment_transaction"),
        UniqueConstraint("ogm_code", name="uq_payment_ogm_code"),
        Index("idx_payment_coop_status", "coop_id", "status"),
        CheckConstraint(
            "status IN ('PENDING', 'MATCHED', 'CONFIRMED', 'FAILED')",
            name="ck_payment_status",
        ),
        CheckConstraint(
            "method IN ('BANK_TRANSFER', 'MOLLIE', 'STRIPE')",
            name="ck_payment_method",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    method: Mapped[str] = mapped_column(
        String(20),
        default=PaymentMethod.BANK_TRANSFER.value,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)

    # Formatted +++AAA/BBBB/CCCCC+++
    ogm_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Payment {self.ogm_code} {self.status} {self.amount}>"
