"""
Module: capital_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions (purchases, sales,
    transfers) against shares.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Status only advances along TRANSACTION_TRANSITIONS
      (domain/lifecycle.py).  Every persisted transition is a
      compare-and-set UPDATE ... WHERE status = <from>.
    - price_per_share is the snapshot used for total_amount and never
      changes after insert (ORM listener in db/immutability.py).
    - TRANSFER_OUT / TRANSFER_IN rows are inserted COMPLETED.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.lifecycle import TransactionStatus, TransactionType


class Transaction(TrackedBase):
    """
    One movement of shares.

    For PURCHASE and SALE ``shareholder_id`` is the buyer or seller.  For a
    transfer both rows carry ``from_shareholder_id`` and
    ``to_shareholder_id``; TRANSFER_OUT points at the source share and
    TRANSFER_IN at the newly created share.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_coop_status", "coop_id", "status"),
        Index("idx_transaction_share", "share_id", "transaction_type", "status"),
        Index("idx_transaction_shareholder", "shareholder_id"),
        CheckConstraint("quantity >= 1", name="ck_transaction_quantity"),
        CheckConstraint(
            "transaction_type IN ('PURCHASE', 'SALE', 'TRANSFER_OUT', 'TRANSFER_IN')",
            name="ck_transaction_type",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'COMPLETED', 'REJECTED')",
            name="ck_transaction_status",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.PENDING.value,
        nullable=False,
    )

    shareholder_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shareholders.id"),
        nullable=False,
    )

    share_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("shares.id"),
        nullable=True,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    price_per_share: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    processed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    from_shareholder_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("shareholders.id"),
        nullable=True,
    )

    to_shareholder_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("shareholders.id"),
        nullable=True,
    )

    @property
    def is_transfer(self) -> bool:
        return self.transaction_type in (
            TransactionType.TRANSFER_OUT.value,
            TransactionType.TRANSFER_IN.value,
        )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_type} {self.status} qty={self.quantity}>"
