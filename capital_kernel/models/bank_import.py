"""
Module: capital_kernel.models.bank_import
Responsibility: ORM persistence for imported bank statements and their rows.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - row_count = matched_count + unmatched_count + skipped_count.
    - Every parseable statement row is stored as exactly one
      BankTransaction.
    - match_status leaves UNMATCHED at most once (compare-and-set).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.lifecycle import MatchStatus


class BankImport(TrackedBase):
    """Batch metadata for one imported statement file."""

    __tablename__ = "bank_imports"

    __table_args__ = (
        Index("idx_bank_import_coop", "coop_id", "imported_at"),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)

    imported_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    row_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    matched_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    unmatched_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    skipped_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<BankImport {self.file_name} rows={self.row_count} "
            f"matched={self.matched_count}>"
        )


class BankTransaction(TrackedBase):
    """One parsed statement row."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_txn_import", "bank_import_id"),
        Index("idx_bank_txn_coop_status", "coop_id", "match_status"),
        CheckConstraint(
            "match_status IN ('UNMATCHED', 'AUTO_MATCHED', 'MANUAL_MATCHED')",
            name="ck_bank_txn_match_status",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    bank_import_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_imports.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    counterparty: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reference_text: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # OGM token found in reference_text, if any
    ogm_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    match_status: Mapped[str] = mapped_column(
        String(20),
        default=MatchStatus.UNMATCHED.value,
        nullable=False,
    )

    matched_payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id"),
        nullable=True,
    )

    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BankTransaction {self.transaction_date} {self.amount} {self.match_status}>"
