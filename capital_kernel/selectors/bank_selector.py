"""
Module: capital_kernel.selectors.bank_selector
Responsibility: Read-only queries over bank imports and statement rows.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from capital_kernel.domain.lifecycle import MatchStatus
from capital_kernel.models.bank_import import BankImport, BankTransaction
from capital_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class BankImportDTO:
    id: UUID
    file_name: str
    imported_at: datetime
    row_count: int
    matched_count: int
    unmatched_count: int
    skipped_count: int


@dataclass(frozen=True)
class BankTransactionDTO:
    id: UUID
    bank_import_id: UUID
    line_number: int
    transaction_date: date
    amount: Decimal
    counterparty: str | None
    reference_text: str | None
    ogm_code: str | None
    match_status: str
    matched_payment_id: UUID | None


class BankSelector(BaseSelector):

    def list_imports(self, coop_id: UUID) -> list[BankImportDTO]:
        """Imports of a coop, newest first."""
        rows = self.session.execute(
            select(BankImport)
            .where(BankImport.coop_id == coop_id)
            .order_by(BankImport.imported_at.desc())
        ).scalars()
        return [
            BankImportDTO(
                id=row.id,
                file_name=row.file_name,
                imported_at=row.imported_at,
                row_count=row.row_count,
                matched_count=row.matched_count,
                unmatched_count=row.unmatched_count,
                skipped_count=row.skipped_count,
            )
            for row in rows
        ]

    def list_bank_transactions(
        self,
        coop_id: UUID,
        bank_import_id: UUID | None = None,
        match_status: MatchStatus | None = None,
    ) -> list[BankTransactionDTO]:
        stmt = select(BankTransaction).where(BankTransaction.coop_id == coop_id)
        if bank_import_id is not None:
            stmt = stmt.where(BankTransaction.bank_import_id == bank_import_id)
        if match_status is not None:
            stmt = stmt.where(BankTransaction.match_status == MatchStatus(match_status).value)
        stmt = stmt.order_by(BankTransaction.transaction_date, BankTransaction.line_number)

        return [
            BankTransactionDTO(
                id=row.id,
                bank_import_id=row.bank_import_id,
                line_number=row.line_number,
                transaction_date=row.transaction_date,
                amount=row.amount,
                counterparty=row.counterparty,
                reference_text=row.reference_text,
                ogm_code=row.ogm_code,
                match_status=row.match_status,
                matched_payment_id=row.matched_payment_id,
            )
            for row in self.session.execute(stmt).scalars()
        ]
