"""
Module: capital_kernel.models.shareholder
Responsibility: ORM persistence for shareholders of a coop.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

PII columns (``national_id``, names, email, bank account) are stored as
opaque strings.  Encryption, when used, is applied by a collaborator before
the value reaches this model; nothing in the kernel interprets them.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.lifecycle import ShareholderStatus, ShareholderType


class Shareholder(TrackedBase):
    """
    A member of a coop.

    Guarantees:
        - shareholder_type is one of INDIVIDUAL, COMPANY, MINOR.
        - status is one of PENDING, ACTIVE, INACTIVE.
    """

    __tablename__ = "shareholders"

    __table_args__ = (
        Index("idx_shareholder_coop", "coop_id"),
        Index("idx_shareholder_coop_status", "coop_id", "status"),
        CheckConstraint(
            "shareholder_type IN ('INDIVIDUAL', 'COMPANY', 'MINOR')",
            name="ck_shareholder_type",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'INACTIVE')",
            name="ck_shareholder_status",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    shareholder_type: Mapped[str] = mapped_column(
        String(20),
        default=ShareholderType.INDIVIDUAL.value,
        nullable=False,
    )

    first_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    last_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    company_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    email: Mapped[str | None] = mapped_column(String(500), nullable=True)

    national_id: Mapped[str | None] = mapped_column(String(500), nullable=True)

    bank_iban: Mapped[str | None] = mapped_column(String(500), nullable=True)

    bank_bic: Mapped[str | None] = mapped_column(String(11), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ShareholderStatus.ACTIVE.value,
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == ShareholderStatus.ACTIVE.value

    @property
    def display_name(self) -> str:
        """Company name for companies, otherwise "first last"."""
        if self.shareholder_type == ShareholderType.COMPANY.value and self.company_name:
            return self.company_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"<Shareholder {self.id} {self.shareholder_type}>"
