"""
Module: capital_kernel.models.coop
Responsibility: ORM persistence for tenant cooperatives and their projects.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - slug and ogm_prefix are unique across coops.
    - ogm_prefix is exactly three digits; every OGM issued for the coop
      starts with it.

Every other ledger table carries a ``coop_id`` and every service lookup is
scoped by it; an entity in another coop is reported as not found.
"""

from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from capital_kernel.db.base import Base, TrackedBase, UUIDString


class Coop(TrackedBase):
    """
    A cooperative: the tenant that owns shareholders, shares and payments.

    The bank account is where shareholders pay purchases; it is shown in
    payment instructions and in EPC QR payloads.
    """

    __tablename__ = "coops"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_coop_slug"),
        UniqueConstraint("ogm_prefix", name="uq_coop_ogm_prefix"),
        CheckConstraint(
            "minimum_holding_period_months >= 0",
            name="ck_coop_holding_period",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    ogm_prefix: Mapped[str] = mapped_column(String(3), nullable=False)

    bank_iban: Mapped[str | None] = mapped_column(String(34), nullable=True)

    bank_bic: Mapped[str | None] = mapped_column(String(11), nullable=True)

    # Enforced by the caller before a sale is initiated
    minimum_holding_period_months: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Coop {self.slug} prefix={self.ogm_prefix}>"


class OgmSequenceCounter(Base):
    """
    Last OGM sequence issued for a coop.

    Row-level locking (``SELECT ... FOR UPDATE``) on this row serializes
    OGM allocation within a coop.
    """

    __tablename__ = "ogm_sequence_counters"

    __table_args__ = (
        UniqueConstraint("coop_id", name="uq_ogm_counter_coop"),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )


class Project(TrackedBase):
    """Optional grouping of shares (e.g. one wind turbine or one building)."""

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_coop", "coop_id"),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Project {self.name}>"
