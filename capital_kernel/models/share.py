"""
Module: capital_kernel.models.share
Responsibility: ORM persistence for share classes and share holdings.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - ShareClass.code is unique within a coop (uq_share_class_coop_code).
    - Share.purchase_price_per_share is a snapshot taken at purchase time and
      never changes afterwards (ORM listener in db/immutability.py).  All
      later math (sale totals, transfers, dividends) uses the snapshot.
    - Share.version is bumped by compare-and-set whenever a sale commitment
      is recorded against the share, serializing concurrent commitments.

Failure modes:
    - ImmutabilityViolationError on an update of the price snapshot.
    - OptimisticLockError when a version compare-and-set affects no row.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capital_kernel.db.base import TrackedBase, UUIDString
from capital_kernel.domain.lifecycle import ShareStatus


class ShareClass(TrackedBase):
    """
    Category of shares with its own price and optional dividend override.

    ``dividend_rate_override``, when set, replaces the period rate for every
    share of this class in a dividend run.
    """

    __tablename__ = "share_classes"

    __table_args__ = (
        UniqueConstraint("coop_id", "code", name="uq_share_class_coop_code"),
        CheckConstraint("price_per_share > 0", name="ck_share_class_price"),
        CheckConstraint("min_shares >= 1", name="ck_share_class_min"),
        CheckConstraint(
            "max_shares IS NULL OR max_shares >= min_shares",
            name="ck_share_class_max",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    price_per_share: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    min_shares: Mapped[int] = mapped_column(BigInteger, default=1, nullable=False)

    max_shares: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    dividend_rate_override: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 9),
        nullable=True,
    )

    has_voting_rights: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<ShareClass {self.code} @ {self.price_per_share}>"


class Share(TrackedBase):
    """
    A holding of ``quantity`` shares of one class by one shareholder.

    Lifecycle: PENDING (purchase awaiting approval) -> ACTIVE -> SOLD or
    TRANSFERRED.  A SOLD or TRANSFERRED share keeps its last quantity as a
    historical record.
    """

    __tablename__ = "shares"

    __table_args__ = (
        Index("idx_share_coop", "coop_id"),
        Index("idx_share_shareholder", "shareholder_id"),
        Index("idx_share_coop_status", "coop_id", "status"),
        CheckConstraint("quantity >= 0", name="ck_share_quantity"),
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'SOLD', 'TRANSFERRED')",
            name="ck_share_status",
        ),
    )

    coop_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("coops.id"),
        nullable=False,
    )

    shareholder_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shareholders.id"),
        nullable=False,
    )

    share_class_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("share_classes.id"),
        nullable=False,
    )

    project_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=True,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Snapshot of the class price at purchase; immutable
    purchase_price_per_share: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ShareStatus.PENDING.value,
        nullable=False,
    )

    certificate_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, default=1, nullable=False)

    share_class: Mapped[ShareClass] = relationship(lazy="joined")

    @property
    def total_value(self) -> Decimal:
        return self.purchase_price_per_share * self.quantity

    def __repr__(self) -> str:
        return f"<Share {self.id} qty={self.quantity} {self.status}>"
