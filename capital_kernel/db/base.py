"""
Module: capital_kernel.db.base
Responsibility: Declarative base for the share register models.
Architecture position: Kernel > DB.  Imported by every model module; MUST NOT
    import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Every row has a uuid4 primary key stored as a 36-character string, so
      ids compare equal across SQLite and PostgreSQL.
    - Annotated ``Decimal`` columns default to Numeric(38, 9); share prices,
      payments and dividend amounts never pass through float.
    - TrackedBase rows always record who created them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in Python, CHAR-like String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds audit columns.

    ``created_at``/``updated_at`` come from the database clock; the actor
    columns are filled by the services from the ``actor_id`` they receive.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
