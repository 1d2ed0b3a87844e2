"""
Service layer for the coop registry.

Creates coops, shareholders, share classes and projects -- the reference
data every ledger operation is scoped by.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from capital_kernel.db.types import to_decimal
from capital_kernel.domain.lifecycle import ShareholderStatus, ShareholderType
from capital_kernel.exceptions import (
    DuplicateShareClassError,
    InvalidOgmFormatError,
    QuantityOutOfRangeError,
    ValidationError,
)
from capital_kernel.logging_config import get_logger
from capital_kernel.models.coop import Coop, Project
from capital_kernel.models.share import ShareClass
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.services.base import BaseService

logger = get_logger("services.registry")


class RegistryService(BaseService):

    def create_coop(
        self,
        name: str,
        slug: str,
        ogm_prefix: str,
        actor_id: UUID,
        bank_iban: str | None = None,
        bank_bic: str | None = None,
        minimum_holding_period_months: int = 0,
    ) -> Coop:
        """
        Register a coop.

        Raises:
            InvalidOgmFormatError: If ``ogm_prefix`` is not three digits.
        """
        if len(ogm_prefix) != 3 or not ogm_prefix.isdigit():
            raise InvalidOgmFormatError(ogm_prefix, "prefix must be exactly 3 digits")
        coop = Coop(
            name=name,
            slug=slug,
            ogm_prefix=ogm_prefix,
            bank_iban=bank_iban,
            bank_bic=bank_bic,
            minimum_holding_period_months=minimum_holding_period_months,
            created_by_id=actor_id,
        )
        self.session.add(coop)
        self.session.flush()
        logger.info(
            "coop_created",
            extra={"coop_id": str(coop.id), "slug": slug, "ogm_prefix": ogm_prefix},
        )
        return coop

    def create_shareholder(
        self,
        coop_id: UUID,
        actor_id: UUID,
        *,
        shareholder_type: ShareholderType = ShareholderType.INDIVIDUAL,
        first_name: str | None = None,
        last_name: str | None = None,
        company_name: str | None = None,
        email: str | None = None,
        national_id: str | None = None,
        bank_iban: str | None = None,
        bank_bic: str | None = None,
        status: ShareholderStatus = ShareholderStatus.ACTIVE,
    ) -> Shareholder:
        self._get_scoped(Coop, coop_id, None)
        shareholder_type = ShareholderType(shareholder_type)
        if shareholder_type == ShareholderType.COMPANY and not company_name:
            raise ValidationError("A company shareholder needs a company name")

        shareholder = Shareholder(
            coop_id=coop_id,
            shareholder_type=shareholder_type.value,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            email=email,
            national_id=national_id,
            bank_iban=bank_iban,
            bank_bic=bank_bic,
            status=ShareholderStatus(status).value,
            created_by_id=actor_id,
        )
        self.session.add(shareholder)
        self.session.flush()
        logger.info(
            "shareholder_created",
            extra={
                "coop_id": str(coop_id),
                "shareholder_id": str(shareholder.id),
                "shareholder_type": shareholder.shareholder_type,
            },
        )
        return shareholder

    def set_shareholder_status(
        self,
        shareholder_id: UUID,
        status: ShareholderStatus,
        actor_id: UUID,
        coop_id: UUID | None = None,
    ) -> Shareholder:
        """INACTIVE shareholders can no longer buy or receive shares."""
        shareholder = self._get_scoped(Shareholder, shareholder_id, coop_id)
        shareholder.status = ShareholderStatus(status).value
        shareholder.updated_by_id = actor_id
        self.session.flush()
        return shareholder

    def create_share_class(
        self,
        coop_id: UUID,
        code: str,
        name: str,
        price_per_share,
        actor_id: UUID,
        *,
        min_shares: int = 1,
        max_shares: int | None = None,
        dividend_rate_override=None,
        has_voting_rights: bool = True,
    ) -> ShareClass:
        """
        Register a share class.

        Raises:
            DuplicateShareClassError: If ``code`` already exists in the coop.
            QuantityOutOfRangeError: If the min/max bounds are inconsistent.
        """
        self._get_scoped(Coop, coop_id, None)
        price = to_decimal(price_per_share)
        if price <= 0:
            raise ValidationError(f"Share price must be positive, got {price}")
        if min_shares < 1:
            raise QuantityOutOfRangeError(min_shares, minimum=1)
        if max_shares is not None and max_shares < min_shares:
            raise QuantityOutOfRangeError(max_shares, minimum=min_shares)
        override: Decimal | None = None
        if dividend_rate_override is not None:
            override = to_decimal(dividend_rate_override)

        existing = self.session.execute(
            select(ShareClass.id)
            .where(ShareClass.coop_id == coop_id)
            .where(ShareClass.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateShareClassError(str(coop_id), code)

        share_class = ShareClass(
            coop_id=coop_id,
            code=code,
            name=name,
            price_per_share=price,
            min_shares=min_shares,
            max_shares=max_shares,
            dividend_rate_override=override,
            has_voting_rights=has_voting_rights,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(share_class)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateShareClassError(str(coop_id), code) from exc

        logger.info(
            "share_class_created",
            extra={
                "coop_id": str(coop_id),
                "share_class_id": str(share_class.id),
                "code": code,
                "price_per_share": str(price),
            },
        )
        return share_class

    def create_project(self, coop_id: UUID, name: str, actor_id: UUID) -> Project:
        self._get_scoped(Coop, coop_id, None)
        project = Project(coop_id=coop_id, name=name, is_active=True, created_by_id=actor_id)
        self.session.add(project)
        self.session.flush()
        return project
