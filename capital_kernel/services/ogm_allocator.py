"""
OgmAllocator -- per-coop OGM sequence allocation via locked counter rows.

Responsibility:
    Hands out the next structured payment reference for a coop.  Each coop
    has one ``OgmSequenceCounter`` row; it is locked with
    ``SELECT ... FOR UPDATE``, incremented and flushed inside the caller's
    transaction, so the Payment that uses the code commits (or rolls back)
    together with the increment.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerService.initiate_purchase.

Invariants enforced:
    - Sequences are strictly monotonic per coop.  The aggregate
      max-plus-one query is only used once, to seed a missing counter from
      codes issued before the counter existed.
    - Gaps are acceptable (a rolled-back purchase returns nothing), but the
      same code is never issued twice.

Failure modes:
    - OgmSequenceOutOfRangeError once a coop exhausts 9,999,999 codes.
    - OptimisticLockError if two transactions race to create the counter
      row for the same coop.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from capital_kernel.domain import ogm
from capital_kernel.exceptions import OptimisticLockError
from capital_kernel.logging_config import get_logger
from capital_kernel.models.coop import Coop, OgmSequenceCounter
from capital_kernel.models.payment import Payment

logger = get_logger("services.ogm_allocator")


class OgmAllocator:
    """
    Allocates OGM codes for one session.

    Usage:
        code = OgmAllocator(session).next_code(coop)
        # use code on a new Payment in the same transaction
    """

    def __init__(self, session: Session):
        self._session = session

    def next_code(self, coop: Coop) -> str:
        """
        Return the next formatted OGM code for ``coop``.

        Postconditions:
            - The coop's counter row is locked until the transaction ends.
            - The returned code validates and carries ``coop.ogm_prefix``.
        """
        sequence = self.next_sequence(coop)
        code = ogm.generate(coop.ogm_prefix, sequence)
        logger.debug(
            "ogm_allocated",
            extra={"coop_id": str(coop.id), "sequence": sequence, "ogm_code": code},
        )
        return code

    def next_sequence(self, coop: Coop) -> int:
        counter = self._session.execute(
            select(OgmSequenceCounter)
            .where(OgmSequenceCounter.coop_id == coop.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = OgmSequenceCounter(
                coop_id=coop.id,
                current_value=self._highest_issued(coop),
            )
            self._session.add(counter)
            try:
                self._session.flush()
            except IntegrityError as exc:
                logger.warning(
                    "ogm_counter_create_race",
                    extra={"coop_id": str(coop.id)},
                )
                raise OptimisticLockError("OgmSequenceCounter", str(coop.id), 0) from exc

        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def current_sequence(self, coop: Coop) -> int:
        """Last sequence issued for ``coop`` (0 if none)."""
        value = self._session.execute(
            select(OgmSequenceCounter.current_value)
            .where(OgmSequenceCounter.coop_id == coop.id)
        ).scalar_one_or_none()
        if value is None:
            return self._highest_issued(coop)
        return value

    def _highest_issued(self, coop: Coop) -> int:
        # Fixed-width digit groups, so string order equals numeric order
        latest = self._session.execute(
            select(Payment.ogm_code)
            .where(Payment.coop_id == coop.id)
            .where(Payment.ogm_code.like(f"+++{coop.ogm_prefix}/%"))
            .order_by(Payment.ogm_code.desc())
            .limit(1)
        ).scalar_one_or_none()
        if latest is None:
            return 0
        return ogm.sequence_of(latest)
