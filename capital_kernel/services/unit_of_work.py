"""
UnitOfWork -- the transaction boundary around one ledger operation.

Responsibility:
    Opens a session, runs one orchestrated operation against it and owns
    the commit/rollback decision.  Expected domain failures come back as a
    tagged ``LedgerOutcome``; infrastructure failures propagate.

Architecture position:
    Kernel > Services -- the only place in the kernel that commits.

Invariants enforced:
    - All-or-nothing: an operation that raises leaves no partial writes
      (no Share without its Payment, no half-executed transfer).
    - The original exception object is preserved on the outcome;
      ``unwrap()`` re-raises it unmodified.
    - No retries.

Failure modes:
    - CapitalKernelError -> rollback, REJECTED outcome, WARNING log.
    - Any other exception -> rollback, ERROR log with traceback, re-raised.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from capital_kernel.domain.clock import Clock, SystemClock
from capital_kernel.exceptions import CapitalKernelError, ErrorKind
from capital_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.unit_of_work")


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LedgerOutcome:
    """Result of one unit of work."""

    status: OutcomeStatus
    value: Any = None
    error_kind: ErrorKind | None = None
    message: str | None = None
    error: CapitalKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    def unwrap(self) -> Any:
        """Return the value, or re-raise the domain error that rejected the operation."""
        if self.error is not None:
            raise self.error
        return self.value


class UnitOfWork:
    """
    Runs callables inside a fresh session and commits on success.

    ``fn`` receives the session and the clock::

        outcome = uow.run(
            lambda session, clock: LedgerService(session, clock).approve(txn_id, actor_id)
        )
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | sessionmaker,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def run(
        self,
        fn: Callable[[Session, Clock], Any],
        *,
        operation: str | None = None,
        actor_id=None,
        coop_id=None,
    ) -> LedgerOutcome:
        name = operation or getattr(fn, "__name__", "operation")
        session = self._session_factory()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            coop_id=str(coop_id) if coop_id else None,
        ):
            t0 = time.monotonic()
            try:
                value = fn(session, self._clock)
                session.commit()
            except CapitalKernelError as exc:
                session.rollback()
                logger.warning(
                    "unit_of_work_rejected",
                    extra={
                        "operation": name,
                        "error_code": exc.code,
                        "error_kind": exc.kind.value,
                        "detail": str(exc),
                    },
                )
                return LedgerOutcome(
                    status=OutcomeStatus.REJECTED,
                    error_kind=exc.kind,
                    message=str(exc),
                    error=exc,
                )
            except Exception:
                session.rollback()
                logger.error(
                    "unit_of_work_failed",
                    extra={"operation": name},
                    exc_info=True,
                )
                raise
            finally:
                session.close()

            logger.info(
                "unit_of_work_committed",
                extra={
                    "operation": name,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return LedgerOutcome(status=OutcomeStatus.SUCCEEDED, value=value)
