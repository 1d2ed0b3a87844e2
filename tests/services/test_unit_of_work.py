"""
Tests for UnitOfWork: commit on success, rollback and tagged outcome on
domain errors, rollback and re-raise on infrastructure errors.

Runs on a file-backed SQLite database so every unit of work gets its own
connection and commits are real.
"""

import pytest
from sqlalchemy import func, select

from capital_kernel.domain.clock import DeterministicClock
from capital_kernel.exceptions import (
    ErrorKind,
    OgmSequenceOutOfRangeError,
    QuantityOutOfRangeError,
)
from capital_kernel.logging_config import LogContext
from capital_kernel.models.payment import Payment
from capital_kernel.models.share import Share
from capital_kernel.models.transaction import Transaction
from capital_kernel.services.ledger_service import LedgerService
from capital_kernel.services.ogm_allocator import OgmAllocator
from capital_kernel.services.unit_of_work import OutcomeStatus, UnitOfWork


@pytest.fixture
def uow(file_session_factory):
    return UnitOfWork(file_session_factory, DeterministicClock())


def _purchase(seed, actor_id, quantity=2):
    def run(session, clock):
        return LedgerService(session, clock).initiate_purchase(
            seed["coop_id"],
            seed["shareholder_id"],
            seed["share_class_id"],
            quantity,
            actor_id,
        )

    return run


def _count(factory, model) -> int:
    with factory() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_success_commits(uow, file_session_factory, committed_seed, test_actor_id):
    outcome = uow.run(_purchase(committed_seed, test_actor_id), operation="purchase")

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.is_success
    assert outcome.unwrap().payment.ogm_code == "+++001/0000/00177+++"
    assert _count(file_session_factory, Share) == 1
    assert _count(file_session_factory, Payment) == 1


def test_domain_error_is_rejected_outcome(
    uow, file_session_factory, committed_seed, test_actor_id
):
    outcome = uow.run(_purchase(committed_seed, test_actor_id, quantity=0))

    assert outcome.status == OutcomeStatus.REJECTED
    assert not outcome.is_success
    assert outcome.error_kind == ErrorKind.VALIDATION
    assert isinstance(outcome.error, QuantityOutOfRangeError)
    assert "Quantity 0" in outcome.message
    with pytest.raises(QuantityOutOfRangeError) as exc_info:
        outcome.unwrap()
    assert exc_info.value is outcome.error


def test_failure_midway_leaves_no_partial_rows(
    monkeypatch, uow, file_session_factory, committed_seed, test_actor_id
):
    """Share and Transaction are flushed before the OGM is allocated."""

    def exhausted(self, coop):
        raise OgmSequenceOutOfRangeError(10**7)

    monkeypatch.setattr(OgmAllocator, "next_code", exhausted)

    outcome = uow.run(_purchase(committed_seed, test_actor_id))

    assert outcome.status == OutcomeStatus.REJECTED
    assert _count(file_session_factory, Share) == 0
    assert _count(file_session_factory, Transaction) == 0
    assert _count(file_session_factory, Payment) == 0


def test_infrastructure_error_is_reraised(
    monkeypatch, uow, file_session_factory, committed_seed, test_actor_id, captured_logs
):
    def broken(self, coop):
        raise RuntimeError("counter table unavailable")

    monkeypatch.setattr(OgmAllocator, "next_code", broken)

    with pytest.raises(RuntimeError, match="counter table unavailable"):
        uow.run(_purchase(committed_seed, test_actor_id), operation="purchase")

    assert _count(file_session_factory, Share) == 0
    [record] = [r for r in captured_logs() if r["message"] == "unit_of_work_failed"]
    assert record["level"] == "ERROR"
    assert record["exc_type"] == "RuntimeError"
    assert record["operation"] == "purchase"


def test_logs_with_correlation_id(uow, committed_seed, test_actor_id, captured_logs):
    uow.run(
        _purchase(committed_seed, test_actor_id),
        operation="purchase",
        actor_id=test_actor_id,
        coop_id=committed_seed["coop_id"],
    )

    records = captured_logs()
    [purchase] = [r for r in records if r["message"] == "purchase_initiated"]
    [committed] = [r for r in records if r["message"] == "unit_of_work_committed"]
    assert purchase["correlation_id"] == committed["correlation_id"]
    assert purchase["actor_id"] == str(test_actor_id)
    assert committed["operation"] == "purchase"
    assert committed["duration_ms"] >= 0
    assert LogContext.get_all() == {}


def test_rejection_is_logged(uow, committed_seed, test_actor_id, captured_logs):
    uow.run(_purchase(committed_seed, test_actor_id, quantity=0), operation="purchase")

    [record] = [r for r in captured_logs() if r["message"] == "unit_of_work_rejected"]
    assert record["level"] == "WARNING"
    assert record["error_code"] == "QUANTITY_OUT_OF_RANGE"
    assert record["error_kind"] == "validation"


def test_operation_name_defaults_to_function_name(uow, captured_logs):
    def noop(session, clock):
        return 42

    assert uow.run(noop).unwrap() == 42
    [record] = [r for r in captured_logs() if r["message"] == "unit_of_work_committed"]
    assert record["operation"] == "noop"
