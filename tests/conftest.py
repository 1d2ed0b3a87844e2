"""
Pytest fixtures for the capital kernel test suite.

Provides:
- A fresh database per test (in-memory SQLite unless DATABASE_URL is set)
- A file-backed SQLite engine for tests that need real commits between
  independent sessions (unit of work, races, CLIs)
- Seeded coop, shareholders and share classes
- Deterministic clock and captured structured logs

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  in-memory SQLite.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from capital_config import reset_active_config
from capital_config.schema import BankImportSettings, LedgerSettings
from capital_kernel.db.engine import build_engine, create_tables, drop_tables
from capital_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from capital_kernel.domain.clock import DeterministicClock
from capital_kernel.domain.lifecycle import ShareholderType
from capital_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from capital_kernel.services.bank_import_service import BankImportService
from capital_kernel.services.dividend_service import DividendService
from capital_kernel.services.ledger_service import LedgerService
from capital_kernel.services.payment_service import PaymentService
from capital_kernel.services.registry_service import RegistryService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture capital_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger_service):
            ledger_service.initiate_purchase(...)
            logs = captured_logs()
            assert any(r["message"] == "purchase_initiated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("capital_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Configuration isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Every test starts from the packaged defaults."""
    for name in ("CAPITAL_CONFIG_FILE", "CAPITAL_DATABASE_URL", "CAPITAL_LOG_LEVEL", "CAPITAL_DB_ECHO"):
        monkeypatch.delenv(name, raising=False)
    reset_active_config()
    yield
    reset_active_config()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def db_engine():
    """Fresh schema per test."""
    engine = build_engine(get_database_url())
    drop_tables(engine)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = Session(bind=db_engine, expire_on_commit=False)
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def file_engine(tmp_path):
    """SQLite database on disk: separate sessions use separate connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'capital.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_session_factory(file_engine) -> sessionmaker:
    return sessionmaker(bind=file_engine, expire_on_commit=False)


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """2024-01-01 12:00 UTC until moved."""
    return DeterministicClock()


# Service fixtures


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings()


@pytest.fixture
def registry(session, deterministic_clock) -> RegistryService:
    return RegistryService(session, deterministic_clock)


@pytest.fixture
def ledger_service(session, deterministic_clock, ledger_settings) -> LedgerService:
    return LedgerService(session, deterministic_clock, settings=ledger_settings)


@pytest.fixture
def bank_import_service(session, deterministic_clock, ledger_service) -> BankImportService:
    return BankImportService(
        session,
        deterministic_clock,
        ledger=ledger_service,
        settings=BankImportSettings(),
    )


@pytest.fixture
def dividend_service(session, deterministic_clock) -> DividendService:
    return DividendService(session, deterministic_clock)


@pytest.fixture
def payment_service(session, deterministic_clock) -> PaymentService:
    return PaymentService(session, deterministic_clock)


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def coop(registry, test_actor_id):
    return registry.create_coop(
        name="Zonnecoop",
        slug="zonnecoop",
        ogm_prefix="001",
        actor_id=test_actor_id,
        bank_iban="BE71096123456769",
        bank_bic="GKCCBEBB",
    )


@pytest.fixture
def other_coop(registry, test_actor_id):
    return registry.create_coop(
        name="Windcoop",
        slug="windcoop",
        ogm_prefix="002",
        actor_id=test_actor_id,
        bank_iban="BE68539007547034",
    )


@pytest.fixture
def shareholder(registry, coop, test_actor_id):
    return registry.create_shareholder(
        coop.id,
        test_actor_id,
        first_name="Anna",
        last_name="Peeters",
        email="anna@example.org",
        bank_iban="BE43068999999501",
        bank_bic="GKCCBEBB",
    )


@pytest.fixture
def second_shareholder(registry, coop, test_actor_id):
    return registry.create_shareholder(
        coop.id,
        test_actor_id,
        shareholder_type=ShareholderType.COMPANY,
        company_name="Windkracht BV",
        email="info@windkracht.example",
        bank_iban="BE62510007547061",
    )


@pytest.fixture
def share_class(registry, coop, test_actor_id):
    return registry.create_share_class(
        coop.id,
        code="A",
        name="Class A",
        price_per_share=Decimal("250.00"),
        actor_id=test_actor_id,
    )


@pytest.fixture
def make_active_share(ledger_service, coop, shareholder, share_class, test_actor_id):
    """
    Purchase and approve shares, returning the ACTIVE share.

    Usage::

        share = make_active_share(quantity=10)
    """

    def _make(quantity: int = 10, owner=None, share_class_id=None):
        result = ledger_service.initiate_purchase(
            coop.id,
            (owner or shareholder).id,
            share_class_id or share_class.id,
            quantity,
            test_actor_id,
        )
        ledger_service.approve(result.transaction.id, test_actor_id, coop.id)
        return result.share

    return _make


@pytest.fixture
def committed_seed(file_session_factory, test_actor_id):
    """
    Coop, two shareholders and a share class committed to the file database.

    Returns a dict of ids; tests open their own sessions.
    """
    sess = file_session_factory()
    try:
        registry = RegistryService(sess, DeterministicClock())
        coop = registry.create_coop(
            name="Zonnecoop",
            slug="zonnecoop",
            ogm_prefix="001",
            actor_id=test_actor_id,
            bank_iban="BE71096123456769",
        )
        anna = registry.create_shareholder(
            coop.id, test_actor_id, first_name="Anna", last_name="Peeters"
        )
        bart = registry.create_shareholder(
            coop.id, test_actor_id, first_name="Bart", last_name="Claes"
        )
        share_class = registry.create_share_class(
            coop.id, "A", "Class A", Decimal("250.00"), test_actor_id
        )
        sess.commit()
        return {
            "coop_id": coop.id,
            "shareholder_id": anna.id,
            "second_shareholder_id": bart.id,
            "share_class_id": share_class.id,
        }
    finally:
        sess.close()
