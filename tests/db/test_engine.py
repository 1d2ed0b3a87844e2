"""
Tests for the process-wide engine and session helpers.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from capital_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_config,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from capital_kernel.models.coop import Coop
from capital_kernel.models.shareholder import Shareholder
from capital_kernel.services.registry_service import RegistryService


@pytest.fixture(autouse=True)
def _no_global_engine():
    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def file_db_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'engine.db'}"
    init_engine_from_url(url)
    create_tables()
    return url


def _coop_count() -> int:
    with get_session_factory()() as sess:
        return sess.execute(select(func.count()).select_from(Coop)).scalar_one()


class TestInitialization:

    def test_helpers_require_initialization(self):
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_init_from_url(self, file_db_url):
        assert get_engine().dialect.name == "sqlite"
        assert str(get_engine().url) == file_db_url

    def test_init_from_config_uses_environment(self, monkeypatch, tmp_path):
        url = f"sqlite:///{tmp_path / 'from-env.db'}"
        monkeypatch.setenv("CAPITAL_DATABASE_URL", url)

        engine = init_engine_from_config()

        assert str(engine.url) == url

    def test_sqlite_enforces_foreign_keys(self, tmp_path, test_actor_id):
        engine = build_engine(f"sqlite:///{tmp_path / 'fk.db'}")
        create_tables(engine)
        with engine.connect() as conn:
            with pytest.raises(IntegrityError):
                conn.execute(
                    Shareholder.__table__.insert().values(
                        id=str(uuid4()),
                        coop_id=str(uuid4()),
                        shareholder_type="INDIVIDUAL",
                        status="ACTIVE",
                        created_by_id=str(test_actor_id),
                    )
                )
        engine.dispose()


class TestSessionScope:

    def test_commits_on_success(self, file_db_url, test_actor_id):
        with session_scope() as sess:
            RegistryService(sess).create_coop("Zonnecoop", "zonnecoop", "001", test_actor_id)

        assert _coop_count() == 1

    def test_rolls_back_and_reraises(self, file_db_url, test_actor_id):
        with pytest.raises(RuntimeError, match="boom"):
            with session_scope() as sess:
                RegistryService(sess).create_coop("Zonnecoop", "zonnecoop", "001", test_actor_id)
                raise RuntimeError("boom")

        assert _coop_count() == 0
