"""
Module: capital_kernel.db.engine
Responsibility: Engine and session factory for the share register database.
Architecture position: Kernel > DB.  Imports db/base and, for table
    creation only, the models package.

Backends:
    - PostgreSQL in production: READ COMMITTED, plus ``SELECT ... FOR UPDATE``
      and compare-and-set updates in the services where ordering matters.
    - SQLite for tests, scripts and local use.  Foreign keys are switched on
      per connection.  Row locks are ignored by SQLite, which serializes
      writers on the whole database file instead.

Scripts call ``init_engine_from_url`` (or ``init_engine_from_config``) once
and then hand ``get_session_factory()`` to a ``UnitOfWork``.  Tests build
private engines with ``build_engine`` and never touch the module state.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from capital_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for ``database_url`` without touching module state.

    Pool settings apply to PostgreSQL only.  In-memory SQLite shares one
    connection (StaticPool) so that every session sees the same database.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        options: dict = {"echo": echo}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        engine = create_engine(url, **options)
        event.listen(engine, "connect", _sqlite_on_connect)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Install the process-wide engine and session factory.

    ``pool_options`` are passed on to ``build_engine``.  Calling this again
    replaces the previous engine; sessions are created with
    ``expire_on_commit=False`` so scripts can read results after commit.
    """
    global _engine, _session_factory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo, **pool_options},
    )
    return _engine


def init_engine_from_config(config=None) -> Engine:
    """Same as ``init_engine_from_url`` with the ``database`` section of the active config."""
    from capital_config import get_active_config

    db = (config or get_active_config()).database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )


def _require_initialized() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError(
            "No database engine; call init_engine_from_url() or init_engine_from_config()"
        )
    return _session_factory


def get_engine() -> Engine:
    _require_initialized()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    return _require_initialized()


def get_session() -> Session:
    return _require_initialized()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on success, roll back and re-raise on any exception.

    For ad-hoc maintenance work; ledger operations go through ``UnitOfWork``,
    which also maps domain errors to outcomes.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every table of the share register that does not exist yet."""
    from capital_kernel.db.base import Base
    import capital_kernel.models  # noqa: F401  (registers all tables)

    Base.metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    from capital_kernel.db.base import Base
    import capital_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the process-wide engine.  Used by tests that run the scripts."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
