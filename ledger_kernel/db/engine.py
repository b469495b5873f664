"""
Engine and session lifecycle for the ledger database.

One process-wide engine is built by ``init_engine_from_url``.  PostgreSQL
runs at READ COMMITTED behind a QueuePool; the services take explicit row
locks where they need more (voucher, bank account, sequence counter).
SQLite is for tests and local use: foreign keys are switched on and
SQLAlchemy issues BEGIN itself so savepoints work under pysqlite.

``session_scope`` is the unit of work: commit on success, rollback and
re-raise otherwise.  ``run_in_transaction`` repeats a unit of work that
lost a serialization or deadlock race.
"""

import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

T = TypeVar("T")

_state: dict = {"engine": None, "factory": None}

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _sqlite_engine(url, echo: bool) -> Engine:
    options = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # every session must see the same in-memory schema
        options["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **options)

    @event.listens_for(engine, "connect")
    def _pragma(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Build the engine and session factory, replacing any previous pair."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = _sqlite_engine(url, echo)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _state["engine"] = engine
    _state["factory"] = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name, "echo": echo})
    return engine


def get_engine() -> Engine:
    if _state["engine"] is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _state["engine"]


def get_session() -> Session:
    """New session from the shared factory.  The caller owns commit and close."""
    if _state["factory"] is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _state["factory"]()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Unit of work around the services::

        with session_scope() as session:
            LedgerOrchestrator(session).vouchers.approve(voucher_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def is_retryable_error(exc: BaseException) -> bool:
    """Serialization failures and deadlocks; everything else is final."""
    if not isinstance(exc, DBAPIError):
        return False
    if getattr(exc.orig, "pgcode", None) in RETRYABLE_SQLSTATES:
        return True
    text = str(exc.orig).lower()
    return "deadlock" in text or "could not serialize" in text


def run_in_transaction(
    work: Callable[[Session], T],
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> T:
    """
    Call ``work(session)`` inside ``session_scope``, retrying lost races.

    Every attempt starts from a fresh session, so a retry recomputes
    from committed state.  The last retryable error is re-raised once
    ``max_attempts`` is used up.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            with session_scope() as session:
                return work(session)
        except DBAPIError as exc:
            if attempt == max_attempts or not is_retryable_error(exc):
                raise
            logger.warning(
                "transaction_retry",
                extra={"attempt": attempt, "max_attempts": max_attempts},
            )
            time.sleep(backoff_seconds * attempt)
    raise ValueError("max_attempts must be at least 1")


def _metadata():
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine.  For tests."""
    if _state["engine"] is not None:
        _state["engine"].dispose()
    _state["engine"] = None
    _state["factory"] = None
