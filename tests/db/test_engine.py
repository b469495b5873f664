"""
Engine helpers (ledger_kernel.db.engine).

Tests cover:
- session_scope commits on success and rolls back on error
- run_in_transaction retries serialization failures only
- is_retryable_error classification
"""

from uuid import uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import DBAPIError

from ledger_kernel.db.engine import (
    get_engine,
    is_retryable_error,
    run_in_transaction,
    session_scope,
)
from ledger_kernel.services.sequence_service import SequenceCounter, SequenceService


class _DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _dbapi_error(message="boom", pgcode=None) -> DBAPIError:
    return DBAPIError("UPDATE sequence_counters", {}, _DriverError(message, pgcode))


@pytest.fixture
def counter_name(db_tables):
    name = f"engine-test:{uuid4()}"
    yield name
    with session_scope() as session:
        session.execute(delete(SequenceCounter).where(SequenceCounter.name == name))


def _stored(name):
    with session_scope() as session:
        return SequenceService(session).current_value(name)


# =============================================================================
# session_scope
# =============================================================================


class TestSessionScope:
    def test_engine_available(self, db_engine):
        assert get_engine() is db_engine

    def test_commit_on_success(self, counter_name):
        with session_scope() as session:
            session.add(SequenceCounter(name=counter_name, current_value=7))

        assert _stored(counter_name) == 7

    def test_rollback_on_error(self, counter_name):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(SequenceCounter(name=counter_name, current_value=7))
                session.flush()
                raise RuntimeError("abort")

        assert _stored(counter_name) is None


# =============================================================================
# run_in_transaction
# =============================================================================


class TestRunInTransaction:
    def test_returns_work_result(self, counter_name):
        value = run_in_transaction(lambda s: SequenceService(s).next_value(counter_name))

        assert value == 1
        assert _stored(counter_name) == 1

    def test_retries_serialization_failure(self, counter_name):
        attempts = []

        def work(session):
            attempts.append(1)
            if len(attempts) == 1:
                raise _dbapi_error(pgcode="40001")
            return SequenceService(session).next_value(counter_name)

        assert run_in_transaction(work, backoff_seconds=0) == 1
        assert len(attempts) == 2

    def test_gives_up_after_max_attempts(self, db_tables):
        attempts = []

        def work(session):
            attempts.append(1)
            raise _dbapi_error(pgcode="40P01")

        with pytest.raises(DBAPIError):
            run_in_transaction(work, max_attempts=3, backoff_seconds=0)
        assert len(attempts) == 3

    def test_other_errors_not_retried(self, db_tables):
        attempts = []

        def work(session):
            attempts.append(1)
            raise _dbapi_error("syntax error", pgcode="42601")

        with pytest.raises(DBAPIError):
            run_in_transaction(work, backoff_seconds=0)
        assert len(attempts) == 1


class TestRetryClassification:
    @pytest.mark.parametrize(
        "error",
        [
            _dbapi_error(pgcode="40001"),
            _dbapi_error(pgcode="40P01"),
            _dbapi_error("database deadlock detected"),
            _dbapi_error("could not serialize access due to concurrent update"),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable_error(error)

    def test_plain_exception_not_retryable(self):
        assert not is_retryable_error(ValueError("deadlock"))

    def test_unique_violation_not_retryable(self):
        assert not is_retryable_error(_dbapi_error("duplicate key", pgcode="23505"))
