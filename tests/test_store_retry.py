import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from digitalflow.core.errors import StoreUnavailableError
from digitalflow.db.retry import StoreRetryPolicy, run_with_store_retry


class FlakyOperation:
    def __init__(self, failures, error_factory):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return "ok"


def _connection_lost():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def test_transient_errors_are_retried_with_backoff(db_session):
    delays = []
    operation = FlakyOperation(2, _connection_lost)

    result = run_with_store_retry(db_session, operation, max_attempts=3, backoff=0.5, sleep=delays.append)

    assert result == "ok"
    assert operation.calls == 3
    assert delays == [0.5, 1.0]


def test_exhausted_retries_raise_store_unavailable(db_session):
    delays = []
    policy = StoreRetryPolicy(max_attempts=3, backoff=1.0, max_delay=1.5, sleep=delays.append)

    with pytest.raises(StoreUnavailableError) as exc:
        policy.run(db_session, FlakyOperation(10, _connection_lost), description="fetch_due_jobs")

    assert exc.value.status_code == 503
    assert delays == [1.0, 1.5]


def test_integrity_errors_are_not_retried(db_session):
    delays = []
    operation = FlakyOperation(1, lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))

    with pytest.raises(IntegrityError):
        run_with_store_retry(db_session, operation, sleep=delays.append)
    assert operation.calls == 1
    assert delays == []


def test_lost_prepared_statement_is_transient(db_session):
    from sqlalchemy.exc import ProgrammingError

    operation = FlakyOperation(
        1, lambda: ProgrammingError("SELECT", {}, Exception('prepared statement "s0" does not exist'))
    )

    assert run_with_store_retry(db_session, operation, sleep=lambda _: None) == "ok"
