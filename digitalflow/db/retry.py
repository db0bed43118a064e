"""Reconnect-and-retry around store operations.

This is infrastructure-level retrying (a dropped connection, a failover, a
pooler that lost a prepared statement). It is unrelated to the per-job
attempt counter, which budgets retries of the *send*.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from digitalflow.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    # PgBouncer in transaction mode loses server-side prepared statements.
    message = str(exc).lower()
    return "prepared statement" in message and (
        "does not exist" in message or "already exists" in message
    )


def run_with_store_retry(
    session: Session,
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    backoff: float = 0.5,
    max_delay: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
    description: Optional[str] = None,
) -> T:
    """Run ``operation`` and retry it with exponential backoff on transient store errors.

    ``operation`` must be a complete unit of work (statement(s) + commit) so it
    can be replayed after the session is rolled back. Non-transient errors,
    integrity violations included, propagate untouched. When every attempt
    fails a :class:`StoreUnavailableError` is raised.
    """

    max_attempts = max(max_attempts, 1)
    attempt = 1

    while True:
        try:
            return operation()
        except DBAPIError as exc:
            session.rollback()
            if not _is_transient(exc):
                raise

            label = description or getattr(operation, "__name__", "store operation")
            if attempt >= max_attempts:
                logger.error("Store indisponible après %s tentatives (%s): %s", attempt, label, exc)
                raise StoreUnavailableError(f"{label} failed after {attempt} attempts") from exc

            delay = min(max_delay, backoff * (2 ** (attempt - 1)))
            logger.warning(
                "Erreur transitoire du store (%s, tentative %s/%s): %s. Nouvelle tentative dans %.2f s.",
                label,
                attempt,
                max_attempts,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1


class StoreRetryPolicy:
    """Retry settings bound to a session, shared by the store-facing services."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff: float = 0.5,
        max_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.max_delay = max_delay
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "StoreRetryPolicy":
        return cls(
            max_attempts=settings.STORE_RETRY_MAX_ATTEMPTS,
            backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
            max_delay=settings.STORE_RETRY_MAX_DELAY_SECONDS,
        )

    def run(self, session: Session, operation: Callable[[], T], description: Optional[str] = None) -> T:
        return run_with_store_retry(
            session,
            operation,
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            max_delay=self.max_delay,
            sleep=self.sleep,
            description=description,
        )
