"""Database engine and session factory.

Nothing here runs at import time: the process entry point (the FastAPI
startup event or a CLI script) builds a :class:`Database` and hands it to whoever
needs sessions.
"""

from __future__ import annotations

import logging
import time
from time import perf_counter
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from digitalflow.core.config import Settings

logger = logging.getLogger(__name__)


def _derive_connection_parameters(url: str) -> tuple[str, dict[str, Any]]:
    """Return a synchronous SQLAlchemy URL and its driver specific ``connect_args``."""

    try:
        parsed_url = make_url(url)
    except Exception:
        return url, {}

    drivername = parsed_url.drivername
    connect_args: dict[str, Any] = {}

    if drivername == "sqlite+aiosqlite":
        parsed_url = parsed_url.set(drivername="sqlite")
    elif drivername == "postgresql+asyncpg":
        # The engine is synchronous; fall back to the default psycopg driver.
        parsed_url = parsed_url.set(drivername="postgresql")

    if parsed_url.drivername == "sqlite":
        # FastAPI runs sync endpoints in a threadpool.
        connect_args["check_same_thread"] = False

    return parsed_url.render_as_string(hide_password=False), connect_args


def _install_slow_query_logger(engine: Engine, threshold_ms: int) -> None:
    """Attach callbacks that warn when queries exceed the configured budget."""

    threshold_ms = max(threshold_ms or 0, 0)
    if threshold_ms == 0:
        return

    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):  # type: ignore[override]
        context._digitalflow_query_start = perf_counter()

    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):  # type: ignore[override]
        start = getattr(context, "_digitalflow_query_start", None)
        if start is None:
            return

        elapsed_ms = (perf_counter() - start) * 1000.0
        if elapsed_ms < threshold_ms:
            return

        snippet = " ".join(statement.split()) if isinstance(statement, str) else str(statement)
        if len(snippet) > 200:
            snippet = snippet[:197] + "..."

        params_preview = repr(parameters)
        if len(params_preview) > 200:
            params_preview = params_preview[:197] + "..."

        logger.warning(
            "SQL lente (%.1f ms) - %s | params=%s",
            elapsed_ms,
            snippet,
            params_preview,
        )

    event.listen(engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine, "after_cursor_execute", _after_cursor_execute)


class Database:
    """Owns one engine and the session factory bound to it."""

    def __init__(self, database_url: str, *, slow_query_threshold_ms: int = 0):
        url, connect_args = _derive_connection_parameters(database_url)
        self.engine: Engine = create_engine(
            url,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        _install_slow_query_logger(self.engine, slow_query_threshold_ms)
        self.SessionLocal: sessionmaker[Session] = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        logger.info("Configuration de la base de données: %s", make_url(settings.DATABASE_URL).render_as_string())
        return cls(
            settings.DATABASE_URL,
            slow_query_threshold_ms=settings.SQLALCHEMY_SLOW_QUERY_THRESHOLD_MS,
        )

    def verify_connection(self, max_retries: int = 1, backoff: float = 1.0) -> None:
        """Ping the database, retrying with exponential backoff on transient outages."""

        if self.engine.dialect.name == "sqlite":
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return

        max_retries = max(max_retries, 1)
        backoff = max(backoff, 0.1)
        attempt = 1
        last_exc: Optional[Exception] = None

        while attempt <= max_retries:
            try:
                with self.engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                return
            except (OperationalError, OSError) as exc:
                last_exc = exc
                if attempt >= max_retries:
                    break

                delay = min(30.0, backoff * (2 ** (attempt - 1)))
                logger.warning(
                    "Connexion à la base de données échouée (tentative %s/%s): %s. Nouvelle tentative dans %.1f s.",
                    attempt,
                    max_retries,
                    exc,
                    delay,
                )
                time.sleep(delay)
                attempt += 1

        if last_exc is not None:
            raise last_exc

    def create_all(self) -> None:
        # Imported here so every model is registered on the metadata.
        from digitalflow.db.base import Base

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def iter_session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
