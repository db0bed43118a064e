import hmac
import logging
import re
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from digitalflow.core.config import Settings, settings as app_settings
from digitalflow.db.session import Database
from digitalflow.services.email.provider import EmailTransport

log = logging.getLogger(__name__)


def get_settings() -> Settings:
    return app_settings


def _get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="store_unavailable")
    return database


def get_db(database: Database = Depends(_get_database)) -> Generator[Session, None, None]:
    """One SQLAlchemy session per request, closed once the response is sent."""
    yield from database.iter_session()


def get_transport(request: Request) -> Optional[EmailTransport]:
    return getattr(request.app.state, "transport", None)


def _normalize_bearer_value(raw_token: str | None) -> str | None:
    """Extract the secret from an ``Authorization: Bearer <secret>`` header.

    The scheme is matched case-insensitively; the secret itself is compared
    as sent, without any decoding.
    """

    if raw_token is None:
        return None

    match = re.match(r"^\s*bearer\s+(\S+)\s*$", raw_token, flags=re.IGNORECASE)
    if not match:
        return None
    return match.group(1)


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard the worker tick with the shared ``CRON_SECRET``.

    Without a configured secret the tick is open in development and refused
    everywhere else.
    """

    expected = settings.CRON_SECRET
    if not expected:
        if settings.is_development:
            return
        log.error("CRON_SECRET absent: tick refusé hors développement.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="cron_secret_not_configured")

    provided = _normalize_bearer_value(authorization)
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        log.warning("Tick du worker refusé: secret cron invalide ou absent.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
