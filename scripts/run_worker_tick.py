"""Run one automation worker tick outside HTTP.

Usage::

    python -m scripts.run_worker_tick

Useful from a plain crontab or to drain the queue by hand. Prints the tick
summary as JSON and exits non-zero when the database stayed unreachable.
"""

from __future__ import annotations

import logging
import sys

from digitalflow.core.config import settings
from digitalflow.core.errors import StoreUnavailableError
from digitalflow.db.session import Database
from digitalflow.services.automation.automation_worker import build_worker
from digitalflow.services.email.provider import build_transport

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> int:
    database = Database.from_settings(settings)
    database.verify_connection(max_retries=settings.STORE_RETRY_MAX_ATTEMPTS)
    database.create_all()

    transport = build_transport(settings)
    try:
        with database.session() as db:
            summary = build_worker(db, settings, transport).run_tick()
    except StoreUnavailableError as exc:
        logger.error("Tick interrompu: %s", exc)
        return 1
    finally:
        database.dispose()

    print(summary.model_dump_json(by_alias=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
