"""Validate the environment before deploying the automation backend.

Usage::

    python -m scripts.check_env

Imports :mod:`digitalflow.core.config`, prints the resolved settings with
secrets masked, and tells whether the outbound email transport and the cron
secret are usable. Exits with status code 1 on a validation error.
"""

from __future__ import annotations

import sys

from pydantic import ValidationError
from sqlalchemy.engine.url import make_url

_SECRET_MARKERS = ("key", "password", "secret")

try:
    from digitalflow.core.config import settings
except ValidationError:
    # ``digitalflow.core.config`` already printed the faulty variables.
    print("Environment validation failed – see details above.", file=sys.stderr)
    sys.exit(1)

from digitalflow.services.email.provider import build_transport  # noqa: E402


def main() -> int:
    print("Environment variables OK.")
    for name, value in settings.model_dump().items():
        if any(marker in name.lower() for marker in _SECRET_MARKERS):
            print(f"- {name}: {'<hidden>' if value else '<unset>'}")
        elif name == "DATABASE_URL":
            print(f"- {name}: {make_url(value).render_as_string(hide_password=True)}")
        else:
            print(f"- {name}: {value}")

    transport = build_transport(settings)
    if transport is None or not transport.is_configured:
        print(f"Email transport '{settings.MAIL_PROVIDER}' is NOT configured: jobs will fail.", file=sys.stderr)
    else:
        print(f"Email transport '{transport.name}' configured.")

    if not settings.CRON_SECRET and not settings.is_development:
        print("CRON_SECRET is unset: the worker endpoint will refuse every tick.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
