# Fichier: digitalflow/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from pydantic import ValidationError, field_validator
import sys


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    ENVIRONMENT: str = "development"

    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # --- Worker tick authorisation ---
    # Shared secret sent by the external cron as ``Authorization: Bearer <secret>``.
    CRON_SECRET: Optional[str] = None

    # --- Outbound email ---
    MAIL_PROVIDER: str = "smtp"  # "smtp" | "resend" | "sendgrid"
    EMAIL_FROM: Optional[str] = None
    EMAIL_FROM_NAME: str = "Equipe DigitalFlow"

    # SMTP (Gmail by default)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USE_SSL: Optional[bool] = None
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_TIMEOUT_SECONDS: float = 30.0

    RESEND_API_KEY: Optional[str] = None
    SENDGRID_API_KEY: Optional[str] = None

    # --- Automation engine ---
    AUTOMATION_BATCH_SIZE: int = 50
    AUTOMATION_MAX_ATTEMPTS: int = 3
    ABANDONED_CHECKOUT_SCAN_LIMIT: int = 100
    DEFAULT_ABANDONMENT_DELAY_MINUTES: int = 30

    # Reconnect-and-retry around the database, independent from job attempts.
    STORE_RETRY_MAX_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.5
    STORE_RETRY_MAX_DELAY_SECONDS: float = 10.0

    # Performance instrumentation
    SQLALCHEMY_SLOW_QUERY_THRESHOLD_MS: int = 300

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: str) -> str:
        """Upgrade the legacy ``postgres://`` scheme.

        Managed Postgres providers still hand out ``postgres://`` URLs, an
        alias SQLAlchemy no longer ships. Everything else (SQLite, explicit
        drivers such as ``postgresql+psycopg2://``) is left untouched.
        """

        if not isinstance(value, str):
            return value

        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://"):]

        return value

    @field_validator("MAIL_PROVIDER", mode="before")
    @classmethod
    def _normalize_mail_provider(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def smtp_use_ssl(self) -> bool:
        if self.SMTP_USE_SSL is not None:
            return self.SMTP_USE_SSL
        return self.SMTP_PORT == 465

    @property
    def is_development(self) -> bool:
        return (self.ENVIRONMENT or "").lower() in {"development", "local"}


def _log_settings_validation_error(exc: ValidationError) -> None:
    """Pretty-print missing or invalid environment variables.

    The exception bubbles up during module import, which makes it hard to
    spot the faulty variable in serverless logs. We print the structured
    error payload before re-raising.
    """

    print("Configuration error while loading environment variables:", file=sys.stderr)

    details = exc.errors()
    if not details:
        print(exc, file=sys.stderr)
        return

    for error in details:
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Unknown validation error")
        type_name = error.get("type")
        hint = f"{message} (type={type_name})" if type_name else message
        print(f"  - {location}: {hint}", file=sys.stderr)


try:
    settings = Settings()
except ValidationError as exc:  # pragma: no cover - exercised at runtime
    _log_settings_validation_error(exc)
    raise
