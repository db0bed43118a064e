from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class AutomationError(Exception):
    """Domain-specific exception carrying a stable error code and an HTTP status."""

    code: str
    status_code: int = 400
    message: str | None = None

    def __str__(self) -> str:  # pragma: no cover - human readable message
        return self.message or self.code


class InvalidRecipientError(AutomationError):
    def __init__(self, message: str | None = None):
        super().__init__("invalid_recipient", 400, message)


class AutomationNotFoundError(AutomationError):
    def __init__(self, automation_id: int):
        super().__init__("automation_not_found", 404, f"Automation {automation_id} not found")


class JobNotFoundError(AutomationError):
    def __init__(self, job_id: int):
        super().__init__("job_not_found", 404, f"Job {job_id} not found")


class JobNotCancellableError(AutomationError):
    def __init__(self, job_id: int, status: str):
        super().__init__("job_not_cancellable", 409, f"Job {job_id} is {status}, only pending jobs can be cancelled")


class CheckoutIntentNotFoundError(AutomationError):
    def __init__(self):
        super().__init__("checkout_intent_not_found", 404)


class TransportNotConfiguredError(AutomationError):
    """Raised when the outbound email provider has no usable credentials."""

    def __init__(self, message: str = "Email transport is not configured"):
        super().__init__("transport_not_configured", 503, message)


class StoreUnavailableError(AutomationError):
    """Raised once the database stayed unreachable through every retry."""

    def __init__(self, message: str = "Database unavailable"):
        super().__init__("store_unavailable", 503, message)
