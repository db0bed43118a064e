from __future__ import annotations

import copy
import enum
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from digitalflow.core.errors import InvalidRecipientError
from digitalflow.models.automation.automation_model import Automation
from digitalflow.services.automation.job_store import JobStore
from digitalflow.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


class ScheduleOutcome(str, enum.Enum):
    SCHEDULED = "scheduled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ScheduleResult:
    outcome: ScheduleOutcome
    job_id: Optional[int] = None
    scheduled_for: Optional[datetime] = None

    @property
    def scheduled(self) -> bool:
        return self.outcome is ScheduleOutcome.SCHEDULED


def normalize_recipient_email(value: Optional[str]) -> str:
    """Validate the address syntax and return its normalised form."""

    if value is None or not str(value).strip():
        raise InvalidRecipientError("recipient email is required")
    try:
        return validate_email(str(value).strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise InvalidRecipientError(str(exc)) from exc


def _snapshot(context: Optional[Mapping[str, Any]]) -> dict:
    """Deep, JSON-safe copy of the recipient context as it is right now."""
    if not context:
        return {}
    return json.loads(json.dumps(copy.deepcopy(dict(context)), default=str))


class JobScheduler:
    """Turns a trigger decision into one de-duplicated, delayed job."""

    def __init__(self, store: JobStore):
        self.store = store

    def schedule(
        self,
        automation: Automation,
        recipient_email: Optional[str],
        recipient_name: Optional[str] = None,
        context_data: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        email = normalize_recipient_email(recipient_email)
        now = as_naive_utc(now)

        existing = self.store.find_active(automation.id, email)
        if existing is not None:
            logger.info(
                "[Automation] Job déjà actif pour %s -> %s (job %s, %s), rien à planifier.",
                automation.name,
                email,
                existing.id,
                existing.status,
            )
            return ScheduleResult(ScheduleOutcome.SKIPPED, job_id=existing.id)

        scheduled_for = now + timedelta(seconds=max(automation.delay_seconds or 0, 0))
        try:
            job = self.store.create(
                automation_id=automation.id,
                recipient_email=email,
                recipient_name=recipient_name or None,
                recipient_data=_snapshot(context_data),
                scheduled_for=scheduled_for,
                created_at=now,
            )
        except IntegrityError:
            # Lost a race with a concurrent insert for the same recipient.
            self.store.db.rollback()
            logger.info("[Automation] Job concurrent détecté pour %s -> %s, ignoré.", automation.name, email)
            return ScheduleResult(ScheduleOutcome.SKIPPED)

        logger.info(
            "[Automation] Job %s planifié: %s -> %s pour %s",
            job.id,
            automation.name,
            email,
            scheduled_for.isoformat(),
        )
        return ScheduleResult(ScheduleOutcome.SCHEDULED, job_id=job.id, scheduled_for=scheduled_for)
