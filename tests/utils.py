"""Utility helpers for test factories."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from digitalflow.models.automation.automation_job_model import AutomationJob, JobStatus
from digitalflow.models.automation.automation_model import Automation, TriggerType
from digitalflow.models.commerce.checkout_intent_model import CheckoutIntent, CheckoutIntentStatus
from digitalflow.utils.time_utils import utcnow

T0 = datetime(2024, 5, 1, 12, 0, 0)


def minutes(value: float) -> timedelta:
    return timedelta(minutes=value)


def create_automation(db, **kwargs) -> Automation:
    defaults = {
        "name": "Boas-vindas",
        "channel": "email",
        "subject": "Olá {{nome}}",
        "message": "<p>Oi {{nome}}, obrigado pelo interesse!</p>",
        "enabled": True,
        "trigger_type": TriggerType.FORM_SUBMIT.value,
        "trigger_config": {},
        "delay_seconds": 0,
    }
    defaults.update(kwargs)
    automation = Automation(**defaults)
    db.add(automation)
    db.commit()
    db.refresh(automation)
    return automation


def create_job(db, automation: Optional[Automation], **kwargs) -> AutomationJob:
    defaults = {
        "automation_id": automation.id if automation is not None else None,
        "recipient_email": "lead@example.com",
        "recipient_name": "Ana",
        "recipient_data": {},
        "scheduled_for": T0,
        "status": JobStatus.PENDING.value,
        "attempts": 0,
        "created_at": T0,
    }
    defaults.update(kwargs)
    job = AutomationJob(**defaults)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def create_checkout_intent(db, **kwargs) -> CheckoutIntent:
    defaults = {
        "visitor_id": "visitor-1",
        "email": "buyer@example.com",
        "name": "Bruno",
        "page_slug": "oferta",
        "page_url": "https://site.example.com/oferta",
        "checkout_url": "https://pay.example.com/checkout/123",
        "product_name": "Curso Completo",
        "product_price": "R$ 197,00",
        "status": CheckoutIntentStatus.PENDING.value,
        "created_at": T0,
    }
    defaults.update(kwargs)
    intent = CheckoutIntent(**defaults)
    db.add(intent)
    db.commit()
    db.refresh(intent)
    return intent


class RecordingTransport:
    """In-memory email transport that records every send.

    ``fail_with`` decides per recipient whether the send raises.
    """

    name = "recording"

    def __init__(self, configured: bool = True, fail_with: Optional[Callable[[str], Optional[Exception]]] = None):
        self.configured = configured
        self.fail_with = fail_with
        self.sent: list[dict] = []
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send(self, to: str, subject: str, html: str) -> dict:
        self.calls += 1
        if self.fail_with is not None:
            error = self.fail_with(to)
            if error is not None:
                raise error
        self.sent.append({"to": to, "subject": subject, "html": html, "at": utcnow()})
        return {"status": "sent"}

    def recipients(self) -> list[str]:
        return [item["to"] for item in self.sent]
