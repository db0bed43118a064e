"""The worker tick: turns due jobs into sent emails.

One call to :meth:`AutomationWorker.run_tick` is one tick. It is driven from
the outside (a cron hitting the worker endpoint, or the CLI script) and runs
to completion; nothing here schedules itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from digitalflow.core.config import Settings
from digitalflow.core.errors import StoreUnavailableError
from digitalflow.db.retry import StoreRetryPolicy
from digitalflow.models.automation.automation_job_model import AutomationJob, CancelReason
from digitalflow.schemas.automation.job_schema import TickSummary
from digitalflow.services.automation.abandoned_checkout_scanner import AbandonedCheckoutScanner
from digitalflow.services.automation.automation_registry import AutomationRegistry
from digitalflow.services.automation.job_scheduler import JobScheduler
from digitalflow.services.automation.job_store import JobStore
from digitalflow.services.automation.template_renderer import render
from digitalflow.services.email.provider import EmailTransport
from digitalflow.utils.time_utils import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

DISABLED_AUTOMATION_MESSAGE = "Automação desabilitada"
DELETED_AUTOMATION_MESSAGE = "Automação removida"
TRANSPORT_MISSING_MESSAGE = "Transporte de email não configurado"


@dataclass
class _JobOutcome:
    processed: int = 0
    failed: int = 0
    cancelled: int = 0
    retried: int = 0
    skipped: int = 0


def build_template_variables(job: AutomationJob) -> dict:
    variables = {
        "nome": job.recipient_name or "",
        "email": job.recipient_email,
    }
    variables.update(job.recipient_data or {})
    return variables


class AutomationWorker:
    def __init__(
        self,
        store: JobStore,
        scanner: Optional[AbandonedCheckoutScanner],
        transport: Optional[EmailTransport],
        *,
        batch_size: int = 50,
        max_attempts: int = 3,
    ):
        self.store = store
        self.scanner = scanner
        self.transport = transport
        self.batch_size = batch_size
        self.max_attempts = max_attempts

    def run_tick(self, now: Optional[datetime] = None) -> TickSummary:
        now = as_naive_utc(now)

        abandoned = self._scan_abandoned(now)

        due_jobs = self.store.fetch_due(now, self.batch_size, self.max_attempts)
        if not due_jobs:
            logger.info("[AutomationWorker] Nenhum job pendente")
            return TickSummary(abandoned_checkouts_processed=abandoned)

        outcome = _JobOutcome()
        job_ids = [job.id for job in due_jobs]
        for job_id in job_ids:
            self._process_job(job_id, now, outcome)

        summary = TickSummary(
            total=len(job_ids),
            processed=outcome.processed,
            failed=outcome.failed,
            cancelled=outcome.cancelled,
            retried=outcome.retried,
            skipped=outcome.skipped,
            abandoned_checkouts_processed=abandoned,
        )
        logger.info(
            "[AutomationWorker] Tick terminé: total=%s envoyés=%s échecs=%s annulés=%s relances=%s",
            summary.total,
            summary.processed,
            summary.failed,
            summary.cancelled,
            summary.retried,
        )
        return summary

    def _scan_abandoned(self, now: datetime) -> int:
        if self.scanner is None:
            return 0
        try:
            return self.scanner.scan(now)
        except StoreUnavailableError:
            raise
        except Exception:
            self.store.db.rollback()
            logger.exception("[AutomationWorker] Erro ao processar checkouts abandonados")
            return 0

    def _process_job(self, job_id: int, now: datetime, outcome: _JobOutcome) -> None:
        if not self.store.claim(job_id, now, self.max_attempts):
            # Another worker got there first, or an operator cancelled it.
            outcome.skipped += 1
            return

        job = self.store.get(job_id)
        if job is None:  # pragma: no cover - jobs are never deleted
            outcome.skipped += 1
            return

        automation = job.automation
        if automation is None or not automation.enabled:
            message = DISABLED_AUTOMATION_MESSAGE if automation is not None else DELETED_AUTOMATION_MESSAGE
            self.store.mark_cancelled(job_id, CancelReason.AUTOMATION_DISABLED, message, utcnow())
            logger.info("[AutomationWorker] Job %s annulé: %s", job_id, message)
            outcome.cancelled += 1
            return

        if self.transport is None or not self.transport.is_configured:
            self.store.mark_failed(job_id, TRANSPORT_MISSING_MESSAGE, utcnow())
            logger.error("[AutomationWorker] Job %s en échec: %s", job_id, TRANSPORT_MISSING_MESSAGE)
            outcome.failed += 1
            return

        attempts = job.attempts
        recipient = job.recipient_email
        try:
            variables = build_template_variables(job)
            subject = render(automation.subject, variables)
            html = render(automation.message, variables)
            self.transport.send(recipient, subject, html)
        except Exception as exc:
            self._record_send_failure(job_id, attempts, exc, outcome)
            return

        self.store.mark_completed(job_id, utcnow())
        outcome.processed += 1
        logger.info("[AutomationWorker] Email enviado: %s -> %s", automation.name, recipient)

    def _record_send_failure(self, job_id: int, attempts: int, exc: Exception, outcome: _JobOutcome) -> None:
        message = str(exc) or exc.__class__.__name__
        logger.error("[AutomationWorker] Erro no job %s (tentative %s/%s): %s", job_id, attempts, self.max_attempts, message, exc_info=exc)

        if attempts < self.max_attempts:
            self.store.release_for_retry(job_id, message)
            outcome.retried += 1
            return

        self.store.mark_failed(job_id, message, utcnow())
        outcome.failed += 1


def build_worker(db: Session, settings: Settings, transport: Optional[EmailTransport]) -> AutomationWorker:
    """Wire a worker, its scanner and its store on one session from ``settings``."""

    retry = StoreRetryPolicy.from_settings(settings)
    store = JobStore(db, retry)
    registry = AutomationRegistry(db, retry)
    scanner = AbandonedCheckoutScanner(
        db,
        registry,
        JobScheduler(store),
        scan_limit=settings.ABANDONED_CHECKOUT_SCAN_LIMIT,
        default_delay_minutes=settings.DEFAULT_ABANDONMENT_DELAY_MINUTES,
        retry=retry,
    )
    return AutomationWorker(
        store,
        scanner,
        transport,
        batch_size=settings.AUTOMATION_BATCH_SIZE,
        max_attempts=settings.AUTOMATION_MAX_ATTEMPTS,
    )
