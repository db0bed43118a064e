"""Entry points that turn inbound visitor activity into scheduled jobs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from digitalflow.core.errors import AutomationNotFoundError, InvalidRecipientError
from digitalflow.models.automation.automation_model import BEHAVIORAL_TRIGGER_TYPES, TriggerType
from digitalflow.schemas.automation.trigger_config_schema import FormSubmitTrigger, parse_trigger_config
from digitalflow.schemas.tracking.behavior_event_schema import BehavioralEvent, FormSubmission, TriggerDispatchOut
from digitalflow.services.automation import trigger_evaluator
from digitalflow.services.automation.automation_registry import AutomationRegistry
from digitalflow.services.automation.job_scheduler import JobScheduler
from digitalflow.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


class TriggerService:
    def __init__(self, registry: AutomationRegistry, scheduler: JobScheduler):
        self.registry = registry
        self.scheduler = scheduler

    def handle_behavior_event(self, event: BehavioralEvent, now: Optional[datetime] = None) -> TriggerDispatchOut:
        """Schedule a job for every behavioral automation the event fires.

        Anonymous events (no email) are accepted and produce nothing.
        """

        if not event.email:
            return TriggerDispatchOut()

        now = as_naive_utc(now)
        automations = self.registry.list_enabled(BEHAVIORAL_TRIGGER_TYPES)
        found = trigger_evaluator.evaluate(event, automations)

        result = TriggerDispatchOut(matched=len(found))
        for match in found:
            try:
                outcome = self.scheduler.schedule(
                    match.automation,
                    match.recipient_email,
                    match.recipient_name,
                    match.context,
                    now=now,
                )
            except InvalidRecipientError as exc:
                logger.warning("Événement ignoré pour %s: %s", match.recipient_email, exc)
                result.skipped += 1
                continue

            if outcome.scheduled:
                result.scheduled += 1
            else:
                result.skipped += 1

        if found:
            logger.info(
                "[Tracking] %s automation(s) déclenchée(s) pour %s (%s planifiée(s))",
                result.matched,
                event.visitor_id,
                result.scheduled,
            )
        return result

    def handle_form_submission(self, submission: FormSubmission, now: Optional[datetime] = None) -> TriggerDispatchOut:
        """Schedule the ``form_submit`` automation bound to a captured lead."""

        if submission.automation_id is None:
            return TriggerDispatchOut()

        automation = self.registry.get(submission.automation_id)
        if automation is None:
            raise AutomationNotFoundError(submission.automation_id)

        if not automation.enabled or automation.trigger_type != TriggerType.FORM_SUBMIT.value:
            logger.info(
                "[Capture] Automation %s inactive ou non liée à un formulaire, aucun envoi.",
                automation.id,
            )
            return TriggerDispatchOut()

        try:
            config = parse_trigger_config(TriggerType.FORM_SUBMIT, automation.trigger_config)
        except ValidationError as exc:
            logger.warning("Automation %s ignorée: configuration invalide (%s)", automation.id, exc.errors())
            return TriggerDispatchOut()

        if not self._form_matches(config, submission):  # type: ignore[arg-type]
            return TriggerDispatchOut()

        context = {
            "phone": submission.phone,
            "source": submission.source,
            "formId": submission.form_id,
        }
        outcome = self.scheduler.schedule(
            automation,
            str(submission.email),
            submission.name,
            context,
            now=as_naive_utc(now),
        )
        return TriggerDispatchOut(
            matched=1,
            scheduled=1 if outcome.scheduled else 0,
            skipped=0 if outcome.scheduled else 1,
        )

    @staticmethod
    def _form_matches(config: FormSubmitTrigger, submission: FormSubmission) -> bool:
        return not config.form_id or config.form_id == submission.form_id
