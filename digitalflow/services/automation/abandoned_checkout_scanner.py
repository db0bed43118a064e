from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from digitalflow.core.errors import InvalidRecipientError
from digitalflow.db.retry import StoreRetryPolicy
from digitalflow.models.automation.automation_model import Automation, TriggerType
from digitalflow.models.commerce.checkout_intent_model import CheckoutIntent, CheckoutIntentStatus
from digitalflow.schemas.automation.trigger_config_schema import CheckoutAbandonedTrigger, parse_trigger_config
from digitalflow.services.automation.automation_registry import AutomationRegistry
from digitalflow.services.automation.job_scheduler import JobScheduler
from digitalflow.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


def build_checkout_context(intent: CheckoutIntent) -> dict:
    return {
        "productName": intent.product_name,
        "productPrice": intent.product_price,
        "checkoutUrl": intent.checkout_url,
        "pageSlug": intent.page_slug,
        "pageUrl": intent.page_url,
        "visitorId": intent.visitor_id,
    }


class AbandonedCheckoutScanner:
    """Turns checkout intents left pending for too long into abandoned-cart jobs.

    Idempotent: an intent that produced a job is flipped to
    ``automation_sent`` and never scanned again.
    """

    def __init__(
        self,
        db: Session,
        registry: AutomationRegistry,
        scheduler: JobScheduler,
        *,
        scan_limit: int = 100,
        default_delay_minutes: int = 30,
        retry: Optional[StoreRetryPolicy] = None,
    ):
        self.db = db
        self.registry = registry
        self.scheduler = scheduler
        self.scan_limit = scan_limit
        self.default_delay_minutes = default_delay_minutes
        self.retry = retry or StoreRetryPolicy()

    def scan(self, now: Optional[datetime] = None) -> int:
        now = as_naive_utc(now)
        automations = self.registry.list_enabled([TriggerType.CHECKOUT_ABANDONED])
        if not automations:
            return 0

        created = 0
        for automation in automations:
            config = self._load_config(automation)
            if config is None:
                continue
            created += self._scan_automation(automation, config, now)

        if created:
            logger.info("[AutomationWorker] %s job(s) de panier abandonné créé(s)", created)
        return created

    def _load_config(self, automation: Automation) -> Optional[CheckoutAbandonedTrigger]:
        raw = dict(automation.trigger_config or {})
        raw.setdefault("abandonmentDelay", self.default_delay_minutes)
        try:
            config = parse_trigger_config(TriggerType.CHECKOUT_ABANDONED, raw)
        except ValidationError as exc:
            logger.warning("Automation %s ignorée: configuration invalide (%s)", automation.id, exc.errors())
            return None
        return config  # type: ignore[return-value]

    def _find_abandoned(self, config: CheckoutAbandonedTrigger, now: datetime) -> List[CheckoutIntent]:
        threshold = now - timedelta(minutes=config.abandonment_delay)

        def _query() -> List[CheckoutIntent]:
            query = self.db.query(CheckoutIntent).filter(
                CheckoutIntent.status == CheckoutIntentStatus.PENDING.value,
                CheckoutIntent.created_at <= threshold,
            )
            if config.target_page:
                query = query.filter(CheckoutIntent.page_slug == config.target_page)
            return query.order_by(CheckoutIntent.created_at.asc(), CheckoutIntent.id.asc()).limit(self.scan_limit).all()

        return self.retry.run(self.db, _query, description="find_abandoned_checkouts")

    def _scan_automation(self, automation: Automation, config: CheckoutAbandonedTrigger, now: datetime) -> int:
        created = 0
        for intent in self._find_abandoned(config, now):
            if not intent.email:
                continue

            try:
                result = self.scheduler.schedule(
                    automation,
                    intent.email,
                    intent.name,
                    build_checkout_context(intent),
                    now=now,
                )
            except InvalidRecipientError as exc:
                logger.warning("Checkout intent %s ignoré: email invalide (%s)", intent.id, exc)
                continue

            if not result.scheduled:
                continue

            self._mark_automation_sent(intent.id)
            created += 1
            logger.info(
                "[AutomationWorker] Job de panier abandonné créé: %s -> %s",
                automation.name,
                intent.email,
            )
        return created

    def _mark_automation_sent(self, intent_id: int) -> None:
        statement = (
            update(CheckoutIntent)
            .where(
                CheckoutIntent.id == intent_id,
                CheckoutIntent.status == CheckoutIntentStatus.PENDING.value,
            )
            .values(status=CheckoutIntentStatus.AUTOMATION_SENT.value)
            .execution_options(synchronize_session=False)
        )

        def _op() -> None:
            self.db.execute(statement)
            self.db.commit()

        self.retry.run(self.db, _op, description="mark_checkout_automation_sent")
