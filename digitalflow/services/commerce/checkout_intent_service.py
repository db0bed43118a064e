from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Set

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from digitalflow.core.errors import CheckoutIntentNotFoundError, InvalidRecipientError
from digitalflow.db.retry import StoreRetryPolicy
from digitalflow.models.automation.automation_job_model import CancelReason
from digitalflow.models.automation.automation_model import TriggerType
from digitalflow.models.commerce.checkout_intent_model import CheckoutIntent, CheckoutIntentStatus
from digitalflow.schemas.commerce.checkout_intent_schema import (
    CheckoutConversionIn,
    CheckoutConversionOut,
    CheckoutIntentCreate,
)
from digitalflow.services.automation.job_scheduler import normalize_recipient_email
from digitalflow.services.automation.job_store import JobStore
from digitalflow.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


class CheckoutIntentService:
    """Records checkout clicks and settles them when the sale goes through."""

    def __init__(self, db: Session, store: Optional[JobStore] = None, retry: Optional[StoreRetryPolicy] = None):
        self.db = db
        self.retry = retry or StoreRetryPolicy()
        self.store = store or JobStore(db, self.retry)

    def create_intent(self, payload: CheckoutIntentCreate, now: Optional[datetime] = None) -> CheckoutIntent:
        values = payload.model_dump()
        if values.get("email") is not None:
            values["email"] = str(values["email"])

        def _insert() -> CheckoutIntent:
            intent = CheckoutIntent(
                **values,
                status=CheckoutIntentStatus.PENDING.value,
                created_at=as_naive_utc(now),
            )
            self.db.add(intent)
            self.db.commit()
            self.db.refresh(intent)
            return intent

        intent = self.retry.run(self.db, _insert, description="create_checkout_intent")
        logger.info("[Checkout] Intention %s enregistrée pour %s", intent.id, intent.visitor_id)
        return intent

    def find_intent(self, *, intent_id: Optional[int] = None, visitor_id: Optional[str] = None) -> CheckoutIntent:
        """Look an intent up by id, or the visitor's most recent one."""

        if intent_id is None and not visitor_id:
            raise CheckoutIntentNotFoundError()

        def _query() -> Optional[CheckoutIntent]:
            query = self.db.query(CheckoutIntent)
            if intent_id is not None:
                query = query.filter(CheckoutIntent.id == intent_id)
            else:
                query = query.filter(CheckoutIntent.visitor_id == visitor_id)
            return query.order_by(CheckoutIntent.created_at.desc(), CheckoutIntent.id.desc()).first()

        intent = self.retry.run(self.db, _query, description="find_checkout_intent")
        if intent is None:
            raise CheckoutIntentNotFoundError()
        return intent

    def mark_converted(self, payload: CheckoutConversionIn, now: Optional[datetime] = None) -> CheckoutConversionOut:
        """Mark the buyer's pending intents converted and cancel their abandoned-cart jobs."""

        now = as_naive_utc(now)
        email = str(payload.email) if payload.email else None
        filters = []
        if email:
            filters.append(CheckoutIntent.email == email)
        if payload.visitor_id:
            filters.append(CheckoutIntent.visitor_id == payload.visitor_id)

        recipients = self._recipients(filters, email)

        statement = (
            update(CheckoutIntent)
            .where(CheckoutIntent.status == CheckoutIntentStatus.PENDING.value, or_(*filters))
            .values(status=CheckoutIntentStatus.CONVERTED.value, converted_at=now)
            .execution_options(synchronize_session=False)
        )

        def _op() -> int:
            result = self.db.execute(statement)
            self.db.commit()
            return result.rowcount or 0

        converted = self.retry.run(self.db, _op, description="convert_checkout_intents")

        cancelled = 0
        for recipient in sorted(recipients):
            cancelled += self.store.cancel_pending_for_recipient(
                recipient,
                TriggerType.CHECKOUT_ABANDONED,
                CancelReason.CHECKOUT_CONVERTED,
            )

        logger.info(
            "[Checkout] %s intention(s) convertie(s), %s job(s) de panier abandonné annulé(s)",
            converted,
            cancelled,
        )
        return CheckoutConversionOut(converted=converted, cancelled_jobs=cancelled)

    def _recipients(self, filters, email: Optional[str]) -> Set[str]:
        """Normalised addresses whose abandoned-cart jobs must be cancelled."""

        def _query():
            statement = select(CheckoutIntent.email).where(
                CheckoutIntent.email.is_not(None),
                CheckoutIntent.status != CheckoutIntentStatus.CONVERTED.value,
                or_(*filters),
            )
            return [row for row in self.db.execute(statement).scalars()]

        candidates = set(self.retry.run(self.db, _query, description="find_conversion_recipients"))
        if email:
            candidates.add(email)

        recipients: Set[str] = set()
        for candidate in candidates:
            try:
                recipients.add(normalize_recipient_email(candidate))
            except InvalidRecipientError:
                continue
        return recipients
