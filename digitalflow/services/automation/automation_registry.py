from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from digitalflow.db.retry import StoreRetryPolicy
from digitalflow.models.automation.automation_model import Automation, TriggerType


class AutomationRegistry:
    """Read access to automation definitions for the automation core."""

    def __init__(self, db: Session, retry: Optional[StoreRetryPolicy] = None):
        self.db = db
        self.retry = retry or StoreRetryPolicy()

    def list_enabled(self, trigger_types: Optional[Iterable[TriggerType | str]] = None) -> List[Automation]:
        types = [t.value if isinstance(t, TriggerType) else t for t in trigger_types or ()]

        def _query() -> List[Automation]:
            query = self.db.query(Automation).filter(Automation.enabled.is_(True))
            if types:
                query = query.filter(Automation.trigger_type.in_(types))
            return query.order_by(Automation.id.asc()).all()

        return self.retry.run(self.db, _query, description="list_enabled_automations")

    def get(self, automation_id: int) -> Optional[Automation]:
        return self.retry.run(
            self.db,
            lambda: self.db.get(Automation, automation_id),
            description="get_automation",
        )
