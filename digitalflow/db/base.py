"""Imports every SQLAlchemy model so ``Base.metadata`` knows about all tables."""

from digitalflow.db.base_class import Base

# Automations & scheduled jobs
from digitalflow.models.automation.automation_model import Automation
from digitalflow.models.automation.automation_job_model import AutomationJob

# Commerce
from digitalflow.models.commerce.checkout_intent_model import CheckoutIntent

__all__ = (
    "Base",
    "Automation",
    "AutomationJob",
    "CheckoutIntent",
)
