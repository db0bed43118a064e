from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from digitalflow.db.base_class import Base
from digitalflow.utils.time_utils import utcnow

if TYPE_CHECKING:
    from digitalflow.models.automation.automation_job_model import AutomationJob


class AutomationChannel(str, enum.Enum):
    EMAIL = "email"


class TriggerType(str, enum.Enum):
    FORM_SUBMIT = "form_submit"
    CHECKOUT_ABANDONED = "checkout_abandoned"
    PAGE_EXIT = "page_exit"
    TIME_ON_PAGE = "time_on_page"
    EXIT_WITHOUT_CONVERSION = "exit_without_conversion"


# Trigger types evaluated against live visitor events.
BEHAVIORAL_TRIGGER_TYPES = (
    TriggerType.PAGE_EXIT,
    TriggerType.TIME_ON_PAGE,
    TriggerType.EXIT_WITHOUT_CONVERSION,
)


class Automation(Base):
    __tablename__ = "automations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    channel: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AutomationChannel.EMAIL.value, server_default="email"
    )
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    trigger_type: Mapped[str] = mapped_column(
        String(40), nullable=False, default=TriggerType.FORM_SUBMIT.value, index=True
    )
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    delay_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    jobs: Mapped[List["AutomationJob"]] = relationship(back_populates="automation")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Automation(id={self.id}, name='{self.name}', trigger='{self.trigger_type}')>"

