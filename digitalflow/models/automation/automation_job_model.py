from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from digitalflow.db.base_class import Base
from digitalflow.utils.time_utils import utcnow

if TYPE_CHECKING:
    from digitalflow.models.automation.automation_model import Automation


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)
TERMINAL_JOB_STATUSES = (
    JobStatus.COMPLETED.value,
    JobStatus.FAILED.value,
    JobStatus.CANCELLED.value,
)


class CancelReason(str, enum.Enum):
    OPERATOR = "operator"
    AUTOMATION_DISABLED = "automation_disabled"
    CHECKOUT_CONVERTED = "checkout_converted"


_ACTIVE_JOB_PREDICATE = text("status IN ('pending', 'processing')")


class AutomationJob(Base):
    __tablename__ = "automation_jobs"
    __table_args__ = (
        # At most one live job per automation and recipient.
        Index(
            "uq_automation_jobs_active_recipient",
            "automation_id",
            "recipient_email",
            unique=True,
            postgresql_where=_ACTIVE_JOB_PREDICATE,
            sqlite_where=_ACTIVE_JOB_PREDICATE,
        ),
        Index("ix_automation_jobs_due", "status", "scheduled_for"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    automation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("automations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    recipient_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    recipient_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value, server_default="pending"
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    automation: Mapped[Optional["Automation"]] = relationship(back_populates="jobs")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            "<AutomationJob(id={0}, automation_id={1}, recipient='{2}', status='{3}', attempts={4})>".format(
                self.id,
                self.automation_id,
                self.recipient_email,
                self.status,
                self.attempts,
            )
        )
