from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobAutomationRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class AutomationJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    automation_id: Optional[int] = Field(serialization_alias="automationId")
    automation: Optional[JobAutomationRef] = None
    recipient_email: str = Field(serialization_alias="recipientEmail")
    recipient_name: Optional[str] = Field(serialization_alias="recipientName")
    recipient_data: Dict[str, Any] = Field(serialization_alias="recipientData")
    scheduled_for: datetime = Field(serialization_alias="scheduledFor")
    status: str
    attempts: int
    error_message: Optional[str] = Field(serialization_alias="errorMessage")
    cancel_reason: Optional[str] = Field(serialization_alias="cancelReason")
    processed_at: Optional[datetime] = Field(serialization_alias="processedAt")
    created_at: datetime = Field(serialization_alias="createdAt")


class AutomationJobListOut(BaseModel):
    jobs: List[AutomationJobOut]
    stats: Dict[str, int]


class JobCancelOut(BaseModel):
    success: bool = True
    cancelled: int


class TickSummary(BaseModel):
    """Outcome of one worker tick."""

    success: bool = True
    total: int = 0
    processed: int = 0
    failed: int = 0
    cancelled: int = 0
    retried: int = 0
    skipped: int = 0
    abandoned_checkouts_processed: int = Field(default=0, serialization_alias="abandonedCheckoutsProcessed")
