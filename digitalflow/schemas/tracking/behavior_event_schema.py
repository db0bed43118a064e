from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class BehavioralEvent(BaseModel):
    """A visitor action reported by the page tracking beacon. Never persisted."""

    model_config = ConfigDict(populate_by_name=True)

    visitor_id: str = Field(..., min_length=1, alias="visitorId")
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    page_slug: Optional[str] = Field(default=None, alias="pageSlug")
    page_url: str = Field(..., min_length=1, alias="pageUrl")
    time_on_page: int = Field(default=0, ge=0, alias="timeOnPage")
    exit_intent: bool = Field(default=False, alias="exitIntent")
    converted_to: Optional[str] = Field(default=None, alias="convertedTo")


class FormSubmission(BaseModel):
    """A lead captured by a page form, optionally bound to a ``form_submit`` automation."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    name: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    form_id: Optional[str] = Field(default=None, alias="formId")
    automation_id: Optional[int] = Field(default=None, alias="automationId")


class TriggerDispatchOut(BaseModel):
    success: bool = True
    matched: int = 0
    scheduled: int = 0
    skipped: int = 0
