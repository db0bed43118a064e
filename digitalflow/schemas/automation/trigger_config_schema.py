"""Typed trigger configuration, one variant per trigger type.

Stored as JSON on ``Automation.trigger_config``; the wire and storage format
keeps the camelCase keys used by the dashboard (``pageSlug``,
``minTimeOnPage``...).
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from digitalflow.models.automation.automation_model import TriggerType


class _TriggerConfigBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("page_slug", "target_page", "required_conversion", mode="before", check_fields=False)
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class FormSubmitTrigger(_TriggerConfigBase):
    trigger_type: Literal["form_submit"] = "form_submit"
    form_id: Optional[str] = Field(default=None, alias="formId")


class CheckoutAbandonedTrigger(_TriggerConfigBase):
    trigger_type: Literal["checkout_abandoned"] = "checkout_abandoned"
    abandonment_delay: int = Field(default=30, ge=0, alias="abandonmentDelay")
    target_page: Optional[str] = Field(default=None, alias="targetPage")


class PageExitTrigger(_TriggerConfigBase):
    trigger_type: Literal["page_exit"] = "page_exit"
    page_slug: Optional[str] = Field(default=None, alias="pageSlug")


class TimeOnPageTrigger(_TriggerConfigBase):
    trigger_type: Literal["time_on_page"] = "time_on_page"
    min_time_on_page: int = Field(..., ge=0, alias="minTimeOnPage")
    page_slug: Optional[str] = Field(default=None, alias="pageSlug")


class ExitWithoutConversionTrigger(_TriggerConfigBase):
    trigger_type: Literal["exit_without_conversion"] = "exit_without_conversion"
    required_conversion: str = Field(..., alias="requiredConversion")
    page_slug: Optional[str] = Field(default=None, alias="pageSlug")
    min_time_on_page: Optional[int] = Field(default=None, ge=0, alias="minTimeOnPage")


TriggerConfig = Annotated[
    Union[
        FormSubmitTrigger,
        CheckoutAbandonedTrigger,
        PageExitTrigger,
        TimeOnPageTrigger,
        ExitWithoutConversionTrigger,
    ],
    Field(discriminator="trigger_type"),
]

_trigger_config_adapter: TypeAdapter[TriggerConfig] = TypeAdapter(TriggerConfig)


def parse_trigger_config(trigger_type: str | TriggerType, raw: dict | None) -> TriggerConfig:
    """Validate a stored configuration map against its trigger type.

    Raises :class:`pydantic.ValidationError` when required keys are missing or
    have the wrong type.
    """

    kind = trigger_type.value if isinstance(trigger_type, TriggerType) else str(trigger_type)
    payload = dict(raw or {})
    payload.pop("triggerType", None)
    payload["trigger_type"] = kind
    return _trigger_config_adapter.validate_python(payload)


def dump_trigger_config(config: TriggerConfig) -> dict:
    """Serialise a configuration to its stored form (camelCase, without the tag)."""
    return config.model_dump(by_alias=True, exclude={"trigger_type"}, exclude_none=True)
