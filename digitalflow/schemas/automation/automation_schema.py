from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from digitalflow.models.automation.automation_model import AutomationChannel, TriggerType
from digitalflow.schemas.automation.trigger_config_schema import dump_trigger_config, parse_trigger_config


class AutomationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    channel: AutomationChannel = Field(default=AutomationChannel.EMAIL, alias="type")
    subject: str = Field(..., min_length=1, max_length=500)
    message: str = Field(..., min_length=1)
    trigger_type: TriggerType = Field(default=TriggerType.FORM_SUBMIT, alias="triggerType")
    trigger_config: Dict[str, Any] = Field(default_factory=dict, alias="triggerConfig")
    delay_seconds: int = Field(default=0, ge=0, alias="delaySeconds")
    enabled: bool = True

    @model_validator(mode="after")
    def _validate_trigger_config(self) -> "AutomationCreate":
        # Normalises the map and raises on missing required keys.
        self.trigger_config = dump_trigger_config(parse_trigger_config(self.trigger_type, self.trigger_config))
        return self


class AutomationUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    channel: Optional[AutomationChannel] = Field(default=None, alias="type")
    subject: Optional[str] = Field(default=None, min_length=1, max_length=500)
    message: Optional[str] = Field(default=None, min_length=1)
    trigger_type: Optional[TriggerType] = Field(default=None, alias="triggerType")
    trigger_config: Optional[Dict[str, Any]] = Field(default=None, alias="triggerConfig")
    delay_seconds: Optional[int] = Field(default=None, ge=0, alias="delaySeconds")
    enabled: Optional[bool] = None


class AutomationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    channel: str = Field(serialization_alias="type")
    subject: str
    message: str
    enabled: bool
    trigger_type: str = Field(serialization_alias="triggerType")
    trigger_config: Dict[str, Any] = Field(serialization_alias="triggerConfig")
    delay_seconds: int = Field(serialization_alias="delaySeconds")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")
    pending_jobs: int = Field(default=0, serialization_alias="pendingJobs")
