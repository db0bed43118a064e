import pytest
from pydantic import ValidationError

from digitalflow.models.automation.automation_model import TriggerType
from digitalflow.schemas.automation.automation_schema import AutomationCreate
from digitalflow.schemas.automation.trigger_config_schema import (
    CheckoutAbandonedTrigger,
    ExitWithoutConversionTrigger,
    TimeOnPageTrigger,
    dump_trigger_config,
    parse_trigger_config,
)


def test_checkout_abandoned_defaults_to_thirty_minutes():
    config = parse_trigger_config(TriggerType.CHECKOUT_ABANDONED, {})
    assert isinstance(config, CheckoutAbandonedTrigger)
    assert config.abandonment_delay == 30
    assert config.target_page is None


def test_camel_case_keys_are_accepted_and_dumped_back():
    config = parse_trigger_config("time_on_page", {"minTimeOnPage": 60, "pageSlug": "oferta"})
    assert isinstance(config, TimeOnPageTrigger)
    assert config.min_time_on_page == 60
    assert dump_trigger_config(config) == {"minTimeOnPage": 60, "pageSlug": "oferta"}


def test_blank_page_slug_means_any_page():
    config = parse_trigger_config("page_exit", {"pageSlug": "   "})
    assert config.page_slug is None


def test_missing_required_key_is_rejected():
    with pytest.raises(ValidationError):
        parse_trigger_config("exit_without_conversion", {"pageSlug": "oferta"})
    with pytest.raises(ValidationError):
        parse_trigger_config("time_on_page", {})


def test_unknown_trigger_type_is_rejected():
    with pytest.raises(ValidationError):
        parse_trigger_config("sms_received", {})


def test_automation_create_normalises_trigger_config():
    payload = AutomationCreate.model_validate(
        {
            "name": "Saída sem compra",
            "subject": "Esqueceu algo?",
            "message": "<p>{{nome}}</p>",
            "triggerType": "exit_without_conversion",
            "triggerConfig": {"requiredConversion": "checkout", "minTimeOnPage": "30", "extra": True},
            "delaySeconds": 300,
        }
    )
    assert payload.trigger_config == {"requiredConversion": "checkout", "minTimeOnPage": 30}
    assert isinstance(
        parse_trigger_config(payload.trigger_type, payload.trigger_config), ExitWithoutConversionTrigger
    )


def test_automation_create_rejects_invalid_trigger_config():
    with pytest.raises(ValidationError):
        AutomationCreate.model_validate(
            {"name": "x", "subject": "s", "message": "m", "triggerType": "time_on_page", "triggerConfig": {}}
        )
