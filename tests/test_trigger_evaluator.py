from types import SimpleNamespace

from digitalflow.schemas.tracking.behavior_event_schema import BehavioralEvent
from digitalflow.services.automation.trigger_evaluator import evaluate


def _automation(id, trigger_type, trigger_config, enabled=True):
    return SimpleNamespace(id=id, name=f"auto-{id}", trigger_type=trigger_type, trigger_config=trigger_config, enabled=enabled)


def _event(**kwargs):
    defaults = {
        "visitorId": "v-1",
        "email": "lead@example.com",
        "name": "Ana",
        "pageSlug": "oferta",
        "pageUrl": "https://site.example.com/oferta",
        "timeOnPage": 0,
        "exitIntent": False,
    }
    defaults.update(kwargs)
    return BehavioralEvent.model_validate(defaults)


def _ids(matches):
    return [match.automation.id for match in matches]


def test_page_exit_requires_exit_intent_and_matching_slug():
    automations = [
        _automation(1, "page_exit", {"pageSlug": "oferta"}),
        _automation(2, "page_exit", {"pageSlug": "obrigado"}),
        _automation(3, "page_exit", {}),
    ]
    assert _ids(evaluate(_event(exitIntent=True), automations)) == [1, 3]
    assert evaluate(_event(exitIntent=False), automations) == []


def test_time_on_page_threshold_is_inclusive():
    automations = [_automation(1, "time_on_page", {"minTimeOnPage": 60, "pageSlug": "oferta"})]
    assert evaluate(_event(timeOnPage=59), automations) == []
    assert _ids(evaluate(_event(timeOnPage=60), automations)) == [1]
    assert evaluate(_event(timeOnPage=600, pageSlug="blog"), automations) == []


def test_exit_without_conversion():
    automations = [
        _automation(1, "exit_without_conversion", {"requiredConversion": "checkout"}),
        _automation(2, "exit_without_conversion", {"requiredConversion": "checkout", "minTimeOnPage": 30}),
    ]
    assert _ids(evaluate(_event(timeOnPage=10), automations)) == [1]
    assert _ids(evaluate(_event(timeOnPage=45, convertedTo="lead"), automations)) == [1, 2]
    assert evaluate(_event(timeOnPage=45, convertedTo="checkout"), automations) == []


def test_time_based_and_form_triggers_never_match_live_events():
    automations = [
        _automation(1, "checkout_abandoned", {"abandonmentDelay": 30}),
        _automation(2, "form_submit", {}),
    ]
    assert evaluate(_event(exitIntent=True, timeOnPage=999), automations) == []


def test_disabled_and_misconfigured_automations_are_skipped():
    automations = [
        _automation(1, "page_exit", {}, enabled=False),
        _automation(2, "time_on_page", {}),
        _automation(3, "page_exit", {}),
    ]
    assert _ids(evaluate(_event(exitIntent=True, timeOnPage=5), automations)) == [3]


def test_anonymous_event_matches_nothing():
    automations = [_automation(1, "page_exit", {})]
    assert evaluate(_event(email=None, exitIntent=True), automations) == []


def test_match_carries_recipient_and_event_context():
    [match] = evaluate(_event(exitIntent=True, timeOnPage=12), [_automation(1, "page_exit", {})])
    assert match.recipient_email == "lead@example.com"
    assert match.recipient_name == "Ana"
    assert match.context == {
        "pageSlug": "oferta",
        "pageUrl": "https://site.example.com/oferta",
        "timeOnPage": 12,
        "visitorId": "v-1",
    }
