"""Decides which automations a live visitor event should fire.

Pure: works on already-fetched automation rows and a single event value.
``checkout_abandoned`` and ``form_submit`` never match here; the first is
driven by elapsed time (see ``abandoned_checkout_scanner``), the second by the
lead capture form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from digitalflow.models.automation.automation_model import Automation
from digitalflow.schemas.automation.trigger_config_schema import (
    ExitWithoutConversionTrigger,
    PageExitTrigger,
    TimeOnPageTrigger,
    TriggerConfig,
    parse_trigger_config,
)
from digitalflow.schemas.tracking.behavior_event_schema import BehavioralEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerMatch:
    automation: Automation
    recipient_email: str
    recipient_name: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)


def _page_matches(required_slug: Optional[str], event: BehavioralEvent) -> bool:
    return required_slug is None or event.page_slug == required_slug


def matches(config: TriggerConfig, event: BehavioralEvent) -> bool:
    """Return ``True`` when ``event`` satisfies ``config``."""

    if isinstance(config, PageExitTrigger):
        return event.exit_intent and _page_matches(config.page_slug, event)

    if isinstance(config, TimeOnPageTrigger):
        return event.time_on_page >= config.min_time_on_page and _page_matches(config.page_slug, event)

    if isinstance(config, ExitWithoutConversionTrigger):
        if event.converted_to == config.required_conversion:
            return False
        if not _page_matches(config.page_slug, event):
            return False
        return config.min_time_on_page is None or event.time_on_page >= config.min_time_on_page

    return False


def build_event_context(event: BehavioralEvent) -> Dict[str, Any]:
    """Template variables captured from the event at scheduling time."""
    return {
        "pageSlug": event.page_slug,
        "pageUrl": event.page_url,
        "timeOnPage": event.time_on_page,
        "visitorId": event.visitor_id,
    }


def evaluate(event: BehavioralEvent, automations: Iterable[Automation]) -> List[TriggerMatch]:
    """Return every enabled automation whose trigger fires for ``event``."""

    if not event.email:
        return []

    context = build_event_context(event)
    found: List[TriggerMatch] = []
    for automation in automations:
        if not automation.enabled:
            continue
        try:
            config = parse_trigger_config(automation.trigger_type, automation.trigger_config)
        except ValidationError as exc:
            logger.warning(
                "Automation %s ignorée: configuration de déclencheur invalide (%s)",
                automation.id,
                exc.errors(),
            )
            continue

        if matches(config, event):
            found.append(
                TriggerMatch(
                    automation=automation,
                    recipient_email=str(event.email),
                    recipient_name=event.name,
                    context=dict(context),
                )
            )

    return found
