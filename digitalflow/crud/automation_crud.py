# Fichier: digitalflow/crud/automation_crud.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from digitalflow.core.errors import AutomationNotFoundError
from digitalflow.models.automation.automation_job_model import CancelReason
from digitalflow.models.automation.automation_model import Automation
from digitalflow.schemas.automation import automation_schema
from digitalflow.schemas.automation.trigger_config_schema import dump_trigger_config, parse_trigger_config
from digitalflow.services.automation.job_store import JobStore


def list_automations(db: Session) -> List[automation_schema.AutomationOut]:
    """Toutes les automations, les plus récentes en premier, avec leurs jobs en attente."""
    automations = db.query(Automation).order_by(Automation.created_at.desc(), Automation.id.desc()).all()
    pending = JobStore(db).count_pending_by_automation(a.id for a in automations)
    return [to_out(automation, pending.get(automation.id, 0)) for automation in automations]


def get_automation(db: Session, automation_id: int) -> Automation:
    automation = db.get(Automation, automation_id)
    if automation is None:
        raise AutomationNotFoundError(automation_id)
    return automation


def create_automation(
    db: Session,
    payload: automation_schema.AutomationCreate,
    created_by: Optional[str] = None,
) -> Automation:
    automation = Automation(
        name=payload.name.strip(),
        channel=payload.channel.value,
        subject=payload.subject,
        message=payload.message,
        enabled=payload.enabled,
        trigger_type=payload.trigger_type.value,
        trigger_config=payload.trigger_config,
        delay_seconds=payload.delay_seconds,
        created_by=created_by,
    )
    db.add(automation)
    db.commit()
    db.refresh(automation)
    return automation


def update_automation(db: Session, automation_id: int, payload: automation_schema.AutomationUpdate) -> Automation:
    """Applique une mise à jour partielle.

    Les jobs en attente d'une automation désactivée restent en file: le worker
    les annule au moment du claim si elle est toujours désactivée. La
    configuration du déclencheur est revalidée contre le type (nouveau ou
    existant).
    """
    automation = get_automation(db, automation_id)
    changes = payload.model_dump(exclude_unset=True)

    if "name" in changes and changes["name"] is not None:
        automation.name = changes["name"].strip()
    for field in ("subject", "message", "delay_seconds", "enabled"):
        if changes.get(field) is not None:
            setattr(automation, field, changes[field])
    if changes.get("channel") is not None:
        automation.channel = payload.channel.value
    if changes.get("trigger_type") is not None:
        automation.trigger_type = payload.trigger_type.value

    if "trigger_type" in changes or "trigger_config" in changes:
        raw = payload.trigger_config if payload.trigger_config is not None else automation.trigger_config
        automation.trigger_config = dump_trigger_config(parse_trigger_config(automation.trigger_type, raw))

    db.add(automation)
    db.commit()
    db.refresh(automation)
    return automation


def delete_automation(db: Session, automation_id: int) -> None:
    """Supprime l'automation; l'historique de ses jobs est conservé."""
    automation = get_automation(db, automation_id)
    JobStore(db).cancel_pending_for_automation(automation.id, CancelReason.AUTOMATION_DISABLED)
    db.delete(automation)
    db.commit()


def to_out(automation: Automation, pending_jobs: int = 0) -> automation_schema.AutomationOut:
    out = automation_schema.AutomationOut.model_validate(automation)
    out.pending_jobs = pending_jobs
    return out
