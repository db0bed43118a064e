from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db
from digitalflow.schemas.tracking.behavior_event_schema import BehavioralEvent, TriggerDispatchOut
from digitalflow.services.automation.automation_registry import AutomationRegistry
from digitalflow.services.automation.job_scheduler import JobScheduler
from digitalflow.services.automation.job_store import JobStore
from digitalflow.services.automation.trigger_service import TriggerService

router = APIRouter()


def build_trigger_service(db: Session) -> TriggerService:
    return TriggerService(AutomationRegistry(db), JobScheduler(JobStore(db)))


@router.post("/events", response_model=TriggerDispatchOut)
def track_behavior_event(event: BehavioralEvent, db: Session = Depends(get_db)):
    return build_trigger_service(db).handle_behavior_event(event)
