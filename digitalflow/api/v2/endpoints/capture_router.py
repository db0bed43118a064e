from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db
from digitalflow.api.v2.endpoints.tracking_router import build_trigger_service
from digitalflow.core.errors import AutomationError
from digitalflow.schemas.tracking.behavior_event_schema import FormSubmission, TriggerDispatchOut

router = APIRouter()


@router.post("/form", response_model=TriggerDispatchOut)
def capture_form(submission: FormSubmission, db: Session = Depends(get_db)):
    try:
        return build_trigger_service(db).handle_form_submission(submission)
    except AutomationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
