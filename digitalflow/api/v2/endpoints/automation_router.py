from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db
from digitalflow.core.errors import AutomationError
from digitalflow.crud import automation_crud
from digitalflow.schemas.automation import automation_schema
from digitalflow.services.automation.job_store import JobStore

router = APIRouter()


def _pending_jobs(db: Session, automation_id: int) -> int:
    return JobStore(db).count_pending_by_automation([automation_id]).get(automation_id, 0)


@router.get("", response_model=List[automation_schema.AutomationOut])
def list_automations(db: Session = Depends(get_db)):
    return automation_crud.list_automations(db)


@router.post("", response_model=automation_schema.AutomationOut, status_code=status.HTTP_201_CREATED)
def create_automation(payload: automation_schema.AutomationCreate, db: Session = Depends(get_db)):
    automation = automation_crud.create_automation(db, payload)
    return automation_crud.to_out(automation)


@router.get("/{automation_id}", response_model=automation_schema.AutomationOut)
def get_automation(automation_id: int, db: Session = Depends(get_db)):
    try:
        automation = automation_crud.get_automation(db, automation_id)
    except AutomationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
    return automation_crud.to_out(automation, _pending_jobs(db, automation.id))


@router.put("/{automation_id}", response_model=automation_schema.AutomationOut)
def update_automation(
    automation_id: int,
    payload: automation_schema.AutomationUpdate,
    db: Session = Depends(get_db),
):
    try:
        automation = automation_crud.update_automation(db, automation_id, payload)
    except AutomationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
    except ValidationError as exc:
        db.rollback()
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return automation_crud.to_out(automation, _pending_jobs(db, automation.id))


@router.delete("/{automation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_automation(automation_id: int, db: Session = Depends(get_db)):
    try:
        automation_crud.delete_automation(db, automation_id)
    except AutomationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
