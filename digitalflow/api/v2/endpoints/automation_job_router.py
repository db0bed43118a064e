from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db
from digitalflow.core.errors import AutomationError
from digitalflow.models.automation.automation_job_model import CancelReason, JobStatus
from digitalflow.schemas.automation import job_schema
from digitalflow.services.automation.job_store import JobStore

router = APIRouter()


@router.get("", response_model=job_schema.AutomationJobListOut)
def list_jobs(
    automation_id: Optional[int] = Query(default=None, alias="automationId"),
    job_status: Optional[JobStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Jobs les plus récents et le décompte global par statut."""
    store = JobStore(db)
    jobs = store.list_jobs(
        automation_id=automation_id,
        status=job_status.value if job_status else None,
        limit=limit,
    )
    stats = {s.value: 0 for s in JobStatus}
    stats.update(store.count_by_status(automation_id))
    return job_schema.AutomationJobListOut(
        jobs=[job_schema.AutomationJobOut.model_validate(job) for job in jobs],
        stats=stats,
    )


@router.delete("", response_model=job_schema.JobCancelOut)
def cancel_jobs(
    job_id: Optional[int] = Query(default=None, alias="jobId"),
    automation_id: Optional[int] = Query(default=None, alias="automationId"),
    db: Session = Depends(get_db),
):
    """Annule un job en attente, ou tous ceux d'une automation."""
    store = JobStore(db)
    if job_id is not None:
        try:
            store.cancel_job(job_id, CancelReason.OPERATOR)
        except AutomationError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
        return job_schema.JobCancelOut(cancelled=1)

    if automation_id is not None:
        cancelled = store.cancel_pending_for_automation(automation_id, CancelReason.OPERATOR)
        return job_schema.JobCancelOut(cancelled=cancelled)

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="job_id_or_automation_id_required")
