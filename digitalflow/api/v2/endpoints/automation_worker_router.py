from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db, get_settings, get_transport, verify_cron_secret
from digitalflow.core.config import Settings
from digitalflow.core.errors import StoreUnavailableError
from digitalflow.schemas.automation.job_schema import TickSummary
from digitalflow.services.automation.automation_worker import build_worker
from digitalflow.services.email.provider import EmailTransport

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


# Vercel cron issues GET; manual triggers use POST.
@router.api_route("", methods=["GET", "POST"], response_model=TickSummary)
def run_worker_tick(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    transport: Optional[EmailTransport] = Depends(get_transport),
) -> TickSummary:
    worker = build_worker(db, settings, transport)
    try:
        return worker.run_tick()
    except StoreUnavailableError as exc:
        logger.error("[AutomationWorker] Tick interrompu: %s", exc)
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc