# Fichier: digitalflow/api/v2/api.py
from fastapi import APIRouter
from .endpoints import (
    automation_job_router,
    automation_router,
    automation_worker_router,
    capture_router,
    checkout_intent_router,
    tracking_router,
)

api_router = APIRouter()

# The static /automations/* routes must be registered before /automations/{automation_id}.
api_router.include_router(automation_worker_router.router, prefix="/automations/worker", tags=["Automations"])
api_router.include_router(automation_job_router.router, prefix="/automations/jobs", tags=["Automations"])
api_router.include_router(automation_router.router, prefix="/automations", tags=["Automations"])
api_router.include_router(tracking_router.router, prefix="/tracking", tags=["Tracking"])
api_router.include_router(capture_router.router, prefix="/capture", tags=["Capture"])
api_router.include_router(checkout_intent_router.router, prefix="/checkout-intent", tags=["Checkout"])
