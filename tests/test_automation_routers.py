from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from digitalflow.api.v2.dependencies import verify_cron_secret
from digitalflow.api.v2.endpoints.automation_job_router import cancel_jobs, list_jobs
from digitalflow.api.v2.endpoints.automation_router import (
    create_automation,
    delete_automation,
    get_automation,
    list_automations,
    update_automation,
)
from digitalflow.api.v2.endpoints.automation_worker_router import run_worker_tick
from digitalflow.core.config import Settings
from digitalflow.models.automation.automation_job_model import AutomationJob, JobStatus
from digitalflow.models.automation.automation_model import Automation
from digitalflow.schemas.automation.automation_schema import AutomationCreate, AutomationUpdate
from digitalflow.services.automation.automation_worker import AutomationWorker
from digitalflow.services.automation.job_store import JobStore
from tests.utils import T0, RecordingTransport, create_automation as make_automation, create_job


def _settings(**kwargs) -> Settings:
    return Settings(DATABASE_URL="sqlite://", **kwargs)


def _reload(db, model, id):
    db.expire_all()
    return db.get(model, id)


def test_create_list_and_get_automation(db_session):
    payload = AutomationCreate.model_validate(
        {
            "name": "Saída",
            "subject": "Volte {{nome}}",
            "message": "<p>Oi</p>",
            "triggerType": "page_exit",
            "triggerConfig": {"pageSlug": "oferta"},
            "delaySeconds": 600,
        }
    )
    created = create_automation(payload, db=db_session)
    create_job(db_session, db_session.get(Automation, created.id))

    [listed] = list_automations(db=db_session)
    assert listed.pending_jobs == 1
    dumped = listed.model_dump(by_alias=True)
    assert dumped["triggerType"] == "page_exit"
    assert dumped["triggerConfig"] == {"pageSlug": "oferta"}
    assert dumped["pendingJobs"] == 1
    assert get_automation(created.id, db=db_session).delay_seconds == 600

    with pytest.raises(HTTPException) as exc:
        get_automation(999, db=db_session)
    assert exc.value.status_code == 404
    assert exc.value.detail == "automation_not_found"


def test_disable_then_reenable_keeps_pending_jobs_sendable(db_session):
    automation = make_automation(db_session)
    job = create_job(db_session, automation, scheduled_for=T0 + timedelta(minutes=10))

    disabled = update_automation(automation.id, AutomationUpdate(enabled=False), db=db_session)
    assert disabled.enabled is False
    assert disabled.pending_jobs == 1
    assert _reload(db_session, AutomationJob, job.id).status == JobStatus.PENDING.value

    update_automation(automation.id, AutomationUpdate(enabled=True), db=db_session)
    transport = RecordingTransport()
    summary = AutomationWorker(JobStore(db_session), None, transport).run_tick(now=T0 + timedelta(minutes=11))

    assert summary.processed == 1
    assert _reload(db_session, AutomationJob, job.id).status == JobStatus.COMPLETED.value
    assert transport.recipients() == ["lead@example.com"]


def test_update_revalidates_trigger_config(db_session):
    automation = make_automation(db_session)

    with pytest.raises(HTTPException) as exc:
        update_automation(automation.id, AutomationUpdate(trigger_type="time_on_page"), db=db_session)
    assert exc.value.status_code == 422

    updated = update_automation(
        automation.id,
        AutomationUpdate(trigger_type="time_on_page", trigger_config={"minTimeOnPage": "90"}),
        db=db_session,
    )
    assert updated.trigger_type == "time_on_page"
    assert updated.trigger_config == {"minTimeOnPage": 90}


def test_delete_keeps_job_history(db_session):
    automation = make_automation(db_session)
    pending = create_job(db_session, automation, recipient_email="a@example.com")
    done = create_job(db_session, automation, recipient_email="b@example.com", status=JobStatus.COMPLETED.value)

    delete_automation(automation.id, db=db_session)

    assert _reload(db_session, Automation, automation.id) is None
    pending = db_session.get(AutomationJob, pending.id)
    assert pending.status == JobStatus.CANCELLED.value
    assert pending.automation_id is None
    assert db_session.get(AutomationJob, done.id).status == JobStatus.COMPLETED.value


def test_list_jobs_with_stats(db_session):
    automation = make_automation(db_session)
    create_job(db_session, automation, recipient_email="a@example.com")
    create_job(db_session, automation, recipient_email="b@example.com", status=JobStatus.FAILED.value)

    result = list_jobs(automation_id=automation.id, job_status=None, limit=50, db=db_session)

    assert len(result.jobs) == 2
    assert result.stats["pending"] == 1
    assert result.stats["failed"] == 1
    assert result.stats["completed"] == 0
    assert result.jobs[0].automation.name == automation.name

    only_failed = list_jobs(automation_id=None, job_status=JobStatus.FAILED, limit=50, db=db_session)
    assert [job.recipient_email for job in only_failed.jobs] == ["b@example.com"]


def test_cancel_jobs_endpoint(db_session):
    automation = make_automation(db_session)
    first = create_job(db_session, automation, recipient_email="a@example.com")
    create_job(db_session, automation, recipient_email="b@example.com")

    assert cancel_jobs(job_id=first.id, automation_id=None, db=db_session).cancelled == 1
    with pytest.raises(HTTPException) as exc:
        cancel_jobs(job_id=first.id, automation_id=None, db=db_session)
    assert exc.value.status_code == 409

    assert cancel_jobs(job_id=None, automation_id=automation.id, db=db_session).cancelled == 1

    with pytest.raises(HTTPException) as exc:
        cancel_jobs(job_id=None, automation_id=None, db=db_session)
    assert exc.value.status_code == 400


def test_cron_secret_is_required_when_configured():
    settings = _settings(CRON_SECRET="s3cret", ENVIRONMENT="production")

    verify_cron_secret(authorization="Bearer s3cret", settings=settings)
    verify_cron_secret(authorization="bearer s3cret", settings=settings)

    for header in (None, "", "Bearer wrong", "s3cret", "bearer%20s3cret", "Bearer s3cret-but-longer"):
        with pytest.raises(HTTPException) as exc:
            verify_cron_secret(authorization=header, settings=settings)
        assert exc.value.status_code == 401


def test_cron_secret_with_percent_sequences_is_compared_verbatim():
    settings = _settings(CRON_SECRET="abc%41def", ENVIRONMENT="production")

    verify_cron_secret(authorization="Bearer abc%41def", settings=settings)

    with pytest.raises(HTTPException) as exc:
        verify_cron_secret(authorization="Bearer abcAdef", settings=settings)
    assert exc.value.status_code == 401


def test_missing_cron_secret_only_allowed_in_development():
    verify_cron_secret(authorization=None, settings=_settings(ENVIRONMENT="development"))

    with pytest.raises(HTTPException) as exc:
        verify_cron_secret(authorization="Bearer anything", settings=_settings(ENVIRONMENT="production"))
    assert exc.value.status_code == 503


def test_worker_endpoint_runs_a_tick(db_session):
    automation = make_automation(db_session)
    create_job(db_session, automation)
    transport = RecordingTransport()

    summary = run_worker_tick(db=db_session, settings=_settings(), transport=transport)

    assert summary.success is True
    assert (summary.total, summary.processed) == (1, 1)
    assert summary.model_dump(by_alias=True)["abandonedCheckoutsProcessed"] == 0
    assert transport.recipients() == ["lead@example.com"]
