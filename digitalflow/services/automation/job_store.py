"""Durable queue of scheduled automation jobs.

Every state change is a single ``UPDATE ... WHERE id = :id AND status IN
(...)`` followed by a commit, so a transition only happens if the row is still
in the expected state. The boolean returned by each transition tells the
caller whether it won.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, joinedload

from digitalflow.core.errors import JobNotCancellableError, JobNotFoundError
from digitalflow.db.retry import StoreRetryPolicy
from digitalflow.models.automation.automation_job_model import (
    ACTIVE_JOB_STATUSES,
    AutomationJob,
    CancelReason,
    JobStatus,
)
from digitalflow.models.automation.automation_model import Automation, TriggerType

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self, db: Session, retry: Optional[StoreRetryPolicy] = None):
        self.db = db
        self.retry = retry or StoreRetryPolicy()

    # ------------------------------------------------------------------
    # Write path (scheduler)
    # ------------------------------------------------------------------
    def find_active(self, automation_id: int, recipient_email: str) -> Optional[AutomationJob]:
        """Return the pending/processing job for this automation and recipient, if any."""

        def _query() -> Optional[AutomationJob]:
            return (
                self.db.query(AutomationJob)
                .filter(
                    AutomationJob.automation_id == automation_id,
                    AutomationJob.recipient_email == recipient_email,
                    AutomationJob.status.in_(ACTIVE_JOB_STATUSES),
                )
                .first()
            )

        return self.retry.run(self.db, _query, description="find_active_job")

    def create(
        self,
        *,
        automation_id: int,
        recipient_email: str,
        recipient_name: Optional[str],
        recipient_data: Dict[str, Any],
        scheduled_for: datetime,
        created_at: datetime,
    ) -> AutomationJob:
        """Insert a new pending job. Integrity errors propagate to the caller."""

        def _insert() -> AutomationJob:
            job = AutomationJob(
                automation_id=automation_id,
                recipient_email=recipient_email,
                recipient_name=recipient_name,
                recipient_data=recipient_data,
                scheduled_for=scheduled_for,
                status=JobStatus.PENDING.value,
                attempts=0,
                created_at=created_at,
            )
            self.db.add(job)
            self.db.commit()
            self.db.refresh(job)
            return job

        return self.retry.run(self.db, _insert, description="create_job")

    # ------------------------------------------------------------------
    # Read/execute path (worker)
    # ------------------------------------------------------------------
    def fetch_due(self, now: datetime, limit: int, max_attempts: int) -> List[AutomationJob]:
        """Pending jobs whose time has come, oldest due first."""

        def _query() -> List[AutomationJob]:
            return (
                self.db.query(AutomationJob)
                .options(joinedload(AutomationJob.automation))
                .filter(
                    AutomationJob.status == JobStatus.PENDING.value,
                    AutomationJob.scheduled_for <= now,
                    AutomationJob.attempts < max_attempts,
                )
                .order_by(AutomationJob.scheduled_for.asc(), AutomationJob.id.asc())
                .limit(limit)
                .all()
            )

        return self.retry.run(self.db, _query, description="fetch_due_jobs")

    def claim(self, job_id: int, now: datetime, max_attempts: int) -> bool:
        """Atomically move a due job from pending to processing and count the attempt."""

        statement = (
            update(AutomationJob)
            .where(
                AutomationJob.id == job_id,
                AutomationJob.status == JobStatus.PENDING.value,
                AutomationJob.scheduled_for <= now,
                AutomationJob.attempts < max_attempts,
            )
            .values(status=JobStatus.PROCESSING.value, attempts=AutomationJob.attempts + 1)
        )
        return self._execute_guarded(statement, "claim_job")

    def mark_completed(self, job_id: int, now: datetime) -> bool:
        return self._transition(
            job_id,
            (JobStatus.PROCESSING.value,),
            {"status": JobStatus.COMPLETED.value, "error_message": None, "processed_at": now},
            "complete_job",
        )

    def mark_failed(self, job_id: int, error_message: str, now: datetime) -> bool:
        return self._transition(
            job_id,
            (JobStatus.PROCESSING.value,),
            {"status": JobStatus.FAILED.value, "error_message": error_message, "processed_at": now},
            "fail_job",
        )

    def mark_cancelled(self, job_id: int, reason: CancelReason, error_message: str, now: datetime) -> bool:
        return self._transition(
            job_id,
            (JobStatus.PROCESSING.value,),
            {
                "status": JobStatus.CANCELLED.value,
                "cancel_reason": reason.value,
                "error_message": error_message,
                "processed_at": now,
            },
            "cancel_processing_job",
        )

    def release_for_retry(self, job_id: int, error_message: str) -> bool:
        """Hand a failed attempt back to the queue for the next tick."""
        return self._transition(
            job_id,
            (JobStatus.PROCESSING.value,),
            {"status": JobStatus.PENDING.value, "error_message": error_message},
            "release_job",
        )

    # ------------------------------------------------------------------
    # Operator-facing inspection and cancellation
    # ------------------------------------------------------------------
    def get(self, job_id: int) -> Optional[AutomationJob]:
        return self.retry.run(self.db, lambda: self.db.get(AutomationJob, job_id), description="get_job")

    def list_jobs(
        self,
        automation_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[AutomationJob]:
        def _query() -> List[AutomationJob]:
            query = self.db.query(AutomationJob).options(joinedload(AutomationJob.automation))
            if automation_id is not None:
                query = query.filter(AutomationJob.automation_id == automation_id)
            if status:
                query = query.filter(AutomationJob.status == status)
            return query.order_by(AutomationJob.scheduled_for.desc(), AutomationJob.id.desc()).limit(limit).all()

        return self.retry.run(self.db, _query, description="list_jobs")

    def count_by_status(self, automation_id: Optional[int] = None) -> Dict[str, int]:
        def _query() -> Dict[str, int]:
            statement = select(AutomationJob.status, func.count(AutomationJob.id)).group_by(AutomationJob.status)
            if automation_id is not None:
                statement = statement.where(AutomationJob.automation_id == automation_id)
            return {str(status): int(count) for status, count in self.db.execute(statement)}

        return self.retry.run(self.db, _query, description="count_jobs_by_status")

    def count_pending_by_automation(self, automation_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(automation_ids)
        if not ids:
            return {}

        def _query() -> Dict[int, int]:
            statement = (
                select(AutomationJob.automation_id, func.count(AutomationJob.id))
                .where(AutomationJob.automation_id.in_(ids))
                .where(AutomationJob.status == JobStatus.PENDING.value)
                .group_by(AutomationJob.automation_id)
            )
            return {int(automation_id): int(count) for automation_id, count in self.db.execute(statement)}

        return self.retry.run(self.db, _query, description="count_pending_jobs")

    def cancel_job(self, job_id: int, reason: CancelReason = CancelReason.OPERATOR) -> AutomationJob:
        """Cancel one pending job. Jobs in any other state are left alone."""

        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        cancelled = self._transition(
            job_id,
            (JobStatus.PENDING.value,),
            {"status": JobStatus.CANCELLED.value, "cancel_reason": reason.value},
            "cancel_job",
        )
        self.db.refresh(job)
        if not cancelled:
            raise JobNotCancellableError(job_id, job.status)

        logger.info("Job %s annulé (%s)", job_id, reason.value)
        return job

    def cancel_pending_for_automation(
        self, automation_id: int, reason: CancelReason = CancelReason.OPERATOR
    ) -> int:
        statement = (
            update(AutomationJob)
            .where(
                AutomationJob.automation_id == automation_id,
                AutomationJob.status == JobStatus.PENDING.value,
            )
            .values(status=JobStatus.CANCELLED.value, cancel_reason=reason.value)
        )
        count = self._execute_count(statement, "cancel_automation_jobs")
        logger.info("%s job(s) en attente annulé(s) pour l'automation %s", count, automation_id)
        return count

    def cancel_pending_for_recipient(
        self,
        recipient_email: str,
        trigger_type: TriggerType,
        reason: CancelReason,
    ) -> int:
        """Cancel the recipient's pending jobs owned by automations of ``trigger_type``."""

        automation_ids = select(Automation.id).where(Automation.trigger_type == trigger_type.value)
        statement = (
            update(AutomationJob)
            .where(
                AutomationJob.recipient_email == recipient_email,
                AutomationJob.status == JobStatus.PENDING.value,
                AutomationJob.automation_id.in_(automation_ids),
            )
            .values(status=JobStatus.CANCELLED.value, cancel_reason=reason.value)
        )
        return self._execute_count(statement, "cancel_recipient_jobs")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _transition(self, job_id: int, from_statuses: Iterable[str], values: Dict[str, Any], description: str) -> bool:
        statement = (
            update(AutomationJob)
            .where(AutomationJob.id == job_id, AutomationJob.status.in_(tuple(from_statuses)))
            .values(**values)
        )
        return self._execute_guarded(statement, description)

    def _execute_guarded(self, statement, description: str) -> bool:
        return self._execute_count(statement, description) == 1

    def _execute_count(self, statement, description: str) -> int:
        def _op() -> int:
            result = self.db.execute(statement.execution_options(synchronize_session=False))
            self.db.commit()
            return result.rowcount or 0

        return self.retry.run(self.db, _op, description=description)
