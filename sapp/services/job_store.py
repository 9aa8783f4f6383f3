"""Durable storage of categorization jobs and their lifecycle.

Every status write is a conditional UPDATE on the expected current status, so transitions stay
monotonic (pending -> processing -> completed | failed) even if two writers race.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from sapp.core.db import AICategorizedSpending, CategorizationJob, Category, Spending, UserSpending
from sapp.core.models import (
    ApportionMode,
    CategorizationResult,
    CommittedLineItem,
    JobRecord,
    JobState,
    JobStatus,
    JobSubmission,
)
from sapp.core.utils import get_logger, utcnow

logger = get_logger("sapp.store")


class JobStore:
    """Owns the rows of the ai_categorization_jobs table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.Session = session_factory

    def create_job(self, submission: JobSubmission) -> int:
        """Insert a pending job and return its id."""
        now = utcnow()
        job = CategorizationJob(
            buyer_id=submission.buyer_id,
            shared_with_id=submission.shared_with_id,
            prompt=submission.prompt,
            total_amount=submission.total_amount,
            transaction_date=submission.transaction_date,
            pre_settled=submission.pre_settled,
            sharing_hint=submission.sharing_hint.value if submission.sharing_hint else None,
            status=JobState.PENDING.value,
            created_at=now,
            status_updated_at=now,
        )
        session = self.Session()
        try:
            session.add(job)
            session.commit()
            return job.id
        finally:
            session.close()

    def get_job(self, job_id: int) -> JobRecord | None:
        with self.Session() as session:
            job = session.get(CategorizationJob, job_id)
            if job is None:
                return None
            return JobRecord.model_validate(job)

    def claim(self, job_id: int) -> JobRecord | None:
        """Move a pending job to processing. Returns None if someone else already moved it."""
        if not self._transition(job_id, JobState.PENDING, JobState.PROCESSING):
            return None
        return self.get_job(job_id)

    def mark_completed(self, session: Session, job_id: int, result: CategorizationResult, attempts: int) -> bool:
        """Flag a processing job as completed inside the caller's transaction. Does not commit."""
        stmt = (
            update(CategorizationJob)
            .where(CategorizationJob.id == job_id, CategorizationJob.status == JobState.PROCESSING.value)
            .values(
                status=JobState.COMPLETED.value,
                error_message=None,
                is_ambiguity_flagged=result.is_ambiguity_flagged,
                ambiguity_flag_reason=result.ambiguity_flag_reason or None,
                attempts=attempts,
                status_updated_at=utcnow(),
            )
        )
        return session.execute(stmt).rowcount == 1

    def mark_failed(self, job_id: int, error: str, attempts: int | None = None) -> bool:
        """Move a processing job to failed and record the error text."""
        values: dict = {"error_message": error}
        if attempts is not None:
            values["attempts"] = attempts
        return self._transition(job_id, JobState.PROCESSING, JobState.FAILED, **values)

    def _transition(self, job_id: int, expected: JobState, new: JobState, **values: object) -> bool:
        stmt = (
            update(CategorizationJob)
            .where(CategorizationJob.id == job_id, CategorizationJob.status == expected.value)
            .values(status=new.value, status_updated_at=utcnow(), **values)
        )
        session = self.Session()
        try:
            changed = session.execute(stmt).rowcount == 1
            session.commit()
        finally:
            session.close()
        if changed:
            logger.debug(f"Job {job_id}: {expected.value} -> {new.value}")
        else:
            logger.warning(f"Job {job_id}: refused transition {expected.value} -> {new.value}")
        return changed

    def pending_job_ids(self) -> list[int]:
        """Ids of jobs still waiting for a worker, oldest first."""
        stmt = (
            select(CategorizationJob.id)
            .where(CategorizationJob.status == JobState.PENDING.value)
            .order_by(CategorizationJob.created_at, CategorizationJob.id)
        )
        with self.Session() as session:
            return list(session.execute(stmt).scalars())

    def fail_stale_processing(self, older_than: datetime | None, reason: str) -> list[int]:
        """Fail jobs stuck in processing since before ``older_than``, or all of them when it is None.

        Returns their ids.
        """
        stmt = select(CategorizationJob.id).where(CategorizationJob.status == JobState.PROCESSING.value)
        if older_than is not None:
            stmt = stmt.where(CategorizationJob.status_updated_at < older_than)
        session = self.Session()
        try:
            stale = list(session.execute(stmt).scalars())
            if stale:
                session.execute(
                    update(CategorizationJob)
                    .where(
                        CategorizationJob.id.in_(stale),
                        CategorizationJob.status == JobState.PROCESSING.value,
                    )
                    .values(status=JobState.FAILED.value, error_message=reason, status_updated_at=utcnow())
                )
            session.commit()
            return stale
        finally:
            session.close()

    def get_status(self, job_id: int) -> JobStatus | None:
        """Return the job's status and, once completed, its committed line items."""
        job = self.get_job(job_id)
        if job is None:
            return None
        status = JobStatus(
            job_id=job.id,
            status=job.status,
            created_at=job.created_at,
            status_updated_at=job.status_updated_at,
            error=job.error_message,
            attempts=job.attempts,
            is_ambiguity_flagged=job.is_ambiguity_flagged,
            ambiguity_flag_reason=job.ambiguity_flag_reason,
        )
        if job.status == JobState.COMPLETED:
            status.line_items = self.committed_line_items(job_id)
        return status

    def committed_line_items(self, job_id: int) -> list[CommittedLineItem]:
        stmt = (
            select(Spending, Category.name, UserSpending)
            .join(AICategorizedSpending, AICategorizedSpending.spending_id == Spending.id)
            .join(Category, Category.id == Spending.category_id)
            .outerjoin(UserSpending, UserSpending.spending_id == Spending.id)
            .where(AICategorizedSpending.job_id == job_id)
            .order_by(Spending.id)
        )
        with self.Session() as session:
            rows = session.execute(stmt).all()
        items = []
        for spending, category_name, attribution in rows:
            items.append(
                CommittedLineItem(
                    spending_id=spending.id,
                    category=category_name,
                    amount=spending.amount,
                    description=spending.description or "",
                    apportion_mode=_apportion_mode(attribution),
                    spending_date=spending.spending_date,
                    settled_at=attribution.settled_at if attribution else None,
                )
            )
        return items


def _apportion_mode(attribution: UserSpending | None) -> ApportionMode:
    if attribution is None or attribution.shared_with is None:
        return ApportionMode.ALONE
    if attribution.shared_user_takes_all:
        return ApportionMode.OTHER
    return ApportionMode.SHARED
