"""PersistenceCommitter: writes a validated categorization result in one transaction.

For every line item a spending, a provenance link to the job and an attribution record are
inserted; the job is flipped to completed in the same transaction. Any failure rolls back all of it,
so no partial line items are ever visible.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sapp.core.db import AICategorizedSpending, Category, Spending, UserSpending
from sapp.core.errors import PersistenceFailure, UnknownCategory
from sapp.core.models import ApportionMode, CategorizationResult, JobRecord, LineItem
from sapp.core.utils import get_logger, utcnow
from sapp.services.job_store import JobStore

DEFAULT_DESCRIPTION = "AI Categorized"

logger = get_logger("sapp.committer")


class PersistenceCommitter:
    """The only writer of spending rows produced by categorization jobs."""

    def __init__(self, session_factory: sessionmaker, job_store: JobStore) -> None:
        self.Session = session_factory
        self.job_store = job_store

    def commit(self, job: JobRecord, result: CategorizationResult, attempts: int) -> list[int]:
        """Persist the result and complete the job atomically. Returns the new spending ids."""
        session = self.Session()
        try:
            category_ids = self._resolve_categories(session, result.line_items)
            effective_date = self.effective_date(job)
            settled_at = utcnow() if job.pre_settled else None
            spending_ids = [
                self._insert_line_item(session, job, item, category_ids[item.category], effective_date, settled_at)
                for item in result.line_items
            ]
            if not self.job_store.mark_completed(session, job.id, result, attempts):
                msg = f"job {job.id} is no longer processing"
                raise PersistenceFailure(msg)
            session.commit()
        except PersistenceFailure:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            msg = f"db error while committing job {job.id}: {exc}"
            raise PersistenceFailure(msg) from exc
        finally:
            session.close()
        logger.info(f"Job {job.id}: committed {len(spending_ids)} spending(s) {spending_ids}")
        return spending_ids

    @staticmethod
    def effective_date(job: JobRecord) -> datetime:
        """The date shown in history: the explicit transaction date, else when the job was submitted."""
        return job.transaction_date or job.created_at

    def _resolve_categories(self, session: Session, items: list[LineItem]) -> dict[str, int]:
        names = {item.category for item in items}
        rows = session.execute(select(Category.id, Category.name).where(Category.name.in_(names))).all()
        category_ids = {row.name: row.id for row in rows}
        for name in sorted(names):
            if name not in category_ids:
                logger.warning(f"Category name from the generated reply is not in the catalog: {name!r}")
                raise UnknownCategory(name)
        return category_ids

    def _insert_line_item(
        self,
        session: Session,
        job: JobRecord,
        item: LineItem,
        category_id: int,
        effective_date: datetime,
        settled_at: datetime | None,
    ) -> int:
        spending = Spending(
            amount=item.amount,
            description=item.description or DEFAULT_DESCRIPTION,
            category_id=category_id,
            made_by=job.buyer_id,
            spending_date=effective_date,
        )
        session.add(spending)
        session.flush()

        session.add(AICategorizedSpending(spending_id=spending.id, job_id=job.id))

        shares_cost = item.apportion_mode in (ApportionMode.SHARED, ApportionMode.OTHER)
        session.add(
            UserSpending(
                spending_id=spending.id,
                buyer=job.buyer_id,
                shared_with=job.shared_with_id if shares_cost else None,
                shared_user_takes_all=item.apportion_mode == ApportionMode.OTHER,
                settled_at=settled_at,
            )
        )
        session.flush()
        return spending.id
