"""Per-job orchestration of the categorization pipeline."""

from decimal import Decimal

from sapp.agents.base import BaseGenerationClient
from sapp.agents.prompts import build_prompt
from sapp.agents.validator import validate_result
from sapp.core.errors import CategorizationError, ConfigurationFailure, Rejection, RetryBudgetExhausted
from sapp.core.models import CategorizationResult, CategoryInfo, JobRecord, Person
from sapp.core.settings import Settings
from sapp.core.utils import get_logger, truncate
from sapp.services.committer import PersistenceCommitter
from sapp.services.directory import CategoryCatalog, UserDirectory
from sapp.services.job_store import JobStore

logger = get_logger("sapp.worker")

MAX_PROMPT_LOG_LEN = 80
MAX_REPLY_LOG_LEN = 300


class JobRunner:
    """Drives one job through prompt building, generation, validation and commit."""

    def __init__(
        self,
        settings: Settings,
        job_store: JobStore,
        directory: UserDirectory,
        catalog: CategoryCatalog,
        generation_client: BaseGenerationClient,
        committer: PersistenceCommitter,
    ) -> None:
        """Initialize JobRunner with its collaborators."""
        self.job_store = job_store
        self.directory = directory
        self.catalog = catalog
        self.generation_client = generation_client
        self.committer = committer
        self.max_attempts = settings.max_attempts
        self.tolerance = Decimal(str(settings.amount_tolerance))

    def run_job(self, job_id: int, worker_id: int = 0) -> None:
        """Run a categorization job to a terminal state.

        Rejected replies are retried up to ``max_attempts`` times. Generation, persistence and
        configuration errors end the job on the spot; the error text is stored on the job.
        """
        job = self.job_store.claim(job_id)
        if job is None:
            logger.warning(f"[worker {worker_id}] Job {job_id} was not pending, skipping")
            return
        logger.info(f"[worker {worker_id}] Starting job {job_id}: total={job.total_amount}, buyer={job.buyer_id}")
        attempts = 0
        try:
            submitter = self.directory.get_person(job.buyer_id)
            co_payer = self.directory.get_person(job.shared_with_id) if job.has_co_payer else None
            categories = self.catalog.list_categories()
            if not categories:
                msg = "category catalog is empty"
                raise ConfigurationFailure(msg)

            result: CategorizationResult | None = None
            last_rejection: Rejection | None = None
            for attempt in range(1, self.max_attempts + 1):
                attempts = attempt
                outcome = self._attempt(job, submitter, co_payer, categories, attempt, worker_id)
                if isinstance(outcome, CategorizationResult):
                    result = outcome
                    break
                last_rejection = outcome
            if result is None:
                raise RetryBudgetExhausted(self.max_attempts, last_rejection)

            self.committer.commit(job, result, attempts)
            logger.info(f"[worker {worker_id}] Job {job_id} completed after {attempts} attempt(s)")
        except CategorizationError as exc:
            logger.error(f"[worker {worker_id}] Job {job_id} failed: {exc}")
            self._fail(job_id, str(exc), attempts)
        except Exception as exc:
            logger.exception(f"[worker {worker_id}] Unexpected error processing job {job_id}")
            self._fail(job_id, f"internal error: {exc}", attempts)

    def _attempt(
        self,
        job: JobRecord,
        submitter: Person,
        co_payer: Person | None,
        categories: list[CategoryInfo],
        attempt: int,
        worker_id: int,
    ) -> CategorizationResult | Rejection:
        prompt = build_prompt(job.total_amount, submitter, co_payer, job.prompt, categories)
        logger.info(
            f"[worker {worker_id}] Job {job.id} attempt {attempt}/{self.max_attempts}: "
            f"{truncate(job.prompt, MAX_PROMPT_LOG_LEN)!r}"
        )
        reply = self.generation_client.generate(prompt)
        logger.debug(f"[worker {worker_id}] Job {job.id} reply: {truncate(reply, MAX_REPLY_LOG_LEN)}")
        outcome = validate_result(reply, job, self.tolerance)
        if isinstance(outcome, Rejection):
            logger.warning(f"[worker {worker_id}] Job {job.id} attempt {attempt} rejected: {outcome}")
        return outcome

    def _fail(self, job_id: int, error: str, attempts: int) -> None:
        try:
            self.job_store.mark_failed(job_id, error, attempts)
        except Exception:
            logger.exception(f"Could not record failure of job {job_id}")
