"""CategorizingPool: the job queue and the fixed set of worker threads that drain it.

Jobs are created as pending rows first and only then handed to the queue, so a job that cannot be
enqueued is never lost: it stays pending in the database and the periodic sweep queues it once there
is room. The queue is bounded; a full queue blocks ``add_job`` for up to ``enqueue_timeout_seconds``
before ``QueueFullError`` is raised. Recovery and the sweep never block on a full queue.
"""

import queue
import threading
from datetime import timedelta

from sapp.core.errors import QueueFullError
from sapp.core.models import JobSubmission
from sapp.core.settings import Settings
from sapp.core.utils import get_logger, utcnow
from sapp.services.job_store import JobStore
from sapp.workers.job_runner import JobRunner

logger = get_logger("sapp.pool")

_STOP = None
STALE_JOB_ERROR = "job was interrupted while processing (worker stopped before finishing)"


class CategorizingPool:
    """Fixed-size pool of worker threads consuming job ids from one FIFO queue."""

    def __init__(self, settings: Settings, job_store: JobStore, runner: JobRunner) -> None:
        self.job_store = job_store
        self.runner = runner
        self.num_workers = settings.num_workers
        self.enqueue_timeout = settings.enqueue_timeout_seconds
        self.stale_after = timedelta(seconds=settings.stale_job_timeout_seconds)
        self.sweep_interval = settings.sweep_interval_seconds
        self._queue: queue.Queue[int | None] = queue.Queue(maxsize=settings.queue_size)
        self._threads: list[threading.Thread] = []
        self._sweeper: threading.Thread | None = None
        self._stopping = threading.Event()
        self._lock = threading.Lock()
        # Ids sitting in the queue or being run by a worker.
        self._tracked: set[int] = set()
        self._tracked_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._threads)

    def start(self) -> None:
        """Launch the worker threads and, when enabled, the sweep thread."""
        with self._lock:
            if self._threads:
                return
            self._stopping.clear()
            for worker_id in range(1, self.num_workers + 1):
                thread = threading.Thread(
                    target=self._worker, args=(worker_id,), name=f"categorizer-{worker_id}", daemon=True
                )
                thread.start()
                self._threads.append(thread)
            if self.sweep_interval > 0:
                self._sweeper = threading.Thread(target=self._sweep_loop, name="categorizer-sweeper", daemon=True)
                self._sweeper.start()
        logger.info(f"Categorization pool workers started: {self.num_workers}")

    def stop(self, timeout: float | None = None) -> None:
        """Let workers finish their current job, then stop them."""
        self._stopping.set()
        with self._lock:
            threads, self._threads = self._threads, []
            sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.join(timeout)
        for _ in threads:
            self._queue.put(_STOP)
        for thread in threads:
            thread.join(timeout)
        logger.info("Categorization pool stopped")

    def add_job(self, submission: JobSubmission) -> int:
        """Create a pending job and hand it to the workers. Returns the job id."""
        job_id = self.job_store.create_job(submission)
        self.enqueue(job_id)
        logger.info(f"Job {job_id} queued (amount={submission.total_amount}, buyer={submission.buyer_id})")
        return job_id

    def enqueue(self, job_id: int) -> None:
        if not self._offer(job_id, timeout=self.enqueue_timeout):
            msg = f"job queue is full, job {job_id} stays pending"
            logger.error(msg)
            raise QueueFullError(msg)

    def recover(self) -> list[int]:
        """Fail every job a previous run left in processing, then queue pending jobs.

        Meant to run once at startup, before the workers start: no job can be in processing on behalf
        of this process yet, so every such row is orphaned. Returns the ids that were queued.
        """
        stale = self.job_store.fail_stale_processing(None, STALE_JOB_ERROR)
        if stale:
            logger.warning(f"Marked {len(stale)} interrupted processing job(s) as failed: {stale}")
        return self.requeue_pending()

    def sweep(self) -> list[int]:
        """Fail jobs stuck in processing past the stale timeout and queue pending jobs that fit."""
        stale = self.job_store.fail_stale_processing(utcnow() - self.stale_after, STALE_JOB_ERROR)
        if stale:
            logger.warning(f"Marked {len(stale)} stale processing job(s) as failed: {stale}")
        return self.requeue_pending()

    def requeue_pending(self) -> list[int]:
        """Queue pending jobs that are not queued yet, stopping at a full queue. Returns the ids queued."""
        pending = self.job_store.pending_job_ids()
        with self._tracked_lock:
            candidates = [job_id for job_id in pending if job_id not in self._tracked]
        queued = []
        for job_id in candidates:
            if not self._offer(job_id):
                left = len(candidates) - len(queued)
                logger.info(f"Job queue is full, {left} pending job(s) left for the next sweep")
                break
            queued.append(job_id)
        if queued:
            logger.info(f"Re-enqueued {len(queued)} pending job(s)")
        return queued

    def wait_idle(self) -> None:
        """Block until every queued job has been handled."""
        self._queue.join()

    def _offer(self, job_id: int, timeout: float | None = None) -> bool:
        """Put a job id on the queue unless it is already tracked. Without a timeout, never block."""
        with self._tracked_lock:
            if job_id in self._tracked:
                return True
            self._tracked.add(job_id)
        try:
            self._queue.put(job_id, block=timeout is not None, timeout=timeout)
        except queue.Full:
            with self._tracked_lock:
                self._tracked.discard(job_id)
            return False
        return True

    def _sweep_loop(self) -> None:
        while not self._stopping.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Job sweep failed")

    def _worker(self, worker_id: int) -> None:
        logger.info(f"Starting worker {worker_id}")
        while True:
            job_id = self._queue.get()
            try:
                if job_id is _STOP:
                    break
                logger.info(f"Worker {worker_id} picked up job {job_id}")
                self.runner.run_job(job_id, worker_id)
            except Exception:
                logger.exception(f"Worker {worker_id} crashed on job {job_id}")
            finally:
                if job_id is not _STOP:
                    with self._tracked_lock:
                        self._tracked.discard(job_id)
                self._queue.task_done()
        logger.info(f"Worker {worker_id} shutting down")
