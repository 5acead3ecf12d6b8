"""
Background parse jobs.

Parsing a scanned statement can take a while, so imports can be run on a
worker pool. A job reports exactly one terminal outcome through the
callback.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from threading import Event
from typing import Any, Callable, Optional
import uuid

from ..models.reconciliation import IngestionResult
from ..utils.exceptions import ParseCancelled
from ..utils.logging_config import get_logger
from .ingestion import IngestionService

logger = get_logger("jobs")


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


@dataclass
class JobOutcome:
    """Terminal result of a parse job."""

    job_id: str
    state: JobState
    result: Optional[IngestionResult] = None
    error: Optional[BaseException] = None


class ParseJob:
    """Handle on a submitted import."""

    def __init__(self, job_id: str, filename: str):
        self.job_id = job_id
        self.filename = filename
        self.cancel_event = Event()
        self.state = JobState.PENDING
        self.future: Optional[Future] = None

    def cancel(self) -> None:
        """
        Ask the job to stop.

        A job that has not started is dropped; a running job stops at the
        next row. A job that already stored its lines is not undone.
        """
        self.cancel_event.set()
        if self.future is not None:
            self.future.cancel()

    def result(self, timeout: Optional[float] = None) -> IngestionResult:
        """Wait for the job and return its result, re-raising its error."""
        if self.future is None:
            raise RuntimeError(f"Job {self.job_id} was never started")
        return self.future.result(timeout)


class ParseJobRunner:
    """
    Runs imports on a thread pool.

    Work on different accounts proceeds in parallel; the ingestion service
    serializes work on the same account.
    """

    def __init__(
        self,
        service: IngestionService,
        max_workers: int = 2,
        on_complete: Optional[Callable[[JobOutcome], None]] = None,
    ):
        """
        Initialize the runner.

        Args:
            service: Ingestion service doing the work
            max_workers: Size of the worker pool
            on_complete: Called once per job with its terminal outcome
        """
        self.service = service
        self.on_complete = on_complete
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="parse-job")

    def submit(self, account_id: str, content: bytes, filename: str, **options: Any) -> ParseJob:
        """
        Queue an import.

        Args:
            account_id: Bank account to import into
            content: Raw file bytes
            filename: Original file name
            **options: Passed to IngestionService.ingest (year, duplicate_policy, ...)

        Returns:
            Job handle
        """
        job = ParseJob(uuid.uuid4().hex[:12], filename)

        def run() -> IngestionResult:
            if job.cancel_event.is_set():
                raise ParseCancelled(f"Job {job.job_id} cancelled before it started")
            job.state = JobState.RUNNING
            logger.info(f"Job {job.job_id}: importing {filename} into {account_id}")
            return self.service.ingest(
                account_id, content, filename, cancel_event=job.cancel_event, **options
            )

        job.future = self.executor.submit(run)
        job.future.add_done_callback(lambda future: self._finish(job, future))
        return job

    def _finish(self, job: ParseJob, future: Future) -> None:
        outcome = JobOutcome(job_id=job.job_id, state=JobState.SUCCEEDED)
        if future.cancelled():
            outcome.state = JobState.CANCELLED
        else:
            error = future.exception()
            if isinstance(error, ParseCancelled):
                outcome.state = JobState.CANCELLED
                outcome.error = error
            elif error is not None:
                outcome.state = JobState.FAILED
                outcome.error = error
            else:
                outcome.result = future.result()

        job.state = outcome.state
        if outcome.state is JobState.FAILED:
            logger.error(f"Job {job.job_id} failed: {outcome.error}")
        else:
            logger.info(f"Job {job.job_id} {outcome.state.value}")

        if self.on_complete is not None:
            self.on_complete(outcome)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def __enter__(self) -> "ParseJobRunner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
