"""Application services: ingestion, reconciliation, ledger and background jobs."""

from .dedup import DeduplicationFilter
from .ingestion import IngestionService
from .jobs import JobOutcome, JobState, ParseJob, ParseJobRunner
from .ledger import LedgerService
from .reconciliation import ReconciliationService

__all__ = [
    "DeduplicationFilter",
    "IngestionService",
    "JobOutcome",
    "JobState",
    "ParseJob",
    "ParseJobRunner",
    "LedgerService",
    "ReconciliationService",
]
