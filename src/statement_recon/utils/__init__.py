"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    InputFormatError,
    EmptyDocument,
    HeaderNotFound,
    YearRequired,
    TotalsMismatch,
    ParseCancelled,
    MatchCandidateConflict,
    DeleteBlocked,
    InvalidTransition,
    NotFoundError,
    ConfigurationError,
    ValidationError,
    ReportGenerationError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    "ReconciliationError",
    "InputFormatError",
    "EmptyDocument",
    "HeaderNotFound",
    "YearRequired",
    "TotalsMismatch",
    "ParseCancelled",
    "MatchCandidateConflict",
    "DeleteBlocked",
    "InvalidTransition",
    "NotFoundError",
    "ConfigurationError",
    "ValidationError",
    "ReportGenerationError",
    "setup_logging",
    "get_logger",
]
