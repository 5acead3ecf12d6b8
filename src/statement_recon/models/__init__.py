"""Data models for statement reconciliation."""

from .statement import (
    SourceFormat,
    TransactionType,
    RowIssue,
    ParsedLine,
    StatementMetadata,
    ParseStats,
    ParseResult,
)
from .reconciliation import (
    ReconciliationStatus,
    CandidateKind,
    CandidateRef,
    DuplicatePolicy,
    BankAccount,
    StatementLine,
    MatchCandidate,
    MatchDecision,
    AutoMatchResult,
    DuplicateReport,
    IngestionResult,
    ClearPreview,
    ClearResult,
    LineStats,
)

__all__ = [
    "SourceFormat",
    "TransactionType",
    "RowIssue",
    "ParsedLine",
    "StatementMetadata",
    "ParseStats",
    "ParseResult",
    "ReconciliationStatus",
    "CandidateKind",
    "CandidateRef",
    "DuplicatePolicy",
    "BankAccount",
    "StatementLine",
    "MatchCandidate",
    "MatchDecision",
    "AutoMatchResult",
    "DuplicateReport",
    "IngestionResult",
    "ClearPreview",
    "ClearResult",
    "LineStats",
]
