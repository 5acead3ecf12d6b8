"""
Auto-Matcher: links unmatched statement lines to accounting records.
Exact amount, date within a window, confidence from corroborating evidence.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional
import logging

from ..config import MatchingSettings
from ..models.reconciliation import (
    AutoMatchResult,
    CandidateKind,
    CandidateRef,
    MatchCandidate,
    MatchDecision,
    ReconciliationStatus,
    StatementLine,
)
from .strategies import (
    DateProximityRule,
    ExactAmountRule,
    ScoringRule,
    TextOverlapRule,
    date_variance,
)

logger = logging.getLogger(__name__)

KIND_ORDER = {kind: idx for idx, kind in enumerate(CandidateKind)}


@dataclass
class ScoredCandidate:
    """A candidate that passed the hard filters, with its confidence."""

    candidate: MatchCandidate
    confidence: int
    date_variance_days: int
    reason: str

    def sort_key(self) -> tuple:
        """Highest confidence, then closest date, then oldest record."""
        return (
            -self.confidence,
            self.date_variance_days,
            self.candidate.created_at or datetime.min,
            KIND_ORDER[self.candidate.ref.kind],
            self.candidate.ref.id,
        )


class AutoMatcher:
    """
    Confidence-tiered matcher over an account's unmatched lines.

    Pure: it reads lines and candidates and returns decisions. Applying
    them and persisting is the caller's job, inside one transaction.
    """

    def __init__(self, settings: MatchingSettings):
        """
        Initialize the matcher.

        Args:
            settings: Matching thresholds and window
        """
        self.settings = settings
        self.rules: list[ScoringRule] = [
            ExactAmountRule(),
            DateProximityRule(settings.date_window_days),
            TextOverlapRule(settings.strong_similarity, settings.weak_similarity),
        ]

    def is_eligible(self, line: StatementLine, candidate: MatchCandidate) -> bool:
        """Hard filters: exact amount, matching direction, date inside the window."""
        if candidate.amount != line.amount:
            return False
        if candidate.direction is not None and candidate.direction is not line.type:
            return False
        return date_variance(line, candidate) <= self.settings.date_window_days

    def score(self, line: StatementLine, candidate: MatchCandidate) -> Optional[ScoredCandidate]:
        if not self.is_eligible(line, candidate):
            return None
        total = 0
        reasons: list[str] = []
        for rule in self.rules:
            points, reason = rule.score(line, candidate)
            total += points
            if reason:
                reasons.append(reason)
        return ScoredCandidate(
            candidate=candidate,
            confidence=min(total, 100),
            date_variance_days=date_variance(line, candidate),
            reason=", ".join(reasons),
        )

    def classify(self, confidence: int) -> ReconciliationStatus:
        if confidence >= self.settings.matched_threshold:
            return ReconciliationStatus.MATCHED
        if confidence >= self.settings.suggested_threshold:
            return ReconciliationStatus.SUGGESTED
        return ReconciliationStatus.UNMATCHED

    def best_candidate(
        self, line: StatementLine, pool: Iterable[MatchCandidate]
    ) -> Optional[ScoredCandidate]:
        scored = [s for s in (self.score(line, c) for c in pool) if s is not None]
        if not scored:
            return None
        return min(scored, key=ScoredCandidate.sort_key)

    def run(
        self,
        lines: list[StatementLine],
        candidates: list[MatchCandidate],
        consumed: Optional[set[CandidateRef]] = None,
    ) -> AutoMatchResult:
        """
        Decide matches for every unmatched line.

        Lines are visited by date, then by id. A candidate is consumed by
        the first line it is matched or suggested for.

        Args:
            lines: All lines of the account
            candidates: Candidate records around the lines' dates
            consumed: Candidates already linked or suggested elsewhere

        Returns:
            Match result with one decision per newly matched or suggested line
        """
        start_time = datetime.now()
        consumed = set(consumed or ())
        pool = {c.ref: c for c in candidates if c.ref not in consumed}
        result = AutoMatchResult()

        pending = sorted(
            (line for line in lines if line.status is ReconciliationStatus.UNMATCHED),
            key=lambda line: (line.transaction_date, line.id),
        )
        result.skipped_count = sum(1 for line in lines if line.status.is_resolved)

        for line in pending:
            best = self.best_candidate(line, pool.values())
            if best is None:
                result.unmatched_count += 1
                continue

            status = self.classify(best.confidence)
            if status is ReconciliationStatus.UNMATCHED:
                result.unmatched_count += 1
                continue

            del pool[best.candidate.ref]
            result.decisions.append(
                MatchDecision(
                    line_id=line.id,
                    candidate=best.candidate.ref,
                    confidence=best.confidence,
                    status=status,
                    reason=best.reason,
                    date_variance_days=best.date_variance_days,
                )
            )
            if status is ReconciliationStatus.MATCHED:
                result.matched_count += 1
            else:
                result.suggested_count += 1
            logger.debug(
                f"Line {line.id}: {status.value} {best.candidate.ref} "
                f"({best.confidence}%: {best.reason})"
            )

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Auto-match complete in {elapsed:.2f}s: {result.matched_count} matched, "
            f"{result.suggested_count} suggested, {result.unmatched_count} unmatched, "
            f"{result.skipped_count} already resolved"
        )
        return result
