"""
Scoring rules for auto-matching statement lines to accounting records.
Each rule contributes points towards a 0-100 confidence.
"""

from abc import ABC, abstractmethod
from difflib import SequenceMatcher
import re

from ..models.reconciliation import MatchCandidate, StatementLine


def date_variance(line: StatementLine, candidate: MatchCandidate) -> int:
    return abs((line.transaction_date - candidate.candidate_date).days)


def normalize_text(text: str) -> str:
    """Normalize free text for comparison."""
    # Convert to lowercase
    text = text.lower()
    # Remove special characters
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    # Normalize whitespace
    return " ".join(text.split())


class ScoringRule(ABC):
    """Abstract base class for scoring rules."""

    @abstractmethod
    def score(self, line: StatementLine, candidate: MatchCandidate) -> tuple[int, str]:
        """
        Score one candidate against a statement line.

        Args:
            line: Statement line being matched
            candidate: Accounting record under consideration

        Returns:
            Tuple of (points, reason string); reason is empty for zero points
        """
        pass


class ExactAmountRule(ScoringRule):
    """
    Exact amount equality. Approximate amounts never score.
    """

    points = 60

    def score(self, line: StatementLine, candidate: MatchCandidate) -> tuple[int, str]:
        if candidate.amount == line.amount:
            return self.points, "exact amount"
        return 0, ""


class DateProximityRule(ScoringRule):
    """
    Points by how many days separate the line and the record.
    """

    # (max days apart, points), tightest first
    BANDS = ((0, 30), (1, 20), (3, 15), (7, 10))

    def __init__(self, window_days: int = 7):
        """
        Initialize with the search window.

        Args:
            window_days: Records further apart than this never score
        """
        self.window_days = window_days

    def score(self, line: StatementLine, candidate: MatchCandidate) -> tuple[int, str]:
        days = date_variance(line, candidate)
        if days > self.window_days:
            return 0, ""
        for max_days, points in self.BANDS:
            if days <= max_days:
                return points, "same day" if days == 0 else f"{days} day(s) apart"
        # Window configured wider than the last band
        return self.BANDS[-1][1], f"{days} day(s) apart"


class TextOverlapRule(ScoringRule):
    """
    Corroboration from the reference or the description.
    """

    points = 15

    def __init__(self, strong_similarity: float = 0.85, weak_similarity: float = 0.6):
        """
        Initialize with similarity thresholds.

        Args:
            strong_similarity: Ratio earning full points
            weak_similarity: Ratio earning partial points
        """
        self.strong_similarity = strong_similarity
        self.weak_similarity = weak_similarity

    def score(self, line: StatementLine, candidate: MatchCandidate) -> tuple[int, str]:
        reference = normalize_text(candidate.reference)
        line_text = normalize_text(f"{line.description} {line.reference}")
        if len(reference) >= 3 and reference in line_text:
            return self.points, "reference found in description"

        line_desc = normalize_text(line.description)
        candidate_desc = normalize_text(candidate.description)
        if not line_desc or not candidate_desc:
            return 0, ""

        similarity = SequenceMatcher(None, line_desc, candidate_desc).ratio()
        if similarity >= self.strong_similarity:
            return self.points, f"description similarity {similarity:.0%}"
        if similarity >= self.weak_similarity:
            return 10, f"description similarity {similarity:.0%}"
        return 0, ""
