"""Auto-matching engine and scoring rules."""

from .engine import AutoMatcher, ScoredCandidate
from .strategies import (
    ScoringRule,
    ExactAmountRule,
    DateProximityRule,
    TextOverlapRule,
)

__all__ = [
    "AutoMatcher",
    "ScoredCandidate",
    "ScoringRule",
    "ExactAmountRule",
    "DateProximityRule",
    "TextOverlapRule",
]
