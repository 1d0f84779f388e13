"""Body dysmorphic disorder screener scoring."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum


SCREENER_LENGTH = 7
REVERSE_SCORED_INDEX = 6
UNANSWERED = -1
MAX_ANSWER = 3
MAX_SCORE = SCREENER_LENGTH * MAX_ANSWER


class RiskTier(str, Enum):
    """Ordered severity bands for the screener score."""

    LOW = "low"
    MODERATE = "moderate"
    ELEVATED = "elevated"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _TIER_BANDS[self][0]

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} Risk"

    @property
    def score_range(self) -> str:
        _, low, high = _TIER_BANDS[self]
        return f"{low}-{high}"


# tier -> (rank, inclusive lower bound, inclusive upper bound)
_TIER_BANDS: dict[RiskTier, tuple[int, int, int]] = {
    RiskTier.LOW: (1, 0, 4),
    RiskTier.MODERATE: (2, 5, 9),
    RiskTier.ELEVATED: (3, 10, 14),
    RiskTier.HIGH: (4, 15, MAX_SCORE),
}


@dataclass(frozen=True)
class RiskScore:
    """Screener score with its derived tier."""

    score: int
    tier: RiskTier


def calculate_score(answers: Sequence[int]) -> int:
    """Sum the screener answers.

    Each answer in [0, 3] counts as given, except the answer at index 6 which
    is reverse-scored as ``3 - answer``. Unanswered (-1) and out-of-range
    values count as 0. Answers past the seventh are ignored.
    """

    total = 0
    for index, answer in enumerate(answers[:SCREENER_LENGTH]):
        if not 0 <= answer <= MAX_ANSWER:
            continue
        if index == REVERSE_SCORED_INDEX:
            total += MAX_ANSWER - answer
        else:
            total += answer
    return total


def risk_tier(score: int) -> RiskTier:
    """Map a score to its tier; scores outside [0, 21] are clamped first."""

    clamped = max(0, min(MAX_SCORE, score))
    for tier, (_, low, high) in _TIER_BANDS.items():
        if low <= clamped <= high:
            return tier
    raise AssertionError(f"tier bands do not cover score {clamped}")  # pragma: no cover


def assess(answers: Sequence[int]) -> RiskScore:
    """Score the screener and derive its tier."""

    score = calculate_score(answers)
    return RiskScore(score=score, tier=risk_tier(score))
