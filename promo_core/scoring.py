"""Weighted, additive target scoring."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .schemas import Candidate
from .stats import parse_timestamp, round_int

SCORING_VERSION = "1.0.0"

DEFAULT_STAR_TIERS: tuple[tuple[int, int], ...] = ((1000, 15), (100, 13), (10, 10), (0, 5))


@dataclass
class ScoringWeights:
    topic_per_match: int = 15
    topic_max: int = 60
    keyword_per_match: int = 10
    keyword_max: int = 40
    recency_max: int = 20
    recency_decay_days: int = 365
    star_tiers: list[tuple[int, int]] = field(default_factory=lambda: list(DEFAULT_STAR_TIERS))
    fit_per_word: int = 5
    fit_max: int = 20
    comparable_bonus: int = 10
    signal_bonus: int = 10

    def __post_init__(self) -> None:
        # Highest threshold first; star_tier takes the first tier reached.
        self.star_tiers = sorted(
            ((int(minimum), int(score)) for minimum, score in self.star_tiers),
            key=lambda tier: tier[0],
            reverse=True,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScoringWeights":
        return cls(**dict(data))

    def to_dict(self) -> dict[str, Any]:
        """Weights in the shape recorded next to every candidate list."""
        return {
            "topicMatch": {"perMatch": self.topic_per_match, "max": self.topic_max},
            "keywordMatch": {"perMatch": self.keyword_per_match, "max": self.keyword_max},
            "activityRecency": {"max": self.recency_max, "decayDays": self.recency_decay_days},
            "starTier": {
                "max": max((score for _, score in self.star_tiers), default=0),
                "tiers": [{"min": lo, "score": score} for lo, score in self.star_tiers],
            },
            "fitScore": {"perWord": self.fit_per_word, "max": self.fit_max},
            "comparableBonus": {"value": self.comparable_bonus},
            "signalBonus": {"value": self.signal_bonus},
        }


def build_pain_point_vocabulary(audiences: Iterable[Mapping[str, Any]]) -> set[str]:
    vocabulary: set[str] = set()
    for audience in audiences:
        for pain_point in audience.get("painPoints") or []:
            for word in str(pain_point).lower().split():
                if len(word) > 3:
                    vocabulary.add(word)
    return vocabulary


class TargetScorer:
    """Scores candidates against one tool's targeting block.

    Every factor is an integer and individually capped, so the total is
    exactly the sum of the breakdown.
    """

    def __init__(
        self,
        topics: Iterable[str],
        keywords: Iterable[str],
        now: datetime,
        pain_points: Iterable[str] = (),
        weights: ScoringWeights | None = None,
    ) -> None:
        self.topics = {t.lower() for t in topics}
        self.keywords = {k.lower() for k in keywords}
        self.pain_points = set(pain_points)
        self.now = now
        self.weights = weights or ScoringWeights()

    def topic_match(self, candidate: Candidate) -> int:
        matches = sum(1 for t in candidate.topics if t.lower() in self.topics)
        return min(matches * self.weights.topic_per_match, self.weights.topic_max)

    def keyword_match(self, candidate: Candidate) -> int:
        description = (candidate.description or "").lower()
        repo = candidate.repo.lower()
        matches = sum(1 for kw in self.keywords if kw in description or kw in repo)
        return min(matches * self.weights.keyword_per_match, self.weights.keyword_max)

    def activity_recency(self, candidate: Candidate) -> int:
        pushed = parse_timestamp(candidate.pushed_at)
        if pushed is None:
            return 0
        days_since = (self.now - pushed).total_seconds() / 86400
        decay = 1 - days_since / self.weights.recency_decay_days
        decay = min(1.0, max(0.0, decay))
        return round_int(decay * self.weights.recency_max)

    def star_tier(self, candidate: Candidate) -> int:
        for minimum, score in self.weights.star_tiers:
            if candidate.stars >= minimum:
                return score
        return 0

    def fit_score(self, candidate: Candidate) -> int:
        if not self.pain_points:
            return 0
        words = {w for w in (candidate.description or "").lower().split() if len(w) > 3}
        overlap = len(words & self.pain_points)
        return min(overlap * self.weights.fit_per_word, self.weights.fit_max)

    def _bonus(self, candidate: Candidate, prefix: str, value: int) -> int:
        return value if any(r.startswith(prefix) for r in candidate.why_matched) else 0

    def breakdown(self, candidate: Candidate) -> dict[str, int]:
        return {
            "topicMatch": self.topic_match(candidate),
            "keywordMatch": self.keyword_match(candidate),
            "activityRecency": self.activity_recency(candidate),
            "starTier": self.star_tier(candidate),
            "fitScore": self.fit_score(candidate),
            "comparableBonus": self._bonus(candidate, "comparable:", self.weights.comparable_bonus),
            "signalBonus": self._bonus(candidate, "signal:", self.weights.signal_bonus),
        }

    def score(self, candidate: Candidate) -> Candidate:
        breakdown = self.breakdown(candidate)
        candidate.score_breakdown = breakdown
        candidate.score = sum(breakdown.values())
        candidate.scoring_version = SCORING_VERSION
        return candidate

    def score_all(self, candidates: Iterable[Candidate]) -> list[Candidate]:
        return [self.score(c) for c in candidates]


def rank_candidates(
    candidates: Sequence[Candidate],
    top_n: int | None = None,
) -> tuple[list[Candidate], int]:
    """Sort by score, then stars (both descending), then full name; truncate.

    Returns the ranked slice together with the pre-truncation count.
    """
    ordered = sorted(candidates, key=lambda c: (-c.score, -c.stars, c.full_name))
    total = len(ordered)
    if top_n is not None:
        ordered = ordered[:top_n]
    return ordered, total
