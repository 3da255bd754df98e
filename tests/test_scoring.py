from datetime import datetime, timezone

from kit.config import KitConfig
from promo_core.schemas import Candidate
from promo_core.scoring import (
    SCORING_VERSION,
    ScoringWeights,
    TargetScorer,
    build_pain_point_vocabulary,
    rank_candidates,
)

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _candidate(full_name: str, **kwargs) -> Candidate:
    owner, repo = full_name.split("/")
    return Candidate(owner=owner, repo=repo, full_name=full_name, **kwargs)


def test_pain_point_vocabulary_keeps_long_words() -> None:
    vocab = build_pain_point_vocabulary(
        [{"painPoints": ["Manual testing is slow", "No CI"]}, {"painPoints": None}]
    )

    assert vocab == {"manual", "testing", "slow"}


def test_full_breakdown_sums_to_score() -> None:
    scorer = TargetScorer(
        topics=["mcp", "ai"],
        keywords=["agent"],
        now=NOW,
        pain_points={"manual", "testing"},
    )
    candidate = _candidate(
        "acme/agentkit",
        topics=["mcp", "ai", "x"],
        description="Agent framework for manual testing workflows",
        pushed_at="2025-11-20T00:00:00Z",
        stars=150,
        why_matched=["topic:mcp", "comparable:langchain"],
    )

    scored = scorer.score(candidate)

    assert scored.score_breakdown == {
        "topicMatch": 30,
        "keywordMatch": 10,
        "activityRecency": 16,
        "starTier": 13,
        "fitScore": 10,
        "comparableBonus": 10,
        "signalBonus": 0,
    }
    assert scored.score == 89
    assert scored.score == sum(scored.score_breakdown.values())
    assert scored.scoring_version == SCORING_VERSION


def test_factor_caps_and_edges() -> None:
    scorer = TargetScorer(topics=["a", "b", "c", "d", "e"], keywords=[], now=NOW)

    many_topics = _candidate("x/y", topics=["a", "b", "c", "d", "e"], stars=5000)
    assert scorer.topic_match(many_topics) == 60
    assert scorer.star_tier(many_topics) == 15

    assert scorer.activity_recency(_candidate("x/none")) == 0
    assert scorer.activity_recency(_candidate("x/future", pushed_at="2026-03-01T00:00:00Z")) == 20
    assert scorer.activity_recency(_candidate("x/old", pushed_at="2024-01-01T00:00:00Z")) == 0
    assert scorer.star_tier(_candidate("x/zero", stars=0)) == 5
    assert scorer.fit_score(many_topics) == 0


def test_signal_bonus_from_reason_prefix() -> None:
    scorer = TargetScorer(topics=[], keywords=[], now=NOW)

    scored = scorer.score(_candidate("x/y", why_matched=["signal:friend"]))

    assert scored.score_breakdown["signalBonus"] == 10


def test_rank_orders_by_score_stars_then_name() -> None:
    cands = [
        _candidate("b/two", score=10, stars=5),
        _candidate("a/one", score=10, stars=5),
        _candidate("c/three", score=10, stars=50),
        _candidate("d/four", score=20, stars=0),
    ]

    ranked, total = rank_candidates(cands, top_n=3)

    assert [c.full_name for c in ranked] == ["d/four", "c/three", "a/one"]
    assert total == 4


def test_weights_round_trip_from_config_mapping() -> None:
    weights = ScoringWeights.from_mapping({"topic_per_match": 20, "star_tiers": [[500, 12], [0, 1]]})

    assert weights.topic_per_match == 20
    assert weights.star_tiers == [(500, 12), (0, 1)]
    assert weights.to_dict()["starTier"] == {
        "max": 12,
        "tiers": [{"min": 500, "score": 12}, {"min": 0, "score": 1}],
    }


def test_ascending_star_tiers_still_pick_highest_tier() -> None:
    config = KitConfig.from_dict({"scoring": {"star_tiers": [[0, 5], [10, 10], [100, 13], [1000, 15]]}})
    weights = config.scoring_weights()
    scorer = TargetScorer(topics=[], keywords=[], now=NOW, weights=weights)

    assert weights.star_tiers == [(1000, 15), (100, 13), (10, 10), (0, 5)]
    assert scorer.star_tier(_candidate("big/repo", stars=5000)) == 15
    assert scorer.star_tier(_candidate("mid/repo", stars=150)) == 13
    assert scorer.star_tier(_candidate("small/repo", stars=3)) == 5
