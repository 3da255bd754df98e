from datetime import datetime, timezone

import pytest

from promo_core.promo_decisions import (
    PromoInputs,
    PromoPolicy,
    build_promo_decisions,
    compute_budget,
    freshness_score,
    proof_score,
)
from promo_core.schemas import Experiment, FeedbackSummary, OpsRun, OutcomeCounts, PromoQueue

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


@pytest.fixture
def inputs() -> PromoInputs:
    feedback = FeedbackSummary(
        generated_at=NOW,
        per_slug={"alpha": OutcomeCounts(sent=1, replied=1)},
        per_experiment={
            "exp-1": {
                "control": OutcomeCounts(sent=8, replied=2),
                "variant": OutcomeCounts(sent=5, replied=5),
            }
        },
    )
    return PromoInputs(
        queue=PromoQueue.from_dict({"slugs": ["alpha", "beta", {"slug": "gamma"}, "delta"]}),
        overrides={
            "alpha": {"publicProof": True, "provenClaims": list(range(7))},
            "beta": {"publicProof": True},
            "delta": {"publicProof": True},
        },
        worthy={"repos": {"alpha": {"worthy": True, "score": 9}, "beta": {"worthy": True, "score": 7}}},
        feedback=feedback,
        history=[OpsRun.from_dict({"date": "2026-01-25T00:00:00Z", "promotedSlugs": ["delta"]})],
        baseline={"avgMinutesPerRun": 10, "minuteBudgets": {"200": {"headroom": 15}}},
        experiments=[
            Experiment.from_dict(
                {
                    "id": "exp-1",
                    "status": "active",
                    "slug": "alpha",
                    "control": {"key": "control"},
                    "variant": {"key": "variant"},
                }
            )
        ],
    )


def test_decisions_rank_budget_and_defer(inputs: PromoInputs) -> None:
    report = build_promo_decisions(inputs, NOW)

    assert [(d.slug, d.action, d.score) for d in report.decisions] == [
        ("alpha", "promote", 85),
        ("beta", "skip", 55),
        ("gamma", "skip", 20),
        ("delta", "defer", 15),
    ]
    alpha = report.decisions[0]
    assert alpha.breakdown == {"proof": 30, "engagement": 15, "freshness": 20, "worthy": 20}
    assert report.budget.items_allowed == 1
    assert report.warnings == []


def test_explanations(inputs: PromoInputs) -> None:
    report = build_promo_decisions(inputs, NOW)
    by_slug = {d.slug: d for d in report.decisions}

    assert "DEFER: within cooldown (promoted 7d ago, cooldown 14d)" in by_slug["delta"].explanation
    assert "experiment exp-1: variant variant outperforms at 2.5x" in by_slug["alpha"].explanation
    assert "engagement: no data -> +0" in by_slug["gamma"].explanation


def test_cooldown_comes_from_policy(inputs: PromoInputs) -> None:
    report = build_promo_decisions(inputs, NOW, PromoPolicy(cooldown_days=5))

    assert {d.slug: d.action for d in report.decisions}["delta"] != "defer"


def test_empty_queue_warns() -> None:
    report = build_promo_decisions(PromoInputs(), NOW)

    assert report.decisions == []
    assert report.warnings == ["Promo queue is empty - no candidates to evaluate"]
    assert report.budget.items_allowed == 3


def test_budget_too_small_for_one_run() -> None:
    budget, warnings = compute_budget(
        {"avgMinutesPerRun": 10, "minuteBudgets": {"200": {"headroom": 5}}}, PromoPolicy()
    )

    assert budget.items_allowed == 0
    assert warnings == ["Budget headroom (5 min) insufficient for even one run (avg 10 min/run)"]


def test_proof_score_caps_claims() -> None:
    score, note = proof_score("x", {"x": {"publicProof": True, "provenClaims": list(range(9))}})

    assert score == 30
    assert "proven claims: 5 -> +15" in note


def test_freshness_outside_cooldown() -> None:
    history = [OpsRun.from_dict({"date": "2026-01-01T00:00:00Z", "promotedSlugs": ["x"]})]

    score, defer, note = freshness_score("x", history, NOW, cooldown_days=14)

    assert (score, defer) == (20, False)
    assert note == "freshness: last promoted 31d ago (cooldown 14d) -> +20"


def test_experiment_ratio_rounds_half_up(inputs: PromoInputs) -> None:
    inputs.feedback.per_experiment["exp-1"] = {
        "control": OutcomeCounts(sent=8, replied=8),
        "variant": OutcomeCounts(sent=7, replied=9),
    }

    report = build_promo_decisions(inputs, NOW)
    alpha = next(d for d in report.decisions if d.slug == "alpha")

    assert "experiment exp-1: no clear winner (best variant at 1.13x, needs >2x)" in alpha.explanation
