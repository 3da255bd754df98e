from datetime import datetime, timezone

from promo_core.drift import build_drift
from promo_core.schemas import PromoBudget, PromoDecision, PromoDecisionReport

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _report(*decisions: tuple[str, str, int]) -> PromoDecisionReport:
    return PromoDecisionReport(
        generated_at=NOW,
        budget=PromoBudget(tier=200, headroom=100, items_allowed=3),
        decisions=[PromoDecision(slug=s, action=a, score=score) for s, a, score in decisions],
    )


def test_drift_between_reports() -> None:
    previous = _report(("alpha", "promote", 80), ("beta", "skip", 40), ("gone", "skip", 10))
    current = _report(("alpha", "promote", 85), ("beta", "promote", 40), ("new", "skip", 30))

    drift = build_drift(previous, current, NOW)

    assert drift.entrants == ["new"]
    assert drift.exits == ["gone"]
    assert [(d.slug, d.delta) for d in drift.score_deltas] == [("alpha", 5), ("beta", 0)]
    assert [(c.slug, c.prev_action, c.curr_action) for c in drift.action_changes] == [
        ("beta", "skip", "promote")
    ]
    assert drift.summary.total_changed == 4
    assert drift.summary.total_stable == 0


def test_slug_changing_score_and_action_counts_once() -> None:
    previous = _report(("alpha", "skip", 10), ("steady", "skip", 5))
    current = _report(("alpha", "promote", 50), ("steady", "skip", 5))

    drift = build_drift(previous, current, NOW)

    assert drift.summary.total_changed == 1
    assert drift.summary.total_stable == 1


def test_no_previous_snapshot_makes_everything_an_entrant() -> None:
    drift = build_drift(None, _report(("alpha", "promote", 80)), NOW)

    assert drift.entrants == ["alpha"]
    assert drift.to_dict()["actionChanges"] == []


def test_no_reports_at_all() -> None:
    drift = build_drift(None, None, NOW)

    assert drift.summary.total_changed == 0
    assert drift.entrants == [] and drift.exits == []
