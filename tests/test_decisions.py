from datetime import datetime, timezone

import pytest

from promo_core.decisions import evaluate_experiment, evaluate_experiments
from promo_core.schemas import Experiment, OutcomeCounts

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


@pytest.fixture
def experiment() -> Experiment:
    return Experiment.from_dict(
        {
            "id": "exp-subject",
            "name": "Subject line",
            "status": "active",
            "control": {"key": "control"},
            "variant": {"key": "variant"},
        }
    )


def test_winner_found_for_variant(experiment: Experiment) -> None:
    arms = {
        "control": OutcomeCounts(sent=5, opened=2, replied=1, ignored=1, bounced=1),
        "variant": OutcomeCounts(sent=3, opened=2, replied=4, ignored=0, bounced=1),
    }

    result = evaluate_experiment(experiment, arms, threshold=10)

    assert result.status == "winner-found"
    assert result.winner_key == "variant"
    assert result.control_reply_rate == 0.1
    assert result.variant_reply_rate == 0.4
    assert "4.0x" in result.recommendation


def test_control_can_win(experiment: Experiment) -> None:
    arms = {
        "control": OutcomeCounts(sent=6, replied=4),
        "variant": OutcomeCounts(sent=9, replied=1),
    }

    result = evaluate_experiment(experiment, arms, threshold=10)

    assert result.status == "winner-found"
    assert result.winner_key == "control"


def test_below_threshold_needs_more_data(experiment: Experiment) -> None:
    arms = {"control": OutcomeCounts(sent=9), "variant": OutcomeCounts(sent=20, replied=10)}

    result = evaluate_experiment(experiment, arms, threshold=10)

    assert result.status == "needs-more-data"
    assert result.winner_key is None
    assert result.control_entries == 9


def test_similar_rates_no_decision(experiment: Experiment) -> None:
    arms = {
        "control": OutcomeCounts(sent=8, replied=2),
        "variant": OutcomeCounts(sent=7, replied=3),
    }

    result = evaluate_experiment(experiment, arms, threshold=10)

    assert result.status == "no-decision"
    assert result.winner_key is None


def test_zero_control_rate_uses_epsilon_floor(experiment: Experiment) -> None:
    arms = {"control": OutcomeCounts(sent=10), "variant": OutcomeCounts(sent=9, replied=1)}

    result = evaluate_experiment(experiment, arms, threshold=10)

    assert result.status == "winner-found"
    assert result.winner_key == "variant"


def test_no_feedback_for_experiment(experiment: Experiment) -> None:
    result = evaluate_experiment(experiment, None)

    assert result.status == "needs-more-data"
    assert result.control_entries == 0


def test_only_active_experiments_are_evaluated(experiment: Experiment) -> None:
    draft = experiment.model_copy(update={"id": "exp-draft", "status": "draft"})

    report = evaluate_experiments([experiment, draft], {}, NOW)

    assert [e.experiment_id for e in report.evaluations] == ["exp-subject"]
    assert report.warnings == []


def test_no_active_experiments_warns() -> None:
    report = evaluate_experiments([], {}, NOW)

    assert report.evaluations == []
    assert report.warnings == ["No active experiments found"]
