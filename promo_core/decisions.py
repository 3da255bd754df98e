"""A/B experiment decision evaluation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime

from .schemas import Evaluation, EvaluationReport, Experiment, OutcomeCounts
from .stats import round_half_up


def _rate(counts: OutcomeCounts) -> float:
    return counts.replied / max(counts.total, 1)


def evaluate_experiment(
    experiment: Experiment,
    arms: Mapping[str, OutcomeCounts] | None,
    threshold: int = 10,
    winner_ratio: float = 2.0,
    epsilon: float = 0.001,
) -> Evaluation:
    """Evaluate one active experiment against its aggregated arm counts.

    Rules, in order:

    1. either arm below ``threshold`` total interactions -> needs-more-data
    2. one arm's reply rate more than ``winner_ratio`` times the other's
       (denominator floored at ``epsilon``) -> winner-found; the variant
       is checked first
    3. otherwise -> no-decision
    """
    base = {"experiment_id": experiment.id, "name": experiment.name}
    if arms is None:
        return Evaluation(
            **base,
            status="needs-more-data",
            control_entries=0,
            variant_entries=0,
            control_reply_rate=0,
            variant_reply_rate=0,
            recommendation=f"No feedback data yet for experiment {experiment.id}",
        )

    control_key = experiment.control.key
    variant_key = experiment.variant.key
    control = arms.get(control_key) or OutcomeCounts()
    variant = arms.get(variant_key) or OutcomeCounts()
    control_rate = _rate(control)
    variant_rate = _rate(variant)

    base.update(
        control_entries=control.total,
        variant_entries=variant.total,
        control_reply_rate=round_half_up(control_rate, 4),
        variant_reply_rate=round_half_up(variant_rate, 4),
    )

    if control.total < threshold or variant.total < threshold:
        return Evaluation(
            **base,
            status="needs-more-data",
            recommendation=(
                f"Insufficient data: {control.total} control, {variant.total} variant "
                f"(threshold: {threshold})"
            ),
        )

    if variant_rate > 0 and variant_rate / max(control_rate, epsilon) > winner_ratio:
        ratio = round_half_up(variant_rate / max(control_rate, epsilon), 1)
        return Evaluation(
            **base,
            status="winner-found",
            winner_key=variant_key,
            recommendation=f"Variant '{variant_key}' outperforms control at {ratio}x reply rate",
        )

    if control_rate > 0 and control_rate / max(variant_rate, epsilon) > winner_ratio:
        ratio = round_half_up(control_rate / max(variant_rate, epsilon), 1)
        return Evaluation(
            **base,
            status="winner-found",
            winner_key=control_key,
            recommendation=f"Control '{control_key}' outperforms variant at {ratio}x reply rate",
        )

    return Evaluation(
        **base,
        status="no-decision",
        recommendation=(
            f"Performance is similar (control: {base['control_reply_rate']}, "
            f"variant: {base['variant_reply_rate']}). Keep collecting data."
        ),
    )


def evaluate_experiments(
    experiments: Iterable[Experiment],
    per_experiment: Mapping[str, Mapping[str, OutcomeCounts]],
    generated_at: datetime,
    threshold: int = 10,
    winner_ratio: float = 2.0,
    epsilon: float = 0.001,
) -> EvaluationReport:
    active = [e for e in experiments if e.status == "active"]
    warnings: list[str] = []
    if not active:
        warnings.append("No active experiments found")
    evaluations = [
        evaluate_experiment(
            exp,
            per_experiment.get(exp.id),
            threshold=threshold,
            winner_ratio=winner_ratio,
            epsilon=epsilon,
        )
        for exp in active
    ]
    return EvaluationReport(generated_at=generated_at, evaluations=evaluations, warnings=warnings)
