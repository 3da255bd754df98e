"""Promotion candidate scoring and promote / skip / defer decisions.

Each queued slug is scored on four additive dimensions:

* proof       - 15 for a public proof entry plus 3 per proven claim (max 5 claims)
* engagement  - reply rate mapped onto 0..30
* freshness   - 20, or 0 and deferred while inside the per-slug cooldown
* worthy      - 20 when the worthy rubric marks the slug worthy

Candidates are ranked by score; the top ``itemsAllowed`` non-deferred slugs
are promoted and the rest skipped.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .schemas import (
    FeedbackSummary,
    Experiment,
    OpsRun,
    PromoBudget,
    PromoDecision,
    PromoDecisionReport,
    PromoQueue,
)
from .stats import parse_timestamp, round_half_up, round_int


@dataclass
class PromoPolicy:
    cooldown_days: int = 14
    max_promos_per_week: int = 3
    min_experiment_data_threshold: int = 10
    budget_tier: int = 200
    winner_ratio: float = 2.0


@dataclass
class PromoInputs:
    queue: PromoQueue = field(default_factory=PromoQueue)
    overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    worthy: Mapping[str, Any] = field(default_factory=dict)
    feedback: FeedbackSummary | None = None
    history: Sequence[OpsRun] = ()
    baseline: Mapping[str, Any] = field(default_factory=dict)
    experiments: Sequence[Experiment] = ()


def proof_score(slug: str, overrides: Mapping[str, Mapping[str, Any]]) -> tuple[int, str]:
    entry = overrides.get(slug) or {}
    parts: list[str] = []
    score = 0
    if entry.get("publicProof"):
        score += 15
        parts.append("+15 publicProof")
    claims = entry.get("provenClaims")
    claim_count = min(len(claims), 5) if isinstance(claims, list) else 0
    if claim_count:
        score += claim_count * 3
        parts.append(f"proven claims: {claim_count} -> +{claim_count * 3}")
    detail = ", ".join(parts) if parts else "+0"
    return score, f"publicProof: {detail} (total proof: {score})"


def engagement_score(slug: str, feedback: FeedbackSummary | None) -> tuple[int, str]:
    counts = feedback.per_slug.get(slug) if feedback else None
    if counts is None:
        return 0, "engagement: no data -> +0"
    rate = counts.replied / counts.total if counts.total else 0
    score = round_int(rate * 30)
    return score, f"engagement: replyRate {rate:.2f} -> +{score}"


def freshness_score(
    slug: str,
    history: Sequence[OpsRun],
    now: datetime,
    cooldown_days: int,
) -> tuple[int, bool, str]:
    """History is newest first, so the first run naming ``slug`` is its last promotion."""
    last = next((run.date for run in history if slug in run.promoted_slugs), None)
    promoted_at = parse_timestamp(last)
    if promoted_at is None:
        return 20, False, "freshness: no prior promotion -> +20"
    days = math.floor((now - promoted_at).total_seconds() / 86400)
    if days < cooldown_days:
        return (
            0,
            True,
            f"DEFER: within cooldown (promoted {days}d ago, cooldown {cooldown_days}d)",
        )
    return 20, False, f"freshness: last promoted {days}d ago (cooldown {cooldown_days}d) -> +20"


def worthy_score(slug: str, worthy: Mapping[str, Any]) -> tuple[int, str]:
    entry = (worthy.get("repos") or {}).get(slug) or {}
    is_worthy = entry.get("worthy") is True
    return (20 if is_worthy else 0), f"worthy: score {entry.get('score', 0)} -> {'+20' if is_worthy else '+0'}"


def compute_budget(
    baseline: Mapping[str, Any],
    policy: PromoPolicy,
) -> tuple[PromoBudget, list[str]]:
    warnings: list[str] = []
    tier_info = (baseline.get("minuteBudgets") or {}).get(str(policy.budget_tier))
    headroom = tier_info.get("headroom", policy.budget_tier) if tier_info else policy.budget_tier
    avg_minutes = baseline.get("avgMinutesPerRun") or 0
    if avg_minutes == 0:
        allowed = policy.max_promos_per_week
    else:
        allowed = max(0, min(policy.max_promos_per_week, math.floor(headroom / avg_minutes)))
        if allowed == 0:
            warnings.append(
                f"Budget headroom ({headroom} min) insufficient for even one run "
                f"(avg {avg_minutes} min/run)"
            )
    return PromoBudget(tier=policy.budget_tier, headroom=headroom, items_allowed=allowed), warnings


def _experiment_notes(
    slug: str,
    experiments: Sequence[Experiment],
    feedback: FeedbackSummary | None,
    policy: PromoPolicy,
) -> list[str]:
    notes: list[str] = []
    for exp in experiments:
        if exp.status != "active" or exp.slug != slug:
            continue
        arms = feedback.per_experiment.get(exp.id) if feedback else None
        if not arms:
            notes.append(f"experiment {exp.id}: no feedback data available")
            continue
        if len(arms) < 2 or any(c.total < policy.min_experiment_data_threshold for c in arms.values()):
            notes.append(
                f"experiment {exp.id}: insufficient data "
                f"(need >={policy.min_experiment_data_threshold} per arm)"
            )
            continue
        ranked = sorted(
            ((key, c.replied / c.total if c.total else 0) for key, c in arms.items()),
            key=lambda kv: -kv[1],
        )
        (best_key, best_rate), (_, second_rate) = ranked[0], ranked[1]
        if second_rate > 0:
            ratio = round_half_up(best_rate / second_rate, 2)
            if ratio > policy.winner_ratio:
                notes.append(f"experiment {exp.id}: variant {best_key} outperforms at {ratio}x")
            else:
                notes.append(
                    f"experiment {exp.id}: no clear winner "
                    f"(best {best_key} at {ratio}x, needs >{policy.winner_ratio:g}x)"
                )
        else:
            notes.append(
                f"experiment {exp.id}: only variant {best_key} has replies - no comparison possible"
            )
    return notes


def build_promo_decisions(
    inputs: PromoInputs,
    now: datetime,
    policy: PromoPolicy | None = None,
) -> PromoDecisionReport:
    policy = policy or PromoPolicy()
    budget, warnings = compute_budget(inputs.baseline, policy)

    slugs = inputs.queue.slug_names
    if not slugs:
        warnings.append("Promo queue is empty - no candidates to evaluate")

    scored: list[tuple[str, dict[str, int], bool, list[str]]] = []
    for slug in slugs:
        proof, proof_note = proof_score(slug, inputs.overrides)
        engagement, engagement_note = engagement_score(slug, inputs.feedback)
        freshness, defer, freshness_note = freshness_score(
            slug, inputs.history, now, policy.cooldown_days
        )
        worthy, worthy_note = worthy_score(slug, inputs.worthy)
        breakdown = {
            "proof": proof,
            "engagement": engagement,
            "freshness": freshness,
            "worthy": worthy,
        }
        explanation = [proof_note, engagement_note, freshness_note, worthy_note]
        explanation += _experiment_notes(slug, inputs.experiments, inputs.feedback, policy)
        scored.append((slug, breakdown, defer, explanation))

    scored.sort(key=lambda item: -sum(item[1].values()))

    decisions: list[PromoDecision] = []
    promoted = 0
    for slug, breakdown, defer, explanation in scored:
        if defer:
            action = "defer"
        elif promoted < budget.items_allowed:
            action = "promote"
            promoted += 1
        else:
            action = "skip"
        decisions.append(
            PromoDecision(
                slug=slug,
                action=action,
                score=sum(breakdown.values()),
                breakdown=breakdown,
                explanation=explanation,
            )
        )

    return PromoDecisionReport(generated_at=now, decisions=decisions, budget=budget, warnings=warnings)
