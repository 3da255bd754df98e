"""Week-over-week drift between two promo decision reports."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from .schemas import (
    ActionChange,
    DecisionDrift,
    DriftSummary,
    PromoDecision,
    PromoDecisionReport,
    ScoreDelta,
)


def _by_slug(decisions: Sequence[PromoDecision]) -> dict[str, PromoDecision]:
    mapped: dict[str, PromoDecision] = {}
    for decision in decisions:
        if decision.slug:
            mapped[decision.slug] = decision
    return mapped


def build_drift(
    previous: PromoDecisionReport | None,
    current: PromoDecisionReport | None,
    generated_at: datetime,
) -> DecisionDrift:
    """Entrants and exits by slug, plus score and action changes for slugs in both.

    A slug counts as changed once, whether its score moved, its action
    moved, or both. A missing previous report makes every slug an entrant.
    """
    prev = _by_slug(previous.decisions if previous else [])
    curr = _by_slug(current.decisions if current else [])

    entrants = [slug for slug in curr if slug not in prev]
    exits = [slug for slug in prev if slug not in curr]
    common = [slug for slug in curr if slug in prev]

    deltas: list[ScoreDelta] = []
    changes: list[ActionChange] = []
    changed = 0
    for slug in common:
        before, after = prev[slug], curr[slug]
        delta = after.score - before.score
        deltas.append(
            ScoreDelta(slug=slug, prev_score=before.score, curr_score=after.score, delta=delta)
        )
        if before.action != after.action:
            changes.append(
                ActionChange(slug=slug, prev_action=before.action, curr_action=after.action)
            )
        if delta != 0 or before.action != after.action:
            changed += 1

    return DecisionDrift(
        generated_at=generated_at,
        entrants=entrants,
        exits=exits,
        score_deltas=deltas,
        action_changes=changes,
        summary=DriftSummary(
            total_changed=len(entrants) + len(exits) + changed,
            total_stable=len(common) - changed,
        ),
    )
