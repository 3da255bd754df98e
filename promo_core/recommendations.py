"""Recommendation synthesis from telemetry, queue and experiment signals.

Each finder looks at one signal source on its own; there is no cross-source
deduplication. The merged list is ordered high -> medium -> low (stable
within a tier) and truncated to the configured maximum.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .schemas import (
    PRIORITY_ORDER,
    Evaluation,
    LintInsights,
    QueueHealthSnapshot,
    Recommendation,
    RecommendationReport,
    Submission,
    TelemetryRollup,
)
from .stats import parse_timestamp

# Lint reason substring -> submission-guide topic.
DOC_TOPICS = (
    ("install", "install command"),
    ("quickstart", "quickstart"),
    ("proof", "proof links"),
    ("pitch", "pitch format"),
)


@dataclass
class RecommendationThresholds:
    high_engagement: int = 5
    engagement_pool: int = 5
    install_copies: int = 5
    low_proof: int = 2
    high_friction: int = 3
    common_lint_failure: int = 3
    per_category: int = 3
    needs_info_penalty: int = 2
    stuck_days: int = 7


@dataclass
class RecommendationInputs:
    rollup: TelemetryRollup | None = None
    queue_health: QueueHealthSnapshot | None = None
    submissions: Sequence[Submission] = ()
    lint_reports: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    evaluations: Sequence[Evaluation] = ()


def compute_proof_engagement_by_slug(by_slug: Mapping[str, Mapping[str, int]]) -> dict[str, int]:
    """click_evidence_link + copy_proof_bullets per slug (zero scores omitted)."""
    scores: dict[str, int] = {}
    for slug, counts in by_slug.items():
        score = counts.get("click_evidence_link", 0) + counts.get("copy_proof_bullets", 0)
        if score > 0:
            scores[slug] = score
    return scores


def compute_submission_friction_by_slug(
    submissions: Sequence[Submission],
    lint_reports: Mapping[str, Mapping[str, Any]],
    now: datetime,
    stuck_days: int = 7,
    needs_info_penalty: int = 2,
) -> dict[str, int]:
    """Lint warnings + needs-info penalty + 1 if open longer than ``stuck_days``."""
    scores: dict[str, int] = {}
    for sub in submissions:
        if not sub.slug:
            continue
        warnings = (lint_reports.get(sub.slug) or {}).get("warnings") or []
        score = len(warnings)
        if sub.status == "needs-info":
            score += needs_info_penalty
        submitted = parse_timestamp(sub.submitted_at)
        if sub.status in ("pending", "needs-info") and submitted is not None:
            days = math.floor((now - submitted).total_seconds() / 86400)
            if days > stuck_days:
                score += 1
        if score > 0:
            scores[sub.slug] = score
    return scores


def analyze_lint_patterns(
    queue_health: QueueHealthSnapshot | None,
    min_count: int = 3,
) -> LintInsights:
    failures = queue_health.top_lint_failures if queue_health else []
    elevate = [
        {
            "warning": f.reason,
            "count": f.count,
            "suggestion": f"Promote to error - {f.count} occurrences indicate systemic gap",
        }
        for f in failures
        if f.count > min_count
    ]
    topics: dict[str, int] = {}
    for failure in failures:
        reason = failure.reason.lower()
        for needle, topic in DOC_TOPICS:
            if needle in reason:
                topics[topic] = topics.get(topic, 0) + failure.count
    rewrite = [
        {
            "topic": topic,
            "occurrences": count,
            "suggestion": (
                f'Rewrite submission guide section on "{topic}" - '
                f"{count} failures suggest unclear docs"
            ),
        }
        for topic, count in topics.items()
        if count > min_count
    ]
    return LintInsights(warnings_to_elevate=elevate, docs_to_rewrite=rewrite)


def find_high_trust_tools(
    engagement: Mapping[str, int],
    overrides: Mapping[str, Mapping[str, Any]],
    t: RecommendationThresholds,
) -> list[Recommendation]:
    ranked = sorted(engagement.items(), key=lambda kv: -kv[1])
    ranked = [(slug, score) for slug, score in ranked if not (overrides.get(slug) or {}).get("featured")]
    found = [
        Recommendation(
            priority="high",
            category="re-feature",
            slug=slug,
            title=f"Re-feature {slug}",
            insight=f"High proof engagement score ({score}) - users actively checking evidence",
            action=f'Consider adding "{slug}" to featured collection or promo queue',
            evidence={"proofEngagementScore": score, "currentlyFeatured": False},
        )
        for slug, score in ranked[: t.engagement_pool]
        if score > t.high_engagement
    ]
    return found[: t.per_category]


def find_low_proof_tools(
    by_slug: Mapping[str, Mapping[str, int]],
    engagement: Mapping[str, int],
    t: RecommendationThresholds,
) -> list[Recommendation]:
    found: list[Recommendation] = []
    for slug, counts in by_slug.items():
        installs = counts.get("copy_install", 0)
        proof = engagement.get(slug, 0)
        if installs > t.install_copies and proof < t.low_proof:
            found.append(
                Recommendation(
                    priority="medium",
                    category="improve-proof",
                    slug=slug,
                    title=f"Improve proof for {slug}",
                    insight=f"{installs} install copies but only {proof} proof interactions",
                    action="Review publicProof quality - add demo, benchmark, or better evidence links",
                    evidence={"installCopies": installs, "proofEngagementScore": proof},
                )
            )
    found.sort(key=lambda r: -r.evidence["installCopies"])
    return found[: t.per_category]


def find_high_friction_submissions(
    submissions: Sequence[Submission],
    friction: Mapping[str, int],
    t: RecommendationThresholds,
) -> list[Recommendation]:
    found: list[Recommendation] = []
    for sub in submissions:
        score = friction.get(sub.slug, 0)
        if score >= t.high_friction and sub.status in ("pending", "needs-info"):
            found.append(
                Recommendation(
                    priority="high",
                    category="stuck-submission",
                    slug=sub.slug,
                    title=f"Review stuck submission: {sub.slug}",
                    insight=f"Friction score {score} - status: {sub.status}",
                    action="Provide guidance to submitter or escalate for manual review",
                    evidence={
                        "frictionScore": score,
                        "status": sub.status,
                        "submittedAt": sub.submitted_at,
                    },
                )
            )
    found.sort(key=lambda r: -r.evidence["frictionScore"])
    return found[: t.per_category]


def find_ready_experiments(
    evaluations: Sequence[Evaluation],
    t: RecommendationThresholds,
) -> list[Recommendation]:
    found = [
        Recommendation(
            priority="medium",
            category="experiment-graduation",
            slug=ev.experiment_id,
            title=f"Graduate experiment: {ev.experiment_id}",
            insight=f'Winner found - variant "{ev.winner_key}" outperformed',
            action="Apply winning variant to overrides.json and conclude experiment",
            evidence={
                "experimentId": ev.experiment_id,
                "winnerKey": ev.winner_key,
                "recommendation": ev.recommendation,
            },
        )
        for ev in evaluations
        if ev.status == "winner-found"
    ]
    return found[: t.per_category]


def build_lint_recommendations(
    insights: LintInsights,
    t: RecommendationThresholds,
) -> list[Recommendation]:
    return [
        Recommendation(
            priority="low",
            category="lint-promotion",
            slug=item["warning"],
            title=f'Promote lint warning: "{item["warning"]}"',
            insight=f"Appears {item['count']} times - consistent failure pattern",
            action=item["suggestion"],
            evidence={"warning": item["warning"], "count": item["count"]},
        )
        for item in insights.warnings_to_elevate[: t.per_category]
    ]


def build_recommendations(
    inputs: RecommendationInputs,
    now: datetime,
    max_recommendations: int = 20,
    thresholds: RecommendationThresholds | None = None,
    guardrails: Mapping[str, Any] | None = None,
) -> RecommendationReport:
    t = thresholds or RecommendationThresholds()
    by_slug = inputs.rollup.by_slug if inputs.rollup else {}
    trust_by_week = inputs.rollup.metrics.trust_interaction_score_by_week if inputs.rollup else {}

    engagement = compute_proof_engagement_by_slug(by_slug)
    friction = compute_submission_friction_by_slug(
        inputs.submissions,
        inputs.lint_reports,
        now,
        stuck_days=t.stuck_days,
        needs_info_penalty=t.needs_info_penalty,
    )
    insights = analyze_lint_patterns(inputs.queue_health, t.common_lint_failure)

    found: list[Recommendation] = []
    found += find_high_trust_tools(engagement, inputs.overrides, t)
    found += find_low_proof_tools(by_slug, engagement, t)
    found += find_high_friction_submissions(inputs.submissions, friction, t)
    found += find_ready_experiments(inputs.evaluations, t)
    found += build_lint_recommendations(insights, t)
    found.sort(key=lambda r: PRIORITY_ORDER[r.priority])

    report_guardrails = dict(guardrails or {})
    if inputs.rollup is not None:
        report_guardrails["suspiciousDays"] = [
            d.to_dict() for d in inputs.rollup.guardrails.suspicious_days
        ]
        report_guardrails["eventsCapped"] = inputs.rollup.guardrails.events_capped

    return RecommendationReport(
        generated_at=now,
        signals={
            "trustByWeek": dict(trust_by_week),
            "proofEngagementBySlug": engagement,
            "submissionFrictionBySlug": friction,
        },
        recommendations=found[:max_recommendations],
        guardrails=report_guardrails,
        lint_insights=insights,
    )
