"""Markdown and CSV renderers for generated artifacts."""

from __future__ import annotations

import csv
import io
from collections.abc import Mapping, Sequence
from typing import Any

from promo_core.schemas import (
    Candidate,
    DecisionDrift,
    EvaluationReport,
    OpsBaseline,
    PromoDecisionReport,
    RecommendationReport,
    TargetList,
    format_timestamp,
)
from promo_core.scoring import SCORING_VERSION, ScoringWeights
from promo_core.stats import round_int

LIBRARY_TOPICS = ("library", "framework", "sdk", "cli", "tool")
README_ROWS = 25
DM_MAX_CHARS = 300


def _date(report: Any) -> str:
    return format_timestamp(report.generated_at)[:10]


def _unique(values: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(values))


def draft_filename(candidate: Candidate) -> str:
    return f"{candidate.owner}--{candidate.repo}.md"


# --- Targets ----------------------------------------------------------------


def render_targets_csv(targets: TargetList) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(
        ["rank", "owner", "repo", "stars", "score", "language", "ownerType", "whyMatched", "pushedAt", "url"]
    )
    for rank, c in enumerate(targets.candidates, start=1):
        writer.writerow(
            [
                rank,
                c.owner,
                c.repo,
                c.stars,
                c.score,
                c.language or "",
                c.owner_type,
                "; ".join(_unique(c.why_matched)),
                (c.pushed_at or "")[:10],
                c.html_url,
            ]
        )
    return buffer.getvalue()


def render_targets_readme(
    targets: TargetList,
    weights: ScoringWeights,
    max_drafts: int,
    site_url: str,
) -> str:
    generated = format_timestamp(targets.generated_at)
    shown = targets.candidates[:README_ROWS]
    lines = [
        f"# Target List: {targets.tool}",
        "",
        f"Generated: {generated}",
        f"Scoring: v{targets.scoring_version} | Source lock: {targets.sourcelock}",
        f"Candidates: {targets.candidate_count} of {targets.total_scored} scored | Shown: {len(shown)}",
        "",
        "## Top Candidates",
        "",
        "| # | Repo | Stars | Score | Language | Why |",
        "|---|------|-------|-------|----------|-----|",
    ]
    for index, c in enumerate(shown):
        why = ", ".join(_unique(c.why_matched)[:3])
        draft = f" ([draft](drafts/{draft_filename(c)}))" if index < max_drafts else ""
        lines.append(
            f"| {index + 1} | [{c.full_name}]({c.html_url}) | {c.stars} | {c.score} "
            f"| {c.language or '-'} | {why}{draft} |"
        )
    star_max = max((score for _, score in weights.star_tiers), default=0)
    lines += [
        "",
        "## Scoring Breakdown",
        "",
        "| Factor | Per Match | Max |",
        "|--------|-----------|-----|",
        f"| Topic match | {weights.topic_per_match} | {weights.topic_max} |",
        f"| Keyword match | {weights.keyword_per_match} | {weights.keyword_max} |",
        f"| Activity recency | linear decay/{weights.recency_decay_days}d | {weights.recency_max} |",
        f"| Star tier | tiered | {star_max} |",
        f"| Fit score | {weights.fit_per_word}/overlap | {weights.fit_max} |",
        f"| Comparable bonus | - | {weights.comparable_bonus} |",
        f"| Signal bonus | - | {weights.signal_bonus} |",
        "",
    ]
    if targets.errors:
        lines += ["## Discovery Errors", ""]
        lines += [f"- {error}" for error in targets.errors]
        lines.append("")
    lines += [
        "## Links",
        "",
        "- [Full JSON](targets.json)",
        "- [CSV export](targets.csv)",
        f"- [Outreach pack]({site_url}/outreach/{targets.tool}/)",
        f"- [Press page]({site_url}/press/{targets.tool}/)",
        "",
    ]
    return "\n".join(lines)


def select_template(candidate: Candidate) -> str:
    if candidate.owner_type == "organization":
        return "email-partner"
    if any(topic in LIBRARY_TOPICS for topic in candidate.topics):
        return "email-integrator"
    return "dm-short"


def render_outreach_draft(
    candidate: Candidate,
    tool: Mapping[str, Any],
    slug: str,
    org: str,
    site_url: str,
    sourcelock: str,
    generated_at: str,
) -> str:
    """One outreach draft; ``tool`` is the merged tool profile."""
    name = tool.get("name") or slug
    one_liner = (tool.get("positioning") or {}).get("oneLiner", "")
    press = tool.get("press") or {}
    press_url = f"{site_url}/press/{slug}/"
    outreach_url = f"{site_url}/outreach/{slug}/"
    proven = [c for c in tool.get("claims") or [] if c.get("status") == "proven"]
    bullets = [f"- {c.get('statement', '')} (proof: {press_url})" for c in proven[:3]]
    template = select_template(candidate)

    lines = [
        f"# Draft Outreach: {candidate.full_name}",
        "",
        f"**Score:** {candidate.score} | **Template:** {template} | **Stars:** {candidate.stars}",
        f"**Why matched:** {', '.join(_unique(candidate.why_matched))}",
        "",
    ]
    if template == "dm-short":
        dm = (
            f"Hi! We built {name} ({one_liner}). Your {candidate.repo} looks like a great fit - "
            f"{len(bullets)} proven claims with receipts at {press_url}"
        )
        if len(dm) > DM_MAX_CHARS:
            dm = dm[: DM_MAX_CHARS - 3] + "..."
        lines += ["## Short DM", "", "```", dm, "```"]
    else:
        subject = (
            f"Partnership: {name} + {candidate.repo}"
            if template == "email-partner"
            else f"Integrate {name} into {candidate.repo}"
        )
        lines += [
            "## Subject",
            "",
            subject,
            "",
            "## Body",
            "",
            f"[context] Hi - we built {name} and noticed {candidate.full_name}.",
            "",
            one_liner,
            "",
            "**Proven capabilities:**",
            "",
            *bullets,
            "",
        ]
        offers = press.get("partnerOffers") or []
        if offers and template == "email-partner":
            lines += ["**What we offer:**", ""]
            lines += [f"- **{o.get('type', '')}:** {o.get('description', '')}" for o in offers]
            lines.append("")
        lines += [
            "**Links:**",
            f"- Press page: {press_url}",
            f"- Outreach pack: {outreach_url}",
            f"- GitHub: https://github.com/{org}/{slug}",
        ]
    lines += [
        "",
        "---",
        "",
        f"_Generated for {candidate.full_name} by Target List Generator v{SCORING_VERSION}_",
        f"_Source lock: {sourcelock} | {generated_at}_",
        "",
    ]
    return "\n".join(lines)


# --- Lab reports ------------------------------------------------------------


def render_experiment_decisions(report: EvaluationReport) -> str:
    lines = ["# Experiment Decisions Report", "", f"*Generated: {_date(report)}*", ""]
    if not report.evaluations:
        lines += ["No active experiments to evaluate.", ""]
    else:
        lines += [
            "## Evaluations",
            "",
            "| Experiment | Status | Control (n) | Variant (n) | Control Rate | Variant Rate | Winner | Recommendation |",
            "|------------|--------|-------------|-------------|--------------|--------------|--------|----------------|",
        ]
        for ev in report.evaluations:
            lines.append(
                f"| {ev.name or ev.experiment_id} | {ev.status} | {ev.control_entries} "
                f"| {ev.variant_entries} | {ev.control_reply_rate} | {ev.variant_reply_rate} "
                f"| {ev.winner_key or '-'} | {ev.recommendation} |"
            )
        lines.append("")
    if report.warnings:
        lines += ["## Warnings", ""]
        lines += [f"- {w}" for w in report.warnings]
        lines.append("")
    return "\n".join(lines)


def render_baseline(baseline: OpsBaseline, runner_rate: float) -> str:
    period = baseline.period
    lines = [
        "# Ops Baseline Report",
        "",
        f"**Run count:** {baseline.run_count}",
        f"**Period:** {period.start or 'N/A'} to {period.end or 'N/A'} ({period.cadence})",
        "",
        "## Performance",
        f"- Avg runtime: {round_int(baseline.avg_runtime_ms / 1000)}s",
        f"- P95 runtime: {round_int(baseline.p95_runtime_ms / 1000)}s",
        f"- Stddev runtime: {round_int(baseline.stddev_runtime_ms / 1000)}s",
        f"- Confidence: {baseline.confidence_label}",
        f"- Avg cache hit rate: {round_int(baseline.avg_cache_hit_rate * 100)}%",
        f"- Failure rate: {round_int(baseline.failure_rate * 100)}%",
        "",
    ]
    if baseline.adapter_stats:
        lines += [
            "## Adapter Performance",
            "| Adapter | Avg Calls | Avg Cached | Hit Rate |",
            "|---------|-----------|------------|----------|",
        ]
        for namespace, stats in baseline.adapter_stats.items():
            lines.append(
                f"| {namespace} | {stats.avg_calls} | {stats.avg_cached} | {round_int(stats.hit_rate * 100)}% |"
            )
        lines.append("")
    projection = baseline.projection
    lines += [
        "## Cost Projection (Monthly)",
        f"- Estimated runs: {projection.monthly_run_count}",
        f"- Estimated minutes: {projection.estimated_minutes}",
        f"- Estimated cost: ${projection.estimated_cost:.3f}",
        f"- Rate: ${runner_rate}/min",
        "",
    ]
    if projection.risk_items:
        lines += ["## Risks"]
        lines += [f"- {risk}" for risk in projection.risk_items]
        lines.append("")
    if baseline.minute_budgets:
        lines += [
            "## Minutes Budget Reality Check",
            "| Budget (min/mo) | Max Runs | Recommended Preset | Headroom |",
            "|-----------------|----------|-------------------|----------|",
        ]
        for tier, budget in baseline.minute_budgets.items():
            lines.append(
                f"| {tier} | {budget.max_runs_per_month} | {budget.recommended_preset} | {budget.headroom} min |"
            )
        lines.append("")
        tier, smallest = next(iter(baseline.minute_budgets.items()))
        if smallest.what_stops:
            lines += [f"## What Stops If Minutes Ran Out? ({tier} min budget)"]
            lines += [f"- {item}" for item in smallest.what_stops]
            lines.append("")
    lines += [f"*Generated: {_date(baseline)}*", ""]
    return "\n".join(lines)


def render_recommendations(report: RecommendationReport) -> str:
    lines = ["# Recommendations", "", f"*Generated: {_date(report)}*", ""]
    if not report.recommendations:
        lines += ["No recommendations this cycle.", ""]
    else:
        lines += [
            "| Priority | Category | Slug | Insight | Action |",
            "|----------|----------|------|---------|--------|",
        ]
        for rec in report.recommendations:
            lines.append(
                f"| {rec.priority} | {rec.category} | {rec.slug} | {rec.insight} | {rec.action} |"
            )
        lines.append("")
    docs = report.lint_insights.docs_to_rewrite
    if docs:
        lines += ["## Docs To Rewrite", ""]
        lines += [f"- {item['suggestion']}" for item in docs]
        lines.append("")
    return "\n".join(lines)


def render_promo_decisions(report: PromoDecisionReport) -> str:
    lines = ["# Promo Decisions", "", f"*Generated: {_date(report)}*", "", "## Decisions", ""]
    if report.decisions:
        lines += ["| Slug | Action | Score | Top Reason |", "|------|--------|-------|------------|"]
        for d in report.decisions:
            top_reason = d.explanation[0] if d.explanation else "-"
            lines.append(f"| {d.slug} | {d.action} | {d.score} | {top_reason} |")
    else:
        lines.append("No candidates in queue.")
    budget = report.budget
    lines += [
        "",
        "## Budget",
        "",
        f"- **Tier:** {budget.tier} min/month",
        f"- **Headroom:** {budget.headroom} min",
        f"- **Items allowed this cycle:** {budget.items_allowed}",
        "",
    ]
    if report.warnings:
        lines += ["## Warnings", ""]
        lines += [f"- {w}" for w in report.warnings]
        lines.append("")
    return "\n".join(lines)


def render_drift(drift: DecisionDrift) -> str:
    lines = ["# Decision Drift Report", "", f"*Generated: {_date(drift)}*", "", "## Entrants", ""]
    lines += [f"- {slug}" for slug in drift.entrants] or ["No new entrants."]
    lines += ["", "## Exits", ""]
    lines += [f"- {slug}" for slug in drift.exits] or ["No exits."]
    lines += ["", "## Score Deltas", ""]
    if drift.score_deltas:
        lines += ["| Slug | Prev Score | Curr Score | Delta |", "|------|-----------|-----------|-------|"]
        for d in drift.score_deltas:
            sign = "+" if d.delta > 0 else ""
            lines.append(f"| {d.slug} | {d.prev_score} | {d.curr_score} | {sign}{d.delta} |")
    else:
        lines.append("No common slugs to compare.")
    lines += ["", "## Action Changes", ""]
    lines += [
        f"- **{c.slug}**: {c.prev_action} -> {c.curr_action}" for c in drift.action_changes
    ] or ["No action changes."]
    lines += [
        "",
        "## Summary",
        "",
        f"- **Total changed:** {drift.summary.total_changed}",
        f"- **Total stable:** {drift.summary.total_stable}",
        "",
    ]
    return "\n".join(lines)
