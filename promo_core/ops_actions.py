"""Operator action items derived from recent ops history."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .schemas import CapsChange, OpsAction, OpsRun, PromoQueue
from .stats import round_int

ERROR_RUNBOOK: dict[str, str] = {
    "RATE_LIMIT": "Increase maxAgeHours to use more cached results",
    "TIMEOUT": "Reduce concurrency or name count in profile.json",
    "COE_NOT_FOUND": "Check npm install -g @mcptoolshop/clearance-opinion-engine step",
    "NETWORK": "Check network connectivity; retry on next scheduled run",
    "PARSE": "Review batch output for malformed JSON responses",
    "UNKNOWN": "Check workflow logs for details",
}


def _cache_actions(recent: Sequence[OpsRun], warning_rate: float) -> list[OpsAction]:
    totals: dict[str, list[int]] = {}
    for run in recent:
        for namespace, calls in run.cost_stats.adapter_breakdown.items():
            agg = totals.setdefault(namespace, [0, 0])
            agg[0] += calls.calls
            agg[1] += calls.cached
    actions = []
    for namespace, (calls, cached) in totals.items():
        rate = cached / calls if calls > 0 else 1.0
        if rate < warning_rate:
            actions.append(
                OpsAction(
                    level="warning",
                    category="cache",
                    message=(
                        f'Adapter "{namespace}" cache hit rate is {round_int(rate * 100)}% '
                        f"(below {round_int(warning_rate * 100)}% threshold)"
                    ),
                    action="Increase maxAgeHours in profile.json to serve more results from cache",
                    runbook_section="Cost Monitoring",
                )
            )
    return actions


def _error_actions(recent: Sequence[OpsRun], top_n: int = 3) -> list[OpsAction]:
    totals: dict[str, int] = {}
    for run in recent:
        for code, count in run.error_codes.items():
            totals[code] = totals.get(code, 0) + count
    top = sorted(totals.items(), key=lambda kv: -kv[1])[:top_n]
    return [
        OpsAction(
            level="error",
            category="errors",
            message=f'Error code "{code}" occurred {count} time(s) in recent runs',
            action=ERROR_RUNBOOK.get(code, ERROR_RUNBOOK["UNKNOWN"]),
            runbook_section="Troubleshooting",
        )
        for code, count in top
    ]


def _promotion_actions(promo: Mapping[str, Any], queue: PromoQueue) -> list[OpsAction]:
    if promo.get("enabled") is not False:
        return []
    actions = [
        OpsAction(
            level="info",
            category="promotion",
            message="Promotion is currently disabled",
            action="Set enabled: true in promo.json when ready to activate promotion cycle",
        )
    ]
    if queue.slugs:
        names = ", ".join(queue.slug_names)
        actions.append(
            OpsAction(
                level="warning",
                category="promotion",
                message=f"{len(queue.slugs)} slug(s) queued ({names}) but promotion is disabled",
                action="Enable promotion in promo.json or clear the queue if promotion is not intended",
            )
        )
    return actions


def _duration_actions(recent: Sequence[OpsRun], spike_factor: float) -> list[OpsAction]:
    if len(recent) < 2:
        return []
    latest, others = recent[0], recent[1:]
    average = sum(r.total_duration_ms for r in others) / len(others)
    if average <= 0 or latest.total_duration_ms <= spike_factor * average:
        return []
    return [
        OpsAction(
            level="warning",
            category="duration",
            message=(
                f"Latest run took {round_int(latest.total_duration_ms / 1000)}s - more than "
                f"{spike_factor:g}x the average ({round_int(average / 1000)}s)"
            ),
            action="Review concurrency settings and name count; consider reducing if sustained",
            runbook_section="Troubleshooting",
        )
    ]


def _worthy_actions(queue: PromoQueue, worthy: Mapping[str, Any]) -> list[OpsAction]:
    repos = worthy.get("repos") or {}
    return [
        OpsAction(
            level="warning",
            category="worthy",
            message=f'Queued slug "{slug}" is not marked as worthy',
            action="Assess the repo against the worthy rubric or remove from promotion queue",
        )
        for slug in queue.slug_names
        if not (repos.get(slug) or {}).get("worthy")
    ]


def analyze_ops_history(
    history: Sequence[OpsRun],
    promo: Mapping[str, Any] | None = None,
    promo_queue: PromoQueue | None = None,
    worthy: Mapping[str, Any] | None = None,
    recent_count: int = 5,
    cache_hit_warning_rate: float = 0.70,
    duration_spike_factor: float = 2.0,
) -> list[OpsAction]:
    """History is newest first; only the ``recent_count`` latest runs are read."""
    recent = list(history[:recent_count])
    if not recent:
        return []
    queue = promo_queue or PromoQueue()
    actions: list[OpsAction] = []
    actions += _cache_actions(recent, cache_hit_warning_rate)
    actions += _error_actions(recent)
    actions += _promotion_actions(promo or {}, queue)
    actions += _duration_actions(recent, duration_spike_factor)
    actions += _worthy_actions(queue, worthy or {})
    return actions


def build_caps_diff(promo: Mapping[str, Any], history: Sequence[OpsRun]) -> dict[str, CapsChange]:
    """Compare promo caps with the snapshot recorded on the latest run."""
    caps = promo.get("caps") or {}
    snapshot = (history[0].caps_snapshot if history else None) or {}
    current = {
        "maxNamesPerRun": caps.get("maxNamesPerRun"),
        "failMode": caps.get("failMode"),
        "promoEnabled": promo.get("enabled"),
    }
    return {
        key: CapsChange(
            current=value,
            changed=key in snapshot and snapshot[key] != value,
        )
        for key, value in current.items()
    }
