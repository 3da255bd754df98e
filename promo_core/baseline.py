"""Ops baseline: runtime statistics, cost projection and minute budgets."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .schemas import (
    AdapterStats,
    BaselinePeriod,
    MinuteBudget,
    OpsBaseline,
    OpsRun,
    Projection,
    SchedulePreset,
)
from .stats import mean, percentile_nearest_rank, population_stddev, round_half_up, round_int

NO_DATA_RISK = "No run data available - baseline cannot be computed"


@dataclass
class BaselinePolicy:
    runner_rate_per_minute: float = 0.006
    budget_tiers: list[int] = field(default_factory=lambda: [200, 500, 1000])
    headroom_fraction: float = 0.80
    low_confidence_runs: int = 4
    medium_confidence_max_runs: int = 12
    low_cache_rate: float = 0.50
    high_failure_rate: float = 0.10
    # name, cadence, runs per month; most conservative first
    presets: list[tuple[str, str, int]] = field(
        default_factory=lambda: [
            ("conservative", "biweekly", 2),
            ("standard", "weekly", 4),
            ("aggressive", "2x-weekly", 8),
        ]
    )


def _cost(minutes: float, policy: BaselinePolicy) -> float:
    return round_half_up(minutes * policy.runner_rate_per_minute, 3)


def build_schedule_presets(avg_minutes: float, policy: BaselinePolicy) -> dict[str, SchedulePreset]:
    return {
        name: SchedulePreset(
            cadence=cadence,
            monthly_runs=runs,
            estimated_minutes=round_half_up(avg_minutes * runs, 1),
            estimated_cost=_cost(avg_minutes * runs, policy),
        )
        for name, cadence, runs in policy.presets
    }


def compute_minute_budgets(
    avg_minutes: float,
    presets: Mapping[str, SchedulePreset],
    adapter_stats: Mapping[str, AdapterStats],
    policy: BaselinePolicy | None = None,
) -> dict[str, MinuteBudget]:
    """Per spending tier: how many runs fit and the most aggressive preset that
    stays under ``headroom_fraction`` of the tier."""
    policy = policy or BaselinePolicy()
    by_aggressiveness = [name for name, _, _ in reversed(policy.presets)]
    fallback = policy.presets[0][0]

    budgets: dict[str, MinuteBudget] = {}
    for tier in policy.budget_tiers:
        max_runs = math.floor(tier / avg_minutes) if avg_minutes > 0 else 0
        recommended = next(
            (
                name
                for name in by_aggressiveness
                if presets[name].estimated_minutes <= tier * policy.headroom_fraction
            ),
            fallback,
        )
        headroom = round_half_up(tier - presets[recommended].estimated_minutes, 1)

        def over(name: str) -> bool:
            return name in presets and presets[name].estimated_minutes > tier

        stops: list[str] = []
        if over("aggressive"):
            stops.append("Aggressive (2x-weekly) not viable")
        if over("standard"):
            stops.append("Weekly schedule not viable - must run biweekly or less")
        if over("conservative"):
            stops.append("Even biweekly exceeds budget - manual runs only")
        for namespace, stats in adapter_stats.items():
            if stats.hit_rate == 0 and stats.avg_calls > 0:
                stops.append(f'Uncached adapter "{namespace}" adds cost')

        budgets[str(tier)] = MinuteBudget(
            max_runs_per_month=max_runs,
            recommended_preset=recommended,
            headroom=headroom,
            what_stops=stops,
        )
    return budgets


def _confidence(run_count: int, policy: BaselinePolicy) -> str:
    if run_count < policy.low_confidence_runs:
        return "Low"
    if run_count <= policy.medium_confidence_max_runs:
        return "Medium"
    return "High"


def _adapter_stats(history: Sequence[OpsRun]) -> dict[str, AdapterStats]:
    totals: dict[str, list[int]] = {}
    for run in history:
        for namespace, calls in run.cost_stats.adapter_breakdown.items():
            agg = totals.setdefault(namespace, [0, 0, 0])
            agg[0] += calls.calls
            agg[1] += calls.cached
            agg[2] += 1
    return {
        namespace: AdapterStats(
            avg_calls=round_half_up(total_calls / runs, 1),
            avg_cached=round_half_up(total_cached / runs, 1),
            hit_rate=round_half_up(total_cached / total_calls, 2) if total_calls else 0,
        )
        for namespace, (total_calls, total_cached, runs) in totals.items()
    }


def _minutes(run: OpsRun) -> float:
    if run.minutes_estimate:
        return run.minutes_estimate
    return max(1, math.ceil(run.total_duration_ms / 60000))


def compute_baseline(
    history: Sequence[OpsRun],
    generated_at: datetime,
    period: str = "weekly",
    policy: BaselinePolicy | None = None,
) -> OpsBaseline:
    policy = policy or BaselinePolicy()
    monthly_runs = 4 if period == "weekly" else 2

    if not history:
        presets = build_schedule_presets(0, policy)
        return OpsBaseline(
            generated_at=generated_at,
            period=BaselinePeriod(cadence=period),
            confidence_label="Low",
            schedule_presets=presets,
            projection=Projection(monthly_run_count=monthly_runs, risk_items=[NO_DATA_RISK]),
            minute_budgets=compute_minute_budgets(0, presets, {}, policy),
        )

    run_count = len(history)
    dates = sorted(r.date for r in history if r.date)
    durations = [r.total_duration_ms for r in history]
    avg_runtime = round_int(mean(durations))
    p95 = percentile_nearest_rank(durations, 0.95)
    stddev = round_int(population_stddev(durations, center=avg_runtime))

    avg_cache = round_half_up(mean([r.cost_stats.cache_hit_rate for r in history]), 2)
    avg_minutes = round_half_up(mean([_minutes(r) for r in history]), 1)
    failures = sum(1 for r in history if not r.batch_ok or r.publish_errors > 0)
    failure_rate = round_half_up(failures / run_count, 2)
    adapters = _adapter_stats(history)

    presets = build_schedule_presets(avg_minutes, policy)
    projected_minutes = round_half_up(avg_minutes * monthly_runs, 1)

    risks: list[str] = []
    if run_count < policy.low_confidence_runs:
        risks.append("Low run count - baseline may not be representative")
    if avg_cache < policy.low_cache_rate:
        risks.append("Low cache efficiency - consider increasing maxAgeHours")
    if failure_rate > policy.high_failure_rate:
        risks.append("High failure rate - review error codes")
    for namespace, stats in adapters.items():
        if stats.hit_rate == 0 and stats.avg_calls > 0:
            risks.append(f'Adapter "{namespace}" has no cache hits')

    return OpsBaseline(
        generated_at=generated_at,
        run_count=run_count,
        period=BaselinePeriod(
            start=dates[0] if dates else None,
            end=dates[-1] if dates else None,
            cadence=period,
        ),
        avg_runtime_ms=avg_runtime,
        p95_runtime_ms=p95,
        stddev_runtime_ms=stddev,
        confidence_label=_confidence(run_count, policy),
        avg_cache_hit_rate=avg_cache,
        avg_minutes_per_run=avg_minutes,
        failure_rate=failure_rate,
        adapter_stats=adapters,
        schedule_presets=presets,
        projection=Projection(
            monthly_run_count=monthly_runs,
            estimated_minutes=projected_minutes,
            estimated_cost=_cost(projected_minutes, policy),
            risk_items=risks,
        ),
        minute_budgets=compute_minute_budgets(avg_minutes, presets, adapters, policy),
    )
