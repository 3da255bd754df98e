"""Submission queue health statistics."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from .schemas import LintFailure, QueueHealthSnapshot, StuckSubmission, Submission
from .stats import days_between, median, parse_timestamp, round_half_up, round_int

OPEN_STATUSES = ("pending", "needs-info")
CLOSED_STATUSES = ("accepted", "rejected")


def compute_time_in_status(
    submissions: Sequence[Submission],
    now: datetime,
) -> dict[str, float | None]:
    """Median days spent per status; open submissions are measured up to ``now``."""
    durations: dict[str, list[float]] = {}
    for sub in submissions:
        start = parse_timestamp(sub.submitted_at)
        if start is None:
            continue
        end = parse_timestamp(sub.updated_at) or now
        durations.setdefault(sub.status, []).append(round_half_up(days_between(start, end), 1))
    return {status: median(values) for status, values in durations.items()}


def count_lint_failures(
    lint_reports: Mapping[str, Mapping[str, Any]],
    limit: int = 10,
) -> list[LintFailure]:
    counts: Counter[str] = Counter()
    for report in lint_reports.values():
        for reason in report.get("errors") or []:
            counts[str(reason)] += 1
        for reason in report.get("warnings") or []:
            counts[str(reason)] += 1
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [LintFailure(reason=reason, count=count) for reason, count in ordered[:limit]]


def analyze_queue_health(
    submissions: Sequence[Submission],
    now: datetime,
    lint_reports: Mapping[str, Mapping[str, Any]] | None = None,
    stuck_days: int = 7,
    window_days: int = 30,
) -> QueueHealthSnapshot:
    lint_reports = lint_reports or {}
    if not submissions:
        return QueueHealthSnapshot(generated_at=now)

    by_status: dict[str, int] = {}
    for sub in submissions:
        by_status[sub.status] = by_status.get(sub.status, 0) + 1

    stuck: list[StuckSubmission] = []
    for sub in submissions:
        submitted = parse_timestamp(sub.submitted_at)
        if sub.status not in OPEN_STATUSES or submitted is None:
            continue
        age = days_between(submitted, now)
        if age > stuck_days:
            stuck.append(StuckSubmission(slug=sub.slug, status=sub.status, days_pending=round_int(age)))

    completed: list[float] = []
    for sub in submissions:
        start = parse_timestamp(sub.submitted_at)
        end = parse_timestamp(sub.updated_at)
        if sub.status in CLOSED_STATUSES and start and end:
            completed.append(days_between(start, end))
    median_days = median(completed)

    window_start = now - timedelta(days=window_days)
    throughput = 0
    for sub in submissions:
        updated = parse_timestamp(sub.updated_at)
        if sub.status == "accepted" and updated is not None and updated >= window_start:
            throughput += 1

    return QueueHealthSnapshot(
        generated_at=now,
        submissions=len(submissions),
        by_status=by_status,
        stuck_count=len(stuck),
        stuck_slugs=stuck,
        top_lint_failures=count_lint_failures(lint_reports),
        median_days_pending=round_half_up(median_days, 1) if median_days is not None else None,
        throughput=throughput,
        time_in_status=compute_time_in_status(submissions, now),
    )
