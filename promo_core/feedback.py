"""Outreach feedback parsing and summary statistics."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime

from pydantic import ValidationError

from .schemas import FeedbackEntry, FeedbackSummary, OutcomeCounts
from .stats import round_half_up

logger = logging.getLogger(__name__)

EXPERIMENT_INSIGHT_MIN_ENTRIES = 5


def parse_feedback_lines(content: str) -> list[FeedbackEntry]:
    """Parse JSONL feedback, skipping blank, malformed or incomplete lines."""
    entries: list[FeedbackEntry] = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed JSONL line: {line[:80]}")
            continue
        if not isinstance(payload, dict):
            logger.warning(f"Skipping non-object JSONL line: {line[:80]}")
            continue
        try:
            entries.append(FeedbackEntry.from_dict(payload))
        except ValidationError:
            logger.warning(f"Skipping invalid feedback entry: {line[:80]}")
    return entries


def compute_feedback_summary(
    entries: Sequence[FeedbackEntry],
    generated_at: datetime,
) -> FeedbackSummary:
    per_channel: dict[str, OutcomeCounts] = {}
    per_slug: dict[str, OutcomeCounts] = {}
    per_experiment: dict[str, dict[str, OutcomeCounts]] = {}
    total_replied = 0

    for entry in entries:
        per_channel.setdefault(entry.channel, OutcomeCounts()).increment(entry.outcome)
        per_slug.setdefault(entry.slug, OutcomeCounts()).increment(entry.outcome)
        if entry.outcome == "replied":
            total_replied += 1
        if entry.experiment_id and entry.variant_key:
            arms = per_experiment.setdefault(entry.experiment_id, {})
            arms.setdefault(entry.variant_key, OutcomeCounts()).increment(entry.outcome)

    best_channel: str | None = None
    best_ratio = -1.0
    for channel, counts in per_channel.items():
        if counts.sent > 0:
            ratio = counts.replied / counts.sent
            if ratio > best_ratio:
                best_ratio = ratio
                best_channel = channel

    return FeedbackSummary(
        generated_at=generated_at,
        total_entries=len(entries),
        per_channel=per_channel,
        per_slug=per_slug,
        recommendations=_recommendations(per_channel, per_slug, per_experiment),
        best_performing_channel=best_channel,
        reply_rate=round_half_up(total_replied / len(entries), 4) if entries else 0,
        per_experiment=per_experiment,
    )


def _recommendations(
    per_channel: dict[str, OutcomeCounts],
    per_slug: dict[str, OutcomeCounts],
    per_experiment: dict[str, dict[str, OutcomeCounts]],
) -> list[str]:
    notes: list[str] = []
    for channel, counts in per_channel.items():
        if counts.total == 0:
            continue
        if counts.replied / counts.total > 0.5:
            notes.append(f"{channel} performs well -- prioritize for future runs")
        if counts.ignored / counts.total > 0.7:
            notes.append(f"{channel} underperforming -- review approach or drop")

    for slug, counts in per_slug.items():
        if counts.total > 0 and counts.replied == 0:
            notes.append(f"{slug} has no engagement -- review messaging")

    for experiment_id, arms in per_experiment.items():
        control = arms.get("control") or OutcomeCounts()
        for key, variant in arms.items():
            if key == "control":
                continue
            if control.total < EXPERIMENT_INSIGHT_MIN_ENTRIES or variant.total < EXPERIMENT_INSIGHT_MIN_ENTRIES:
                notes.append(
                    f"{experiment_id}: insufficient data "
                    f"({control.total} control, {variant.total} variant entries)"
                )
                continue
            control_rate = control.replied / control.total
            variant_rate = variant.replied / variant.total
            if control_rate > 0 and variant_rate / control_rate > 2:
                ratio = round_half_up(variant_rate / control_rate, 1)
                notes.append(f"{experiment_id}: {key} outperforms control ({ratio}x reply rate)")
            elif variant_rate > 0 and control_rate / variant_rate > 2:
                notes.append(f"{experiment_id}: control outperforms {key} -- consider concluding")
    return notes
