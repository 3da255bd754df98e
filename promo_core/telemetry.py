"""Telemetry event parsing and rollup with anti-gaming guardrails."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from pydantic import ValidationError

from .schemas import (
    SuspiciousDay,
    TelemetryEvent,
    TelemetryGuardrails,
    TelemetryMetrics,
    TelemetryRollup,
)
from .stats import iso_week, parse_timestamp, round_half_up

logger = logging.getLogger(__name__)

VALID_EVENT_TYPES = (
    "copy_proof_link",
    "copy_bundle",
    "copy_verify_cmd",
    "copy_install",
    "copy_proof_bullets",
    "copy_claim",
    "click_evidence_link",
    "click_receipt_link",
    "click_submit_link",
)


def parse_events(content: str, strict_types: bool = False) -> list[TelemetryEvent]:
    """Parse JSONL events; lines without ``type`` and ``timestamp`` are skipped.

    With ``strict_types`` only the known event types survive.
    """
    events: list[TelemetryEvent] = []
    skipped = 0
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
            if not isinstance(payload, dict):
                raise ValueError("event is not an object")
            if payload.get("payload") is None:
                payload["payload"] = {}
            event = TelemetryEvent.from_dict(payload)
            if strict_types and event.type not in VALID_EVENT_TYPES:
                raise ValueError(f"unknown event type {event.type}")
            events.append(event)
        except (ValueError, ValidationError):
            skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} malformed telemetry line(s)")
    return events


def week_key(event: TelemetryEvent) -> str | None:
    week = event.payload.get("week")
    if week:
        return str(week)
    moment = parse_timestamp(event.timestamp)
    return iso_week(moment) if moment else None


def group_events_by_day(events: Sequence[TelemetryEvent]) -> dict[str, list[TelemetryEvent]]:
    grouped: dict[str, list[TelemetryEvent]] = {}
    for event in events:
        grouped.setdefault(event.day, []).append(event)
    return dict(sorted(grouped.items()))


def compute_metrics(
    by_type: Mapping[str, int],
    by_week: Mapping[str, Mapping[str, int]] | None = None,
) -> TelemetryMetrics:
    proof_link = by_type.get("copy_proof_link", 0)
    bundle = by_type.get("copy_bundle", 0)
    verify_cmd = by_type.get("copy_verify_cmd", 0)
    verify_total = proof_link + bundle + verify_cmd
    trust_by_week = {
        week: counts.get("copy_bundle", 0)
        + counts.get("copy_verify_cmd", 0)
        + counts.get("click_receipt_link", 0)
        for week, counts in (by_week or {}).items()
    }
    return TelemetryMetrics(
        verification_rate=round_half_up(bundle / verify_total, 4) if verify_total else 0,
        total_verify_actions=verify_total,
        total_proof_actions=(
            by_type.get("copy_proof_bullets", 0)
            + by_type.get("copy_claim", 0)
            + by_type.get("click_evidence_link", 0)
        ),
        submission_clicks=by_type.get("click_submit_link", 0),
        trust_interaction_score_by_week=trust_by_week,
    )


def aggregate_events(
    events: Sequence[TelemetryEvent],
    generated_at: datetime,
    enable_caps: bool = True,
    daily_cap_per_type: int = 50,
    spike_threshold: int = 300,
) -> TelemetryRollup:
    """Count events by type, slug and week.

    With caps enabled, events beyond ``daily_cap_per_type`` for the same
    ``day:type`` key are dropped and counted in ``eventsCapped``. Any day
    whose surviving total exceeds ``spike_threshold`` is reported as
    suspicious, but its events are still counted.
    """
    guardrails = TelemetryGuardrails(total_events_processed=len(events))

    kept: list[TelemetryEvent] = []
    per_day_type: dict[str, int] = {}
    for event in events:
        if enable_caps:
            key = f"{event.day}:{event.type}"
            seen = per_day_type.get(key, 0)
            if seen >= daily_cap_per_type:
                guardrails.events_capped += 1
                continue
            per_day_type[key] = seen + 1
        kept.append(event)

    day_totals: dict[str, int] = {}
    for event in kept:
        day_totals[event.day] = day_totals.get(event.day, 0) + 1
    guardrails.suspicious_days = [
        SuspiciousDay(day=day, count=count)
        for day, count in sorted(day_totals.items())
        if count > spike_threshold
    ]

    by_type: dict[str, int] = {}
    by_slug: dict[str, dict[str, int]] = {}
    by_week: dict[str, dict[str, int]] = {}
    for event in kept:
        by_type[event.type] = by_type.get(event.type, 0) + 1
        slug = event.payload.get("slug")
        if slug:
            counts = by_slug.setdefault(str(slug), {})
            counts[event.type] = counts.get(event.type, 0) + 1
        week = week_key(event)
        if week:
            counts = by_week.setdefault(week, {})
            counts[event.type] = counts.get(event.type, 0) + 1

    return TelemetryRollup(
        generated_at=generated_at,
        total_events=len(kept),
        by_type=by_type,
        by_slug=by_slug,
        by_week=by_week,
        metrics=compute_metrics(by_type, by_week),
        guardrails=guardrails,
    )
