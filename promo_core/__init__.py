"""
Promo Core Module

Deterministic scoring, decision and aggregation logic.

This module provides:
- Candidate discovery, deduplication and exclusion
- Weighted target scoring with auditable breakdowns
- Experiment, promotion and recommendation evaluators
- Telemetry, ops-baseline and queue-health aggregation

Nothing in here performs network I/O or decides process exit codes.
"""

__version__ = "0.1.0"
