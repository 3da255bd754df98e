"""Pipeline runner: loads inputs, runs one computation per step, writes artifacts."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError
from tqdm import tqdm

from promo_core.baseline import compute_baseline
from promo_core.decisions import evaluate_experiments
from promo_core.discovery import SeedRepo, build_queries, discover_candidates, load_signal_orgs
from promo_core.drift import build_drift
from promo_core.feedback import compute_feedback_summary, parse_feedback_lines
from promo_core.layering import merge_layers
from promo_core.ops_actions import analyze_ops_history, build_caps_diff
from promo_core.promo_decisions import PromoInputs, build_promo_decisions
from promo_core.queue_health import analyze_queue_health
from promo_core.recommendations import RecommendationInputs, build_recommendations
from promo_core.schemas import (
    BaseSchema,
    DecisionDrift,
    EvaluationReport,
    Experiment,
    FeedbackSummary,
    GitHubFacts,
    OpsActionsReport,
    OpsBaseline,
    OpsRun,
    PromoDecisionReport,
    PromoQueue,
    QueueHealthSnapshot,
    RecommendationReport,
    Submission,
    TargetList,
    TelemetryRollup,
    format_timestamp,
)
from promo_core.scoring import SCORING_VERSION, TargetScorer, build_pain_point_vocabulary, rank_candidates
from promo_core.telemetry import aggregate_events, group_events_by_day, parse_events
from signals.base import FetchContext, SearchProvider
from signals.cache import DayCache
from signals.facts import collect_github_facts
from signals.github import GitHubSearchProvider

from . import report
from .artifacts import ArtifactManager
from .config import KitConfig
from .errors import ErrorCode, ErrorTally, KitError

logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseSchema)

LOCAL_STEPS = (
    "feedback",
    "decisions",
    "telemetry",
    "queue_health",
    "baseline",
    "ops_actions",
    "recommendations",
    "promo_decisions",
    "drift",
)
NETWORK_STEPS = ("facts", "targets")


@dataclass
class StepOutcome:
    name: str
    ok: bool
    error: KitError | None = None


@contextmanager
def generation_guard(step: str) -> Iterator[None]:
    """Turn schema violations in generated output into ``MKT.GEN.INVALID``."""
    try:
        yield
    except ValidationError as exc:
        raise KitError(
            ErrorCode.GEN_INVALID,
            f"{step}: generated output failed validation",
            fix="This is a bug in the generator; report it with the input files",
            detail=str(exc).splitlines()[0],
        ) from exc


def _as_list(payload: Any, key: str) -> list[Any]:
    """Accept either a bare list or ``{key: [...]}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        value = payload.get(key)
        return list(value) if isinstance(value, list) else []
    return []


class PipelineRunner:
    """Runs kit steps against one data directory with an injected clock."""

    def __init__(
        self,
        config: KitConfig,
        root: str | Path,
        now: datetime,
        dry_run: bool = False,
        plots: bool = False,
        provider: SearchProvider | None = None,
    ):
        self.now = now
        self.plots = plots
        self.provider = provider
        self.artifacts = ArtifactManager(config, root, dry_run=dry_run)
        self.data = self.artifacts.data
        self.governance: dict[str, Any] = self.data.load_json("governance.json", {}) or {}
        self.config = config.with_governance(self.governance)
        self.artifacts.config = self.config

    @property
    def dry_run(self) -> bool:
        return self.artifacts.dry_run

    # --- loading helpers ---------------------------------------------------

    def _load_model(self, name: str, model: type[TModel]) -> TModel | None:
        payload = self.data.load_json(name)
        if payload is None:
            return None
        try:
            return model.from_dict(payload)
        except ValidationError as exc:
            logger.warning(f"Ignoring {name}: {str(exc).splitlines()[0]}")
            return None

    def _load_history(self) -> list[OpsRun]:
        """Ops history, newest first."""
        runs: list[OpsRun] = []
        for raw in _as_list(self.data.load_json("ops-history.json", []), "runs"):
            try:
                runs.append(OpsRun.from_dict(raw))
            except ValidationError:
                logger.warning("Skipping malformed ops-history entry")
        runs.sort(key=lambda r: r.date or "", reverse=True)
        return runs

    def _load_submissions(self) -> list[Submission]:
        subs: list[Submission] = []
        for raw in _as_list(self.data.load_json("submissions.json", []), "submissions"):
            try:
                subs.append(Submission.from_dict(raw))
            except ValidationError:
                logger.warning("Skipping malformed submission entry")
        return subs

    def _load_experiments(self) -> list[Experiment]:
        experiments: list[Experiment] = []
        for raw in _as_list(self.data.load_json("experiments.json", {}), "experiments"):
            try:
                experiments.append(Experiment.from_dict(raw))
            except ValidationError:
                logger.warning(f"Skipping malformed experiment {raw!r:.60}")
        return experiments

    def _load_queue(self) -> PromoQueue:
        return self._load_model("promo-queue.json", PromoQueue) or PromoQueue()

    def _feedback_summary(self) -> FeedbackSummary | None:
        summary = self._load_model("feedback-summary.json", FeedbackSummary)
        if summary is None and self.data.exists("feedback.jsonl"):
            entries = parse_feedback_lines(self.data.load_text("feedback.jsonl"))
            summary = compute_feedback_summary(entries, self.now)
        return summary

    def _fetch_context(self, throttle: bool) -> FetchContext:
        return FetchContext(
            now=self.now,
            throttle_seconds=self.config.github.throttle_seconds if throttle else 0.0,
        )

    def _github_provider(self, require_token: bool) -> SearchProvider:
        if self.provider is not None:
            return self.provider
        gh = self.config.github
        token = os.getenv(gh.token_env)
        if require_token and not token:
            raise KitError(
                ErrorCode.AUTH_DENIED,
                f"{gh.token_env} required - search API needs authentication",
                fix=f"Set {gh.token_env} or use --dry-run to preview queries",
            )
        return GitHubSearchProvider(
            token=token,
            api_url=gh.api_url,
            per_page=gh.per_page,
            timeout_seconds=gh.timeout_seconds,
            cache=DayCache(self.artifacts.cache_dir),
            token_env=gh.token_env,
        )

    def _enabled_slugs(self, overrides: Mapping[str, Any]) -> list[str]:
        slugs = [slug for slug, entry in overrides.items() if (entry or {}).get("publicProof") is True]
        if self.config.targeting.worthy_only:
            worthy = self.data.load_json("worthy.json")
            if worthy and worthy.get("repos"):
                allowed = {s for s, v in worthy["repos"].items() if (v or {}).get("worthy") is True}
                slugs = [s for s in slugs if s in allowed]
            else:
                logger.warning("worthy-only requested but worthy.json not found; no filtering applied")
        return slugs

    # --- steps -------------------------------------------------------------

    def facts(self) -> list[GitHubFacts]:
        overrides = self.data.require_json("overrides.json")
        slugs = self._enabled_slugs(overrides)
        if not slugs:
            logger.info("No tools with publicProof enabled; nothing to fetch")
            return []
        provider = self._github_provider(require_token=False)
        context = self._fetch_context(throttle=self.provider is None)
        collected = []
        for slug in tqdm(slugs, desc="facts", unit="tool", disable=len(slugs) < 2):
            with generation_guard("facts"):
                facts = collect_github_facts(provider, self.config.org.name, slug, context)
            for error in facts.errors:
                tqdm.write(f"  {slug}: {error}")
            self.artifacts.write_json(f"github-facts/{slug}.json", facts)
            collected.append(facts)
        return collected

    def targets(self, slugs: Sequence[str] | None = None) -> list[TargetList]:
        overrides = self.data.require_json("overrides.json")
        enabled = list(slugs) if slugs else self._enabled_slugs(overrides)
        if not enabled:
            logger.info("No tools with publicProof enabled; nothing to generate")
            return []

        snapshot = self.data.load_json("marketir/marketir.snapshot.json") or {}
        sourcelock = str(snapshot.get("lockSha256") or "")[:12] or "unknown"
        pain_points = build_pain_point_vocabulary(
            self.data.load_json_dir("marketir/data/audiences").values()
        )
        signal_snapshots = self.data.load_json_dir("signals")
        latest_signals = signal_snapshots[max(signal_snapshots)] if signal_snapshots else None
        signal_orgs = load_signal_orgs(latest_signals, self.config.org.self_accounts)

        offline_preview = self.dry_run and self.provider is None
        provider = None if offline_preview else self._github_provider(require_token=True)
        context = self._fetch_context(throttle=self.provider is None)
        weights = self.config.scoring_weights()
        targeting_cfg = self.config.targeting

        results: list[TargetList] = []
        for slug in tqdm(enabled, desc="targets", unit="tool", disable=len(enabled) < 2):
            tool = self.data.load_json(f"marketir/data/tools/{slug}.json")
            if not tool:
                logger.warning(f"No MarketIR data for {slug}, skipping")
                continue
            targeting = tool.get("targeting")
            if not targeting:
                logger.warning(f"No targeting block for {slug}, skipping")
                continue

            profile = merge_layers(
                [
                    ("registry", tool),
                    ("facts", self.data.load_json(f"github-facts/{slug}.json")),
                    ("override", overrides.get(slug)),
                ]
            )
            topics = targeting.get("topics") or []
            keywords = targeting.get("keywords") or []
            comparables = [c.get("target") for c in (tool.get("press") or {}).get("comparables") or []]
            queries = build_queries(
                topics,
                keywords,
                [c for c in comparables if c],
                signal_orgs,
                signal_org_limit=targeting_cfg.signal_org_limit,
            )
            seeds = [SeedRepo(s["owner"], s["repo"]) for s in targeting.get("seedRepos") or []]

            if provider is None:
                for query in queries:
                    tqdm.write(f"  [dry-run] {query.strategy} search: {query.query}")
                for seed in seeds:
                    tqdm.write(f"  [dry-run] seed repo: {seed.owner}/{seed.repo}")
                continue

            pool = discover_candidates(queries, provider, context, seeds=seeds)
            pool.apply_exclusions(targeting.get("exclusions") or [], self.config.org.self_accounts)
            if pool.errors:
                tally = ErrorTally()
                tally.record_all(pool.errors)
                logger.warning(f"{slug}: {tally.total} fetch error(s) {tally.top()}")

            with generation_guard("targets"):
                scorer = TargetScorer(topics, keywords, self.now, pain_points, weights)
                ranked, total = rank_candidates(
                    scorer.score_all(pool.values()), targeting_cfg.max_candidates
                )
                pool.stats.after_scoring = len(ranked)
                target_list = TargetList(
                    tool=slug,
                    generated_at=self.now,
                    scoring_version=SCORING_VERSION,
                    scoring_weights=weights.to_dict(),
                    sourcelock=sourcelock,
                    discovery_stats=pool.stats,
                    errors=pool.errors,
                    candidate_count=len(ranked),
                    total_scored=total,
                    candidates=ranked,
                )
            self._write_targets(slug, target_list, profile.values)
            results.append(target_list)
        return results

    def _write_targets(self, slug: str, targets: TargetList, tool: Mapping[str, Any]) -> None:
        base = self.artifacts.targets_dir(slug)
        cfg = self.config
        self.artifacts.write_json(f"{base}/targets.json", targets, public=True)
        self.artifacts.write_text(f"{base}/targets.csv", report.render_targets_csv(targets))
        self.artifacts.write_text(
            f"{base}/README.md",
            report.render_targets_readme(
                targets, cfg.scoring_weights(), cfg.targeting.max_drafts, cfg.org.site_url
            ),
        )
        generated = format_timestamp(targets.generated_at)
        for candidate in targets.candidates[: cfg.targeting.max_drafts]:
            self.artifacts.write_text(
                f"{base}/drafts/{report.draft_filename(candidate)}",
                report.render_outreach_draft(
                    candidate,
                    tool,
                    slug,
                    cfg.org.name,
                    cfg.org.site_url,
                    targets.sourcelock,
                    generated,
                ),
            )

    def feedback(self) -> FeedbackSummary:
        entries = parse_feedback_lines(self.data.load_text("feedback.jsonl"))
        with generation_guard("feedback"):
            summary = compute_feedback_summary(entries, self.now)
        self.artifacts.write_json("feedback-summary.json", summary)
        return summary

    def decisions(self) -> EvaluationReport:
        policy = self.config.policy
        summary = self._feedback_summary()
        with generation_guard("decisions"):
            result = evaluate_experiments(
                self._load_experiments(),
                summary.per_experiment if summary else {},
                self.now,
                threshold=policy.min_experiment_data_threshold,
                winner_ratio=policy.winner_ratio,
                epsilon=policy.ratio_epsilon,
            )
        self.artifacts.write_json("experiment-decisions.json", result)
        self.artifacts.write_text(
            "lab/decisions/experiment-decisions.md", report.render_experiment_decisions(result)
        )
        return result

    def telemetry(self) -> TelemetryRollup:
        guardrails = self.config.guardrails
        events = parse_events(
            self.data.load_jsonl_dir("telemetry/events"),
            strict_types=self.config.policy.strict_event_types,
        )
        with generation_guard("telemetry"):
            rollup = aggregate_events(
                events,
                self.now,
                enable_caps=True,
                daily_cap_per_type=guardrails.daily_telemetry_cap_per_type,
                spike_threshold=guardrails.spike_threshold,
            )
        self.artifacts.write_json("telemetry/rollup.json", rollup)
        for day, day_events in group_events_by_day(events).items():
            by_type: dict[str, int] = {}
            for event in day_events:
                by_type[event.type] = by_type.get(event.type, 0) + 1
            self.artifacts.write_json(
                f"telemetry/daily/{day}.json",
                {"date": day, "total": len(day_events), "byType": by_type},
            )
        if self.plots and not self.dry_run:
            from .plotting import PlotGenerator

            PlotGenerator().plot_weekly_events(rollup, self.artifacts.plots_dir / "telemetry-weekly.png")
        return rollup

    def queue_health(self) -> QueueHealthSnapshot:
        policy = self.config.policy
        with generation_guard("queue-health"):
            snapshot = analyze_queue_health(
                self._load_submissions(),
                self.now,
                lint_reports=self.data.load_json_dir("lint-reports"),
                stuck_days=policy.stuck_threshold_days,
                window_days=policy.throughput_window_days,
            )
        self.artifacts.write_json("queue-health.json", snapshot)
        return snapshot

    def baseline(self) -> OpsBaseline:
        history = self._load_history()
        policy = self.config.baseline_policy()
        with generation_guard("baseline"):
            result = compute_baseline(history, self.now, self.config.policy.baseline_period, policy)
        self.artifacts.write_json("baseline.json", result)
        self.artifacts.write_text(
            "lab/baseline/baseline.md", report.render_baseline(result, policy.runner_rate_per_minute)
        )
        if self.plots and not self.dry_run:
            from .plotting import PlotGenerator

            PlotGenerator().plot_runtime_history(history, self.artifacts.plots_dir / "runtime-history.png")
        return result

    def ops_actions(self) -> OpsActionsReport:
        history = self._load_history()
        promo = self.data.load_json("promo.json", {}) or {}
        policy = self.config.policy
        with generation_guard("ops-actions"):
            result = OpsActionsReport(
                generated_at=self.now,
                actions=analyze_ops_history(
                    history,
                    promo,
                    self._load_queue(),
                    self.data.load_json("worthy.json", {}) or {},
                    recent_count=policy.ops_recent_runs,
                    cache_hit_warning_rate=policy.cache_hit_warning_rate,
                    duration_spike_factor=policy.duration_spike_factor,
                ),
                caps_diff=build_caps_diff(promo, history),
            )
        self.artifacts.write_json("ops-actions.json", result)
        return result

    def recommendations(self) -> RecommendationReport:
        evaluations = self._load_model("experiment-decisions.json", EvaluationReport)
        inputs = RecommendationInputs(
            rollup=self._load_model("telemetry/rollup.json", TelemetryRollup),
            queue_health=self._load_model("queue-health.json", QueueHealthSnapshot),
            submissions=self._load_submissions(),
            lint_reports=self.data.load_json_dir("lint-reports"),
            overrides=self.data.load_json("overrides.json", {}) or {},
            evaluations=evaluations.evaluations if evaluations else [],
        )
        guardrails = {
            "dailyEventCaps": {"max": self.config.guardrails.daily_telemetry_cap_per_type},
            "spikeThreshold": self.config.guardrails.spike_threshold,
            "maxDataPatchesPerRun": self.config.guardrails.max_data_patches_per_run,
            "decisionsFrozen": bool(self.governance.get("decisionsFrozen", False)),
        }
        with generation_guard("recommendations"):
            result = build_recommendations(
                inputs,
                self.now,
                max_recommendations=self.config.guardrails.max_recommendations,
                thresholds=self.config.recommendation_thresholds(),
                guardrails=guardrails,
            )
        self.artifacts.write_json("recommendations.json", result)
        self.artifacts.write_text(
            "lab/recommendations/recommendations.md", report.render_recommendations(result)
        )
        return result

    def promo_decisions(self) -> PromoDecisionReport:
        inputs = PromoInputs(
            queue=self._load_queue(),
            overrides=self.data.load_json("overrides.json", {}) or {},
            worthy=self.data.load_json("worthy.json", {}) or {},
            feedback=self._feedback_summary(),
            history=self._load_history(),
            baseline=self.data.load_json("baseline.json", {}) or {},
            experiments=self._load_experiments(),
        )
        with generation_guard("promo-decisions"):
            result = build_promo_decisions(inputs, self.now, self.config.promo_policy())
        if self.governance.get("decisionsFrozen"):
            result.warnings.append("Decisions are frozen by governance - review before acting")
        self.artifacts.write_json("promo-decisions.json", result)
        self.artifacts.write_text(
            "lab/decisions/promo-decisions.md", report.render_promo_decisions(result)
        )
        return result

    def drift(self) -> DecisionDrift:
        current = self._load_model("promo-decisions.json", PromoDecisionReport)
        previous = self._load_model("decision-drift-snapshot.json", PromoDecisionReport)
        with generation_guard("drift"):
            result = build_drift(previous, current, self.now)
        self.artifacts.write_json("decision-drift.json", result)
        self.artifacts.write_text("lab/decisions/decision-drift.md", report.render_drift(result))
        if current is not None:
            self.artifacts.write_json("decision-drift-snapshot.json", current)
        return result

    # --- orchestration -----------------------------------------------------

    def run_step(self, name: str) -> Any:
        if name not in LOCAL_STEPS and name not in NETWORK_STEPS:
            raise ValueError(f"Unknown step: {name}")
        return getattr(self, name)()

    def run_all(self, include_network: bool = False) -> list[StepOutcome]:
        """Run every step in order; a KitError is recorded and the next step runs."""
        steps = (NETWORK_STEPS + LOCAL_STEPS) if include_network else LOCAL_STEPS
        outcomes: list[StepOutcome] = []
        self.artifacts.snapshot_config()
        pbar = tqdm(steps, desc="run-all", unit="step")
        for name in pbar:
            pbar.set_postfix({"step": name})
            try:
                self.run_step(name)
                outcomes.append(StepOutcome(name=name, ok=True))
            except KitError as exc:
                tqdm.write(f"  {name}: {exc.code.value} {exc.headline}")
                outcomes.append(StepOutcome(name=name, ok=False, error=exc))
        return outcomes
