from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a UTC timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    value = _ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")

Outcome = Literal["sent", "opened", "replied", "ignored", "bounced"]
Priority = Literal["high", "medium", "low"]
EvaluationStatus = Literal["needs-more-data", "winner-found", "no-decision"]
PromoAction = Literal["promote", "skip", "defer"]

PRIORITY_ORDER: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


class BaseSchema(BaseModel):
    """Persisted records: snake_case in Python, camelCase on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


def _null_to_default(model: type[BaseModel], value: Any, info: ValidationInfo) -> Any:
    """A JSON null falls back to the field default."""
    if value is None and info.field_name is not None:
        return model.model_fields[info.field_name].get_default(call_default_factory=True)
    return value


class GeneratedArtifact(BaseSchema):
    generated_at: datetime

    @field_validator("generated_at")
    @classmethod
    def generated_at_utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["generatedAt"] = format_timestamp(self.generated_at)
        return data


# --- Discovery & scoring ---------------------------------------------------


class RepoItem(BaseSchema):
    """One repository as returned by the search collaborator."""

    owner: str
    name: str
    full_name: str
    description: str = ""
    star_count: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    last_pushed_at: str | None = None
    archived: bool = False
    url: str = ""
    owner_type: str = "unknown"

    @classmethod
    def from_github(cls, payload: Mapping[str, Any]) -> "RepoItem":
        full_name = str(payload.get("full_name") or "")
        owner_info = payload.get("owner") or {}
        owner = owner_info.get("login") if isinstance(owner_info, Mapping) else None
        owner_type = owner_info.get("type") if isinstance(owner_info, Mapping) else None
        return cls(
            owner=owner or full_name.split("/")[0],
            name=str(payload.get("name") or full_name.split("/")[-1]),
            full_name=full_name,
            description=payload.get("description") or "",
            star_count=int(payload.get("stargazers_count") or 0),
            language=payload.get("language"),
            topics=list(payload.get("topics") or []),
            last_pushed_at=payload.get("pushed_at"),
            archived=bool(payload.get("archived", False)),
            url=payload.get("html_url") or f"https://github.com/{full_name}",
            owner_type=str(owner_type or "unknown").lower(),
        )


class Candidate(BaseSchema):
    owner: str
    repo: str
    full_name: str
    description: str = ""
    stars: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    pushed_at: str | None = None
    owner_type: str = "unknown"
    why_matched: list[str] = Field(default_factory=list)
    score: int = 0
    score_breakdown: dict[str, int] = Field(default_factory=dict)
    scoring_version: str | None = None
    html_url: str = ""
    archived: bool = Field(default=False, exclude=True)

    @classmethod
    def from_repo(cls, item: RepoItem) -> "Candidate":
        return cls(
            owner=item.owner,
            repo=item.name,
            full_name=item.full_name,
            description=(item.description or "")[:200],
            stars=item.star_count,
            language=item.language,
            topics=list(item.topics),
            pushed_at=item.last_pushed_at,
            owner_type=item.owner_type,
            html_url=item.url or f"https://github.com/{item.full_name}",
            archived=item.archived,
        )

    def add_reason(self, reason: str) -> bool:
        if reason in self.why_matched:
            return False
        self.why_matched.append(reason)
        return True

    @model_validator(mode="after")
    def check_score_matches_breakdown(self) -> "Candidate":
        if self.score_breakdown and self.score != sum(self.score_breakdown.values()):
            raise ValueError(
                f"score {self.score} does not equal breakdown sum for {self.full_name}"
            )
        if len(set(self.why_matched)) != len(self.why_matched):
            raise ValueError(f"duplicate whyMatched tags for {self.full_name}")
        return self


class DiscoveryStats(BaseSchema):
    topic_searches: int = 0
    keyword_searches: int = 0
    comparable_searches: int = 0
    signal_expansions: int = 0
    seed_expansions: int = 0
    raw_candidates: int = 0
    after_dedup: int = 0
    after_exclusion: int = 0
    after_scoring: int = 0


class TargetList(GeneratedArtifact):
    tool: str
    scoring_version: str
    scoring_weights: dict[str, Any]
    sourcelock: str = "unknown"
    discovery_stats: DiscoveryStats
    errors: list[str] = Field(default_factory=list)
    candidate_count: int
    total_scored: int
    candidates: list[Candidate]

    @model_validator(mode="after")
    def check_candidates(self) -> "TargetList":
        names = [c.full_name for c in self.candidates]
        if len(set(names)) != len(names):
            raise ValueError("duplicate fullName in candidate list")
        if self.candidate_count != len(self.candidates):
            raise ValueError("candidateCount does not match candidates")
        return self


# --- Feedback & experiments -------------------------------------------------


class OutcomeCounts(BaseSchema):
    sent: int = 0
    opened: int = 0
    replied: int = 0
    ignored: int = 0
    bounced: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.opened + self.replied + self.ignored + self.bounced

    def increment(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


class FeedbackEntry(BaseSchema):
    model_config = ConfigDict(extra="allow")

    date: str
    slug: str
    channel: str
    outcome: Outcome
    experiment_id: str | None = None
    variant_key: str | None = None

    @field_validator("date", "slug", "channel")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class FeedbackSummary(GeneratedArtifact):
    total_entries: int = 0
    per_channel: dict[str, OutcomeCounts] = Field(default_factory=dict)
    per_slug: dict[str, OutcomeCounts] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    best_performing_channel: str | None = None
    reply_rate: float = 0
    per_experiment: dict[str, dict[str, OutcomeCounts]] = Field(default_factory=dict)


class ExperimentArm(BaseSchema):
    model_config = ConfigDict(extra="allow")

    key: str


class Experiment(BaseSchema):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    status: Literal["draft", "active", "concluded"] = "draft"
    slug: str | None = None
    control: ExperimentArm
    variant: ExperimentArm


class Evaluation(BaseSchema):
    experiment_id: str
    name: str = ""
    status: EvaluationStatus
    control_entries: int
    variant_entries: int
    control_reply_rate: float
    variant_reply_rate: float
    winner_key: str | None = None
    recommendation: str

    @model_validator(mode="after")
    def winner_only_when_found(self) -> "Evaluation":
        if self.status != "winner-found" and self.winner_key is not None:
            raise ValueError(f"{self.experiment_id}: winnerKey set for status {self.status}")
        if self.status == "winner-found" and self.winner_key is None:
            raise ValueError(f"{self.experiment_id}: winner-found without winnerKey")
        return self


class EvaluationReport(GeneratedArtifact):
    evaluations: list[Evaluation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# --- Submissions & queue health --------------------------------------------


class Submission(BaseSchema):
    model_config = ConfigDict(extra="allow")

    slug: str
    status: str = "pending"
    submitted_at: str | None = None
    updated_at: str | None = None


class StuckSubmission(BaseSchema):
    slug: str
    status: str
    days_pending: int


class LintFailure(BaseSchema):
    reason: str
    count: int


class QueueHealthSnapshot(GeneratedArtifact):
    submissions: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    stuck_count: int = 0
    stuck_slugs: list[StuckSubmission] = Field(default_factory=list)
    top_lint_failures: list[LintFailure] = Field(default_factory=list)
    median_days_pending: float | None = None
    throughput: int = 0
    time_in_status: dict[str, float | None] = Field(default_factory=dict)


# --- Recommendations --------------------------------------------------------


class Recommendation(BaseSchema):
    priority: Priority
    category: Literal[
        "re-feature",
        "improve-proof",
        "stuck-submission",
        "experiment-graduation",
        "lint-promotion",
    ]
    slug: str
    title: str
    insight: str
    action: str
    evidence: dict[str, Any] = Field(default_factory=dict)


class LintInsights(BaseSchema):
    warnings_to_elevate: list[dict[str, Any]] = Field(default_factory=list)
    docs_to_rewrite: list[dict[str, Any]] = Field(default_factory=list)


class RecommendationReport(GeneratedArtifact):
    signals: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[Recommendation] = Field(default_factory=list)
    guardrails: dict[str, Any] = Field(default_factory=dict)
    lint_insights: LintInsights = Field(default_factory=LintInsights)

    @model_validator(mode="after")
    def sorted_by_priority(self) -> "RecommendationReport":
        ranks = [PRIORITY_ORDER[r.priority] for r in self.recommendations]
        if ranks != sorted(ranks):
            raise ValueError("recommendations are not ordered by priority")
        return self


# --- Telemetry --------------------------------------------------------------


class TelemetryEvent(BaseSchema):
    model_config = ConfigDict(extra="allow")

    type: str
    timestamp: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def day(self) -> str:
        return self.timestamp[:10]

    @field_validator("type", "timestamp")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value


class SuspiciousDay(BaseSchema):
    day: str
    count: int


class TelemetryGuardrails(BaseSchema):
    total_events_processed: int = 0
    events_capped: int = 0
    suspicious_days: list[SuspiciousDay] = Field(default_factory=list)


class TelemetryMetrics(BaseSchema):
    verification_rate: float = 0
    total_verify_actions: int = 0
    total_proof_actions: int = 0
    submission_clicks: int = 0
    trust_interaction_score_by_week: dict[str, int] = Field(default_factory=dict)


class TelemetryRollup(GeneratedArtifact):
    total_events: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_slug: dict[str, dict[str, int]] = Field(default_factory=dict)
    by_week: dict[str, dict[str, int]] = Field(default_factory=dict)
    metrics: TelemetryMetrics = Field(default_factory=TelemetryMetrics)
    guardrails: TelemetryGuardrails = Field(default_factory=TelemetryGuardrails)


# --- Ops history & baseline -------------------------------------------------


class AdapterCalls(BaseSchema):
    calls: int = 0
    cached: int = 0

    @field_validator("calls", "cached", mode="before")
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _null_to_default(cls, value, info)


class CostStats(BaseSchema):
    total_api_calls: int = 0
    cached_calls: int = 0
    cache_hit_rate: float = 0
    adapter_breakdown: dict[str, AdapterCalls] = Field(default_factory=dict)

    @field_validator("total_api_calls", "cached_calls", "cache_hit_rate", "adapter_breakdown", mode="before")
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _null_to_default(cls, value, info)


class OpsRun(BaseSchema):
    model_config = ConfigDict(extra="allow")

    run_id: str | None = None
    date: str | None = None
    total_duration_ms: int | float = 0
    cost_stats: CostStats = Field(default_factory=CostStats)
    error_codes: dict[str, int] = Field(default_factory=dict)
    minutes_estimate: float | None = None
    batch_ok: bool = False
    publish_errors: int = 0
    promoted_slugs: list[str] = Field(default_factory=list)
    caps_snapshot: dict[str, Any] | None = None

    @field_validator(
        "total_duration_ms",
        "cost_stats",
        "error_codes",
        "batch_ok",
        "publish_errors",
        "promoted_slugs",
        mode="before",
    )
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        return _null_to_default(cls, value, info)


class SchedulePreset(BaseSchema):
    cadence: str
    monthly_runs: int
    estimated_minutes: float = 0
    estimated_cost: float = 0


class MinuteBudget(BaseSchema):
    max_runs_per_month: int
    recommended_preset: str
    headroom: float
    what_stops: list[str] = Field(default_factory=list)


class Projection(BaseSchema):
    monthly_run_count: int
    estimated_minutes: float = 0
    estimated_cost: float = 0
    risk_items: list[str] = Field(default_factory=list)


class BaselinePeriod(BaseSchema):
    start: str | None = None
    end: str | None = None
    cadence: str = "weekly"


class AdapterStats(BaseSchema):
    avg_calls: float
    avg_cached: float
    hit_rate: float


class OpsBaseline(GeneratedArtifact):
    run_count: int = 0
    period: BaselinePeriod = Field(default_factory=BaselinePeriod)
    avg_runtime_ms: int = 0
    p95_runtime_ms: int | float = 0
    stddev_runtime_ms: int = 0
    confidence_label: Literal["Low", "Medium", "High"] = "Low"
    avg_cache_hit_rate: float = 0
    avg_minutes_per_run: float = 0
    failure_rate: float = 0
    adapter_stats: dict[str, AdapterStats] = Field(default_factory=dict)
    schedule_presets: dict[str, SchedulePreset] = Field(default_factory=dict)
    projection: Projection
    minute_budgets: dict[str, MinuteBudget] = Field(default_factory=dict)


class OpsAction(BaseSchema):
    level: Literal["info", "warning", "error"]
    category: str
    message: str
    action: str
    runbook_section: str | None = None


class CapsChange(BaseSchema):
    current: Any = None
    changed: bool = False


class OpsActionsReport(GeneratedArtifact):
    actions: list[OpsAction] = Field(default_factory=list)
    caps_diff: dict[str, CapsChange] = Field(default_factory=dict)


# --- Promotion --------------------------------------------------------------


class QueueEntry(BaseSchema):
    """A promo-queue entry; bare slug strings are normalised on input."""

    model_config = ConfigDict(extra="allow")

    slug: str
    channels: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"slug": value}
        return value


class PromoQueue(BaseSchema):
    model_config = ConfigDict(extra="allow")

    slugs: list[QueueEntry] = Field(default_factory=list)

    @property
    def slug_names(self) -> list[str]:
        return [entry.slug for entry in self.slugs]


class PromoBudget(BaseSchema):
    tier: int
    headroom: float
    items_allowed: int


class PromoDecision(BaseSchema):
    slug: str
    action: PromoAction
    score: int
    breakdown: dict[str, int] = Field(default_factory=dict)
    explanation: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def score_matches_breakdown(self) -> "PromoDecision":
        if self.breakdown and self.score != sum(self.breakdown.values()):
            raise ValueError(f"{self.slug}: score does not equal breakdown sum")
        return self


class PromoDecisionReport(GeneratedArtifact):
    decisions: list[PromoDecision] = Field(default_factory=list)
    budget: PromoBudget
    warnings: list[str] = Field(default_factory=list)


class ScoreDelta(BaseSchema):
    slug: str
    prev_score: int
    curr_score: int
    delta: int


class ActionChange(BaseSchema):
    slug: str
    prev_action: str | None
    curr_action: str | None


class DriftSummary(BaseSchema):
    total_changed: int = 0
    total_stable: int = 0


class DecisionDrift(GeneratedArtifact):
    entrants: list[str] = Field(default_factory=list)
    exits: list[str] = Field(default_factory=list)
    score_deltas: list[ScoreDelta] = Field(default_factory=list)
    action_changes: list[ActionChange] = Field(default_factory=list)
    summary: DriftSummary = Field(default_factory=DriftSummary)


# --- GitHub facts -----------------------------------------------------------


class ReleaseInfo(BaseSchema):
    tag: str
    name: str
    published_at: str | None = None
    url: str | None = None


class GitHubFacts(BaseSchema):
    slug: str
    repo: str
    fetched_at: str
    stars: int | None = None
    forks: int | None = None
    watchers: int | None = None
    open_issues: int | None = None
    pushed_at: str | None = None
    default_branch: str | None = None
    license: str | None = None
    archived: bool | None = None
    latest_release: ReleaseInfo | None = None
    releases_last_90d: int | None = None
    errors: list[str] = Field(default_factory=list)
