"""Kit configuration with YAML support."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from promo_core.baseline import BaselinePolicy
from promo_core.promo_decisions import PromoPolicy
from promo_core.recommendations import RecommendationThresholds
from promo_core.scoring import DEFAULT_STAR_TIERS, ScoringWeights

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "kit.config.yaml"
CONFIG_ENV_VAR = "PROMO_KIT_CONFIG"


class OrgConfig(BaseModel):
    name: str = "mcp-tool-shop-org"
    site_url: str = "https://mcptoolshop.com"
    self_accounts: list[str] = Field(default_factory=lambda: ["mcp-tool-shop-org", "mcp-tool-shop"])


class PathsConfig(BaseModel):
    data_dir: str = "site/src/data"
    public_dir: str = "site/public"
    cache_dir: str = "site/src/data/target-cache"


class GuardrailsConfig(BaseModel):
    max_data_patches_per_run: int = 5
    daily_telemetry_cap_per_type: int = 50
    spike_threshold: int = 300
    max_recommendations: int = 20


class PolicyConfig(BaseModel):
    # Tuning values; governance.json may override some at run time.
    min_experiment_data_threshold: int = 10
    winner_ratio: float = 2.0
    ratio_epsilon: float = 0.001
    cache_hit_warning_rate: float = 0.70
    duration_spike_factor: float = 2.0
    ops_recent_runs: int = 5
    stuck_threshold_days: int = 7
    throughput_window_days: int = 30
    cooldown_days: int = 14
    max_promos_per_week: int = 3
    promo_budget_tier: int = 200
    budget_tiers: list[int] = Field(default_factory=lambda: [200, 500, 1000])
    budget_headroom_fraction: float = 0.80
    runner_rate_per_minute: float = 0.006
    baseline_period: str = "weekly"
    high_engagement_threshold: int = 5
    install_copies_threshold: int = 5
    low_proof_threshold: int = 2
    high_friction_threshold: int = 3
    common_lint_failure_threshold: int = 3
    recommendations_per_category: int = 3
    needs_info_penalty: int = 2
    strict_event_types: bool = False


class ScoringConfig(BaseModel):
    topic_per_match: int = 15
    topic_max: int = 60
    keyword_per_match: int = 10
    keyword_max: int = 40
    recency_max: int = 20
    recency_decay_days: int = 365
    star_tiers: list[tuple[int, int]] = Field(default_factory=lambda: list(DEFAULT_STAR_TIERS))
    fit_per_word: int = 5
    fit_max: int = 20
    comparable_bonus: int = 10
    signal_bonus: int = 10


class TargetingConfig(BaseModel):
    max_candidates: int = 100
    max_drafts: int = 25
    signal_org_limit: int = 5
    worthy_only: bool = False


class GitHubConfig(BaseModel):
    api_url: str = "https://api.github.com"
    token_env: str = "GITHUB_TOKEN"
    per_page: int = 50
    timeout_seconds: int = 30
    throttle_seconds: float = 2.0


class KitConfig(BaseModel):
    """Effective configuration: defaults, then the YAML file, then governance."""

    org: OrgConfig = Field(default_factory=OrgConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    guardrails: GuardrailsConfig = Field(default_factory=GuardrailsConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    targeting: TargetingConfig = Field(default_factory=TargetingConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KitConfig":
        return cls.model_validate(data)

    def scoring_weights(self) -> ScoringWeights:
        return ScoringWeights.from_mapping(self.scoring.model_dump())

    def baseline_policy(self) -> BaselinePolicy:
        return BaselinePolicy(
            runner_rate_per_minute=self.policy.runner_rate_per_minute,
            budget_tiers=list(self.policy.budget_tiers),
            headroom_fraction=self.policy.budget_headroom_fraction,
        )

    def promo_policy(self) -> PromoPolicy:
        return PromoPolicy(
            cooldown_days=self.policy.cooldown_days,
            max_promos_per_week=self.policy.max_promos_per_week,
            min_experiment_data_threshold=self.policy.min_experiment_data_threshold,
            budget_tier=self.policy.promo_budget_tier,
            winner_ratio=self.policy.winner_ratio,
        )

    def recommendation_thresholds(self) -> RecommendationThresholds:
        return RecommendationThresholds(
            high_engagement=self.policy.high_engagement_threshold,
            install_copies=self.policy.install_copies_threshold,
            low_proof=self.policy.low_proof_threshold,
            high_friction=self.policy.high_friction_threshold,
            common_lint_failure=self.policy.common_lint_failure_threshold,
            per_category=self.policy.recommendations_per_category,
            needs_info_penalty=self.policy.needs_info_penalty,
            stuck_days=self.policy.stuck_threshold_days,
        )

    def with_governance(self, governance: Mapping[str, Any] | None) -> "KitConfig":
        """Return a copy with governance.json policy overrides applied."""
        if not governance:
            return self
        updates: dict[str, Any] = {}
        mapping = {
            "minExperimentDataThreshold": "min_experiment_data_threshold",
            "cooldownDaysPerSlug": "cooldown_days",
            "maxPromosPerWeek": "max_promos_per_week",
        }
        for key, field_name in mapping.items():
            if governance.get(key) is not None:
                updates[field_name] = governance[key]
        if not updates:
            return self
        policy = self.policy.model_copy(update=updates)
        return self.model_copy(update={"policy": policy})


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge mappings; non-mapping values in ``override`` win."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def find_config_path(start: str | Path | None = None) -> Path | None:
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_config(yaml_path: str | Path | None = None) -> KitConfig:
    """Load kit configuration from YAML, merged over defaults.

    Args:
        yaml_path: Path to YAML configuration file. When omitted the file is
            discovered via ``PROMO_KIT_CONFIG`` or by walking up from the
            working directory; without a file the defaults are returned.

    Returns:
        KitConfig instance

    Raises:
        FileNotFoundError: If an explicit YAML file doesn't exist
        ValueError: If YAML is invalid or fails validation
    """
    explicit = yaml_path is not None
    path = Path(yaml_path) if yaml_path is not None else find_config_path()
    if path is None:
        return KitConfig()

    if not path.exists():
        if explicit or os.getenv(CONFIG_ENV_VAR):
            raise FileNotFoundError(f"Config file not found: {path}")
        return KitConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        logger.warning(f"Config file {path} is empty; using defaults")
        return KitConfig()
    if not isinstance(data, Mapping):
        raise ValueError(f"Config file {path} must contain a mapping")

    try:
        return KitConfig.from_dict(deep_merge(KitConfig().to_dict(), data))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: KitConfig, yaml_path: str | Path) -> None:
    """Save the effective configuration to YAML."""
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)


def resolve_root(config_path: str | Path | None = None) -> Path:
    """Project root: the config file's directory, else the working directory."""
    path = Path(config_path) if config_path else find_config_path()
    if path is not None and path.exists():
        return path.resolve().parent
    return Path.cwd()
