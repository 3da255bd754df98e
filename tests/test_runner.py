import json
from datetime import datetime, timezone

import pytest

from kit.config import KitConfig
from kit.errors import ErrorCode, KitError
from kit.runner import LOCAL_STEPS, NETWORK_STEPS, PipelineRunner
from signals.base import FakeSearchProvider

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)

TOOL = {
    "name": "Tool Scan",
    "positioning": {"oneLiner": "Finds broken MCP tools"},
    "targeting": {"topics": ["mcp"], "keywords": ["agent"]},
    "claims": [{"statement": "Scans 100 tools in a minute", "status": "proven"}],
}

REPOS = [
    {
        "owner": "acme",
        "name": "agentkit",
        "fullName": "acme/agentkit",
        "description": "Agent framework",
        "starCount": 150,
        "topics": ["mcp"],
        "lastPushedAt": "2026-01-20T00:00:00Z",
        "ownerType": "organization",
    },
    {
        "owner": "mcp-tool-shop-org",
        "name": "tool-scan",
        "fullName": "mcp-tool-shop-org/tool-scan",
        "topics": ["mcp"],
    },
    {
        "owner": "solo",
        "name": "agent-notes",
        "fullName": "solo/agent-notes",
        "description": "Notes for my agent",
        "starCount": 3,
        "ownerType": "user",
    },
]


@pytest.fixture(autouse=True)
def no_token(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


def _seed(base):
    data = base / "site" / "src" / "data"
    (data / "marketir" / "data" / "tools").mkdir(parents=True)
    (data / "overrides.json").write_text(
        json.dumps({"tool-scan": {"publicProof": True}, "hidden": {"publicProof": False}})
    )
    (data / "marketir" / "data" / "tools" / "tool-scan.json").write_text(json.dumps(TOOL))
    (data / "marketir" / "marketir.snapshot.json").write_text(
        json.dumps({"lockSha256": "abcdef0123456789"})
    )
    return base


@pytest.fixture
def root(tmp_path):
    return _seed(tmp_path)


def _runner(root, **kwargs) -> PipelineRunner:
    return PipelineRunner(KitConfig(), root, NOW, **kwargs)


def _read(path):
    return json.loads(path.read_text())


def test_targets_with_fake_provider(root):
    runner = _runner(root, provider=FakeSearchProvider(REPOS))

    results = runner.targets()

    assert [t.tool for t in results] == ["tool-scan"]
    target_list = results[0]
    names = [c.full_name for c in target_list.candidates]
    assert names == ["acme/agentkit", "solo/agent-notes"]
    assert target_list.sourcelock == "abcdef012345"
    assert target_list.discovery_stats.after_exclusion == 2

    out = root / "site" / "public" / "targets" / "tool-scan"
    payload = _read(out / "targets.json")
    assert payload["candidateCount"] == 2
    assert payload["generatedAt"] == "2026-02-01T00:00:00.000Z"
    assert (out / "targets.csv").read_text().startswith("rank,owner,repo")
    assert "# Target List: tool-scan" in (out / "README.md").read_text()
    assert (out / "drafts" / "acme--agentkit.md").exists()


def test_targets_skips_tool_without_marketir_data(root):
    runner = _runner(root, provider=FakeSearchProvider(REPOS))

    assert runner.targets(slugs=["unknown-tool"]) == []


def test_targets_requires_token_without_provider(root):
    runner = _runner(root)

    with pytest.raises(KitError) as excinfo:
        runner.targets()

    assert excinfo.value.code is ErrorCode.AUTH_DENIED
    assert "GITHUB_TOKEN" in excinfo.value.headline


def test_targets_dry_run_previews_queries_offline(root, capsys):
    runner = _runner(root, dry_run=True)

    assert runner.targets() == []

    out = capsys.readouterr().out
    assert "[dry-run] topic search: topic:mcp" in out
    assert "[dry-run] keyword search: agent in:readme,description" in out
    assert not (root / "site" / "public" / "targets").exists()


def test_dry_run_records_paths_without_writing(root):
    runner = _runner(root, dry_run=True, provider=FakeSearchProvider(REPOS))

    runner.targets()

    assert runner.artifacts.written
    assert not any(path.exists() for path in runner.artifacts.written)


def test_missing_overrides_is_data_missing(tmp_path):
    runner = _runner(tmp_path, provider=FakeSearchProvider(REPOS))

    with pytest.raises(KitError) as excinfo:
        runner.targets()

    assert excinfo.value.code is ErrorCode.DATA_MISSING
    assert excinfo.value.path.endswith("overrides.json")


def test_facts_written_per_enabled_tool(root):
    provider = FakeSearchProvider(
        responses={
            "repos/mcp-tool-shop-org/tool-scan": {"stargazers_count": 12, "forks_count": 2},
        }
    )
    runner = _runner(root, provider=provider)

    collected = runner.facts()

    assert [f.slug for f in collected] == ["tool-scan"]
    assert collected[0].stars == 12
    payload = _read(root / "site" / "src" / "data" / "github-facts" / "tool-scan.json")
    assert payload["repo"] == "mcp-tool-shop-org/tool-scan"
    assert payload["stars"] == 12


def test_worthy_only_filters_tools(root):
    data = root / "site" / "src" / "data"
    (data / "worthy.json").write_text(json.dumps({"repos": {"tool-scan": {"worthy": False}}}))
    config = KitConfig()
    config.targeting.worthy_only = True
    runner = PipelineRunner(config, root, NOW, provider=FakeSearchProvider(REPOS))

    assert runner.targets() == []


def test_telemetry_step_writes_rollup_and_daily_files(root):
    events = root / "site" / "src" / "data" / "telemetry" / "events"
    events.mkdir(parents=True)
    (events / "2026-01.jsonl").write_text(
        "\n".join(
            [
                json.dumps({"type": "copy_install", "timestamp": "2026-01-30T10:00:00Z"}),
                json.dumps({"type": "copy_install", "timestamp": "2026-01-31T10:00:00Z"}),
                "not json",
            ]
        )
    )
    runner = _runner(root)

    rollup = runner.telemetry()

    assert rollup.total_events == 2
    data = root / "site" / "src" / "data" / "telemetry"
    assert _read(data / "rollup.json")["totalEvents"] == 2
    assert _read(data / "daily" / "2026-01-30.json") == {
        "date": "2026-01-30",
        "total": 1,
        "byType": {"copy_install": 1},
    }


def test_governance_freeze_adds_warning(root):
    data = root / "site" / "src" / "data"
    (data / "governance.json").write_text(json.dumps({"decisionsFrozen": True, "cooldownDaysPerSlug": 3}))
    runner = _runner(root)

    assert runner.config.policy.cooldown_days == 3
    result = runner.promo_decisions()

    assert "Decisions are frozen by governance - review before acting" in result.warnings


def test_drift_snapshot_rolls_forward(root):
    data = root / "site" / "src" / "data"
    runner = _runner(root)
    runner.promo_decisions()

    first = runner.drift()

    assert first.entrants == []
    assert (data / "decision-drift-snapshot.json").exists()
    assert (root / "site" / "public" / "lab" / "decisions" / "decision-drift.md").exists()


def test_run_step_rejects_unknown_name(root):
    with pytest.raises(ValueError):
        _runner(root).run_step("nope")


def test_run_all_local_steps_on_empty_data(tmp_path):
    runner = _runner(tmp_path)

    outcomes = runner.run_all()

    assert [o.name for o in outcomes] == list(LOCAL_STEPS)
    assert all(o.ok for o in outcomes)
    data = tmp_path / "site" / "src" / "data"
    assert (data / "kit.config.effective.yaml").exists()
    assert (data / "baseline.json").exists()
    assert (data / "recommendations.json").exists()


def test_run_all_continues_past_network_failure(tmp_path):
    runner = _runner(tmp_path)

    outcomes = runner.run_all(include_network=True)

    assert [o.name for o in outcomes] == list(NETWORK_STEPS + LOCAL_STEPS)
    failed = [o for o in outcomes if not o.ok]
    assert [o.name for o in failed] == ["facts", "targets"]
    assert all(o.error.code is ErrorCode.DATA_MISSING for o in failed)


def test_baseline_keeps_runs_with_null_fields(root, caplog):
    data = root / "site" / "src" / "data"
    (data / "ops-history.json").write_text(
        json.dumps(
            [
                {"date": "2026-01-02T06:00:00Z", "totalDurationMs": None, "costStats": {"cacheHitRate": None}},
                {"date": "2026-01-03T06:00:00Z", "totalDurationMs": 60000, "batchOk": True},
            ]
        )
    )

    with caplog.at_level("WARNING"):
        result = _runner(root).baseline()

    assert result.run_count == 2
    assert "Skipping malformed ops-history entry" not in caplog.text




def test_same_inputs_and_clock_give_identical_artifacts(tmp_path):
    def run_once(base):
        data = _seed(base) / "site" / "src" / "data"
        (data / "ops-history.json").write_text(
            json.dumps(
                [{"date": f"2026-01-{d:02d}T06:00:00Z", "totalDurationMs": 45000 * d} for d in range(1, 6)]
            )
        )
        (data / "promo-queue.json").write_text(json.dumps({"slugs": ["tool-scan", "other"]}))
        (data / "feedback.jsonl").write_text(
            json.dumps({"date": "2026-01-20", "slug": "tool-scan", "channel": "email", "outcome": "replied"})
        )
        runner = _runner(base, provider=FakeSearchProvider(REPOS))
        runner.targets()
        for step in LOCAL_STEPS:
            runner.run_step(step)
        return {path.relative_to(base): path.read_bytes() for path in runner.artifacts.written}

    first = run_once(tmp_path / "a")
    second = run_once(tmp_path / "b")

    assert len(first) >= 15
    assert first.keys() == second.keys()
    assert [str(p) for p in first if first[p] != second[p]] == []
