from datetime import datetime, timezone

from signals.base import FakeSearchProvider, FetchContext
from signals.facts import collect_github_facts

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)
REPO = "repos/mcp-tool-shop-org/alpha"


def test_collects_metadata_release_and_recent_releases() -> None:
    provider = FakeSearchProvider(
        responses={
            REPO: {
                "stargazers_count": 12,
                "forks_count": 3,
                "subscribers_count": 2,
                "open_issues_count": 1,
                "pushed_at": "2026-01-30T00:00:00Z",
                "default_branch": "main",
                "license": {"spdx_id": "MIT"},
                "archived": False,
            },
            f"{REPO}/releases/latest": {
                "tag_name": "v1.2.0",
                "published_at": "2026-01-20T00:00:00Z",
                "html_url": "https://github.com/mcp-tool-shop-org/alpha/releases/v1.2.0",
            },
            f"{REPO}/releases?per_page=20": [
                {"published_at": "2026-01-20T00:00:00Z"},
                {"published_at": "2025-12-01T00:00:00Z"},
                {"published_at": "2025-06-01T00:00:00Z"},
                {"published_at": None},
            ],
        }
    )

    facts = collect_github_facts(provider, "mcp-tool-shop-org", "alpha", FetchContext(now=NOW))

    assert facts.stars == 12
    assert facts.license == "MIT"
    assert facts.latest_release.tag == "v1.2.0"
    assert facts.latest_release.name == "v1.2.0"
    assert facts.releases_last_90d == 2
    assert facts.errors == []
    assert facts.to_dict()["fetchedAt"] == "2026-02-01T00:00:00.000Z"


def test_missing_release_is_not_an_error_but_failures_are_labeled() -> None:
    provider = FakeSearchProvider(
        responses={f"{REPO}/releases?per_page=20": []},
        failures={REPO: "500 Server Error: repo"},
    )

    facts = collect_github_facts(provider, "mcp-tool-shop-org", "alpha", FetchContext(now=NOW))

    assert facts.errors == ["repo: 500 Server Error: repo"]
    assert facts.latest_release is None
    assert facts.releases_last_90d == 0
