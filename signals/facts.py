"""Best-effort public GitHub datapoints for one tool."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta

from promo_core.schemas import GitHubFacts, ReleaseInfo, format_timestamp
from promo_core.stats import parse_timestamp

from .base import FetchContext, SearchProvider


def collect_github_facts(
    provider: SearchProvider,
    org: str,
    slug: str,
    context: FetchContext,
    release_window_days: int = 90,
) -> GitHubFacts:
    """Each failed endpoint adds an entry to ``errors``; a missing latest release does not."""
    repo = f"{org}/{slug}"
    facts = GitHubFacts(slug=slug, repo=repo, fetched_at=format_timestamp(context.now))

    meta = provider.get_json(f"repos/{repo}", context).with_label("repo")
    if meta.ok and isinstance(meta.value, Mapping):
        data = meta.value
        license_info = data.get("license")
        facts.stars = data.get("stargazers_count")
        facts.forks = data.get("forks_count")
        facts.watchers = data.get("subscribers_count")
        facts.open_issues = data.get("open_issues_count")
        facts.pushed_at = data.get("pushed_at")
        facts.default_branch = data.get("default_branch")
        facts.license = license_info.get("spdx_id") if isinstance(license_info, Mapping) else None
        facts.archived = data.get("archived")
    else:
        facts.errors.append(meta.error or "repo: unexpected payload")

    latest = provider.get_json(f"repos/{repo}/releases/latest", context).with_label("release")
    if latest.ok and isinstance(latest.value, Mapping):
        data = latest.value
        facts.latest_release = ReleaseInfo(
            tag=str(data.get("tag_name") or ""),
            name=str(data.get("name") or data.get("tag_name") or ""),
            published_at=data.get("published_at"),
            url=data.get("html_url"),
        )
    elif latest.error and "404" not in latest.error:
        facts.errors.append(latest.error)

    releases = provider.get_json(f"repos/{repo}/releases?per_page=20", context).with_label(
        "releases"
    )
    if releases.ok and isinstance(releases.value, list):
        cutoff = context.now - timedelta(days=release_window_days)
        published = [
            parse_timestamp(r.get("published_at")) for r in releases.value if isinstance(r, Mapping)
        ]
        facts.releases_last_90d = sum(1 for p in published if p is not None and p >= cutoff)
    else:
        facts.errors.append(releases.error or "releases: unexpected payload")

    return facts
