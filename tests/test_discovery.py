from datetime import datetime, timezone

from promo_core.discovery import (
    CandidatePool,
    SeedRepo,
    build_queries,
    discover_candidates,
    load_signal_orgs,
)
from promo_core.schemas import RepoItem
from signals.base import FakeSearchProvider, FetchContext

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _repo(full_name: str, **kwargs) -> RepoItem:
    owner, name = full_name.split("/")
    return RepoItem(owner=owner, name=name, full_name=full_name, **kwargs)


def test_build_queries_order_and_limit() -> None:
    queries = build_queries(
        topics=["mcp"],
        keywords=["agent tools"],
        comparables=["langchain"],
        signal_orgs=["o1", "o2", "o3"],
        signal_org_limit=2,
    )

    assert [q.strategy for q in queries] == ["topic", "keyword", "comparable", "signal", "signal"]
    assert queries[0].query == "topic:mcp"
    assert queries[1].query == "agent tools in:readme,description"
    assert queries[2].reason == "comparable:langchain"
    assert queries[-1].query == "user:o2"


def test_pool_merges_by_full_name_and_keeps_reasons_unique() -> None:
    pool = CandidatePool()
    item = _repo("acme/widget", topics=["mcp"])

    pool.add(item, "topic:mcp")
    pool.add(item, "keyword:widget")
    pool.add(item, "topic:mcp")

    assert len(pool) == 1
    assert pool.stats.raw_candidates == 3
    assert pool.stats.after_dedup == 1
    assert pool.values()[0].why_matched == ["topic:mcp", "keyword:widget"]


def test_apply_exclusions() -> None:
    pool = CandidatePool()
    pool.add(_repo("Acme/widget"), "topic:mcp")
    pool.add(_repo("other/skipme"), "topic:mcp")
    pool.add(_repo("other/old", archived=True), "topic:mcp")
    pool.add(_repo("mcp-tool-shop-org/own"), "topic:mcp")
    pool.add(_repo("keep/this"), "topic:mcp")

    removed = pool.apply_exclusions(["acme", "OTHER/SKIPME"], ["mcp-tool-shop-org"])

    assert sorted(removed) == ["Acme/widget", "mcp-tool-shop-org/own", "other/old", "other/skipme"]
    assert [c.full_name for c in pool.values()] == ["keep/this"]
    assert pool.stats.after_exclusion == 1


def test_discover_records_errors_and_continues() -> None:
    provider = FakeSearchProvider(
        repos=[_repo("a/one", topics=["mcp"]), _repo("b/two", topics=["mcp", "cli"])],
        failures={"topic:cli": "500 Server Error: search"},
    )
    context = FetchContext(now=NOW)
    queries = build_queries(topics=["mcp", "cli"])

    pool = discover_candidates(queries, provider, context)

    assert len(pool) == 2
    assert pool.stats.topic_searches == 1
    assert pool.errors == ["topic:cli: 500 Server Error: search"]
    assert context.request_count == 2


def test_seed_expansion_searches_first_topic_and_language() -> None:
    seed_item = _repo("seed/origin", topics=["mcp", "ai"], language="Python")
    sibling = _repo("near/by", topics=["mcp"], language="Python")
    provider = FakeSearchProvider(repos=[seed_item, sibling])
    context = FetchContext(now=NOW)

    pool = discover_candidates([], provider, context, seeds=[SeedRepo("seed", "origin")])

    assert "topic:mcp language:Python" in provider.calls
    assert {c.full_name for c in pool.values()} == {"seed/origin", "near/by"}
    assert pool.candidates["near/by"].why_matched == ["seed:seed/origin"]
    assert pool.stats.seed_expansions == 1


def test_missing_seed_is_an_error_not_a_crash() -> None:
    provider = FakeSearchProvider()

    pool = discover_candidates([], provider, FetchContext(now=NOW), seeds=[SeedRepo("ghost", "repo")])

    assert len(pool) == 0
    assert pool.errors == ["seed:ghost/repo: 404 Not Found: repos/ghost/repo"]


def test_load_signal_orgs_skips_own_accounts() -> None:
    snapshot = {
        "signals": [
            {"results": [{"repo": "friend/tool"}, {"repo": "mcp-tool-shop-org/self"}]},
            {"results": [{"repo": "friend/other"}, {"repo": "second/x"}]},
        ]
    }

    assert load_signal_orgs(snapshot, ["mcp-tool-shop-org"]) == ["friend", "second"]
    assert load_signal_orgs(None) == []
