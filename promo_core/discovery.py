"""Candidate discovery, deduplication and exclusion."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .schemas import Candidate, DiscoveryStats, RepoItem

if TYPE_CHECKING:
    from signals.base import FetchContext, SearchProvider

logger = logging.getLogger(__name__)

# Strategy name -> DiscoveryStats counter bumped on a successful search.
_STRATEGY_COUNTERS = {
    "topic": "topic_searches",
    "keyword": "keyword_searches",
    "comparable": "comparable_searches",
    "signal": "signal_expansions",
    "seed": "seed_expansions",
}


@dataclass(frozen=True)
class DiscoveryQuery:
    strategy: str
    query: str
    reason: str


@dataclass(frozen=True)
class SeedRepo:
    owner: str
    repo: str

    @property
    def reason(self) -> str:
        return f"seed:{self.owner}/{self.repo}"


def build_queries(
    topics: Iterable[str] = (),
    keywords: Iterable[str] = (),
    comparables: Iterable[str] = (),
    signal_orgs: Iterable[str] = (),
    signal_org_limit: int = 5,
) -> list[DiscoveryQuery]:
    queries: list[DiscoveryQuery] = []
    for topic in topics:
        queries.append(DiscoveryQuery("topic", f"topic:{topic}", f"topic:{topic}"))
    for keyword in keywords:
        queries.append(
            DiscoveryQuery("keyword", f"{keyword} in:readme,description", f"keyword:{keyword}")
        )
    for target in comparables:
        queries.append(
            DiscoveryQuery("comparable", f"{target} in:readme,description", f"comparable:{target}")
        )
    for org in list(signal_orgs)[:signal_org_limit]:
        queries.append(DiscoveryQuery("signal", f"user:{org}", f"signal:{org}"))
    return queries


@dataclass
class CandidatePool:
    """Candidates keyed by full name; rediscovery appends a reason tag."""

    stats: DiscoveryStats = field(default_factory=DiscoveryStats)
    candidates: dict[str, Candidate] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.candidates)

    def add(self, item: RepoItem, reason: str) -> Candidate:
        self.stats.raw_candidates += 1
        candidate = self.candidates.get(item.full_name)
        if candidate is None:
            candidate = Candidate.from_repo(item)
            self.candidates[item.full_name] = candidate
        candidate.add_reason(reason)
        self.stats.after_dedup = len(self.candidates)
        return candidate

    def apply_exclusions(
        self,
        exclusions: Iterable[str] = (),
        self_accounts: Iterable[str] = (),
    ) -> list[str]:
        denied = {e.lower() for e in exclusions}
        own = {a.lower() for a in self_accounts}
        removed: list[str] = []
        for key, candidate in list(self.candidates.items()):
            owner = candidate.owner.lower()
            if (
                owner in denied
                or candidate.full_name.lower() in denied
                or candidate.archived
                or owner in own
            ):
                del self.candidates[key]
                removed.append(key)
        self.stats.after_exclusion = len(self.candidates)
        return removed

    def values(self) -> list[Candidate]:
        return list(self.candidates.values())


def discover_candidates(
    queries: Sequence[DiscoveryQuery],
    provider: "SearchProvider",
    context: "FetchContext",
    seeds: Sequence[SeedRepo] = (),
    pool: CandidatePool | None = None,
) -> CandidatePool:
    """Run every query and seed expansion; one failure never stops the rest."""
    if pool is None:
        pool = CandidatePool()

    for query in queries:
        result = provider.search(query.query, context)
        if not result.ok:
            pool.errors.append(f"{query.reason}: {result.error}")
            logger.warning(f"Search failed for {query.reason}: {result.error}")
            continue
        for item in result.value or []:
            pool.add(item, query.reason)
        counter = _STRATEGY_COUNTERS[query.strategy]
        setattr(pool.stats, counter, getattr(pool.stats, counter) + 1)

    for seed in seeds:
        _expand_seed(seed, provider, context, pool)

    pool.stats.after_dedup = len(pool.candidates)
    return pool


def _expand_seed(
    seed: SeedRepo,
    provider: "SearchProvider",
    context: "FetchContext",
    pool: CandidatePool,
) -> None:
    fetched = provider.get_repo(seed.owner, seed.repo, context)
    if not fetched.ok or fetched.value is None:
        pool.errors.append(f"{seed.reason}: {fetched.error}")
        logger.warning(f"Seed lookup failed for {seed.reason}: {fetched.error}")
        return
    seed_item = fetched.value
    pool.add(seed_item, seed.reason)
    if not seed_item.topics:
        return
    query = f"topic:{seed_item.topics[0]}"
    if seed_item.language:
        query += f" language:{seed_item.language}"
    result = provider.search(query, context)
    if not result.ok:
        pool.errors.append(f"seed-expand:{seed_item.topics[0]}: {result.error}")
        return
    for item in result.value or []:
        pool.add(item, seed.reason)
    pool.stats.seed_expansions += 1


def load_signal_orgs(
    snapshot: Mapping[str, Any] | None,
    self_accounts: Iterable[str] = (),
) -> list[str]:
    """Owners of external repos that showed up in a distribution-signal snapshot."""
    if not snapshot:
        return []
    own = {a.lower() for a in self_accounts}
    orgs: list[str] = []
    for signal in snapshot.get("signals") or []:
        for hit in signal.get("results") or []:
            owner = str(hit.get("repo") or "").split("/")[0]
            if owner and owner.lower() not in own and owner not in orgs:
                orgs.append(owner)
    return orgs
