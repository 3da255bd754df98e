"""Search provider interface, fetch context and an offline fake."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from promo_core.result import Result
from promo_core.schemas import RepoItem


class FetchError(RuntimeError):
    """Non-2xx HTTP response; ``str()`` reads ``"<status> <reason>: <url>"``."""

    status_code: int
    reason: str
    url: str

    def __init__(self, status_code: int, reason: str, url: str) -> None:
        super().__init__(f"{status_code} {reason}: {url}")
        self.status_code = status_code
        self.reason = reason
        self.url = url


@dataclass
class FetchContext:
    """Per-run fetch state threaded through every provider call."""

    now: datetime
    throttle_seconds: float = 0.0
    sleep_fn: Callable[[float], None] = time.sleep
    request_count: int = 0
    cache_hits: int = 0
    rate_limited: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def today(self) -> str:
        return self.now.strftime("%Y-%m-%d")

    def throttle(self) -> None:
        if self.throttle_seconds > 0:
            self.sleep_fn(self.throttle_seconds)


class SearchProvider(ABC):
    """Abstract interface for repository search backends."""

    provider_id: str

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id

    @abstractmethod
    def search(self, query: str, context: FetchContext) -> Result[list[RepoItem]]:
        """Run a repository search query."""

    @abstractmethod
    def get_json(self, endpoint: str, context: FetchContext) -> Result[Any]:
        """Fetch an arbitrary API endpoint relative to the API root."""

    def get_repo(self, owner: str, repo: str, context: FetchContext) -> Result[RepoItem]:
        fetched = self.get_json(f"repos/{owner}/{repo}", context)
        if not fetched.ok or not isinstance(fetched.value, Mapping):
            return Result.failure(fetched.error or f"unexpected payload for {owner}/{repo}")
        return Result.success(RepoItem.from_github(fetched.value))


def _matches(item: RepoItem, query: str) -> bool:
    terms = query.split()
    free_text: list[str] = []
    for term in terms:
        if term.startswith("topic:"):
            if term[len("topic:"):] not in item.topics:
                return False
        elif term.startswith("user:"):
            if item.owner.lower() != term[len("user:"):].lower():
                return False
        elif term.startswith("language:"):
            if (item.language or "").lower() != term[len("language:"):].lower():
                return False
        elif term.startswith("in:"):
            continue
        else:
            free_text.append(term.lower())
    haystack = f"{item.name} {item.description}".lower()
    return all(word in haystack for word in free_text)


class FakeSearchProvider(SearchProvider):
    """Deterministic in-memory provider for offline runs and tests.

    ``failures`` maps a query or endpoint to the error string it returns.
    """

    repos: list[RepoItem]
    responses: dict[str, Any]
    failures: dict[str, str]
    calls: list[str]

    def __init__(
        self,
        repos: Iterable[RepoItem | Mapping[str, Any]] = (),
        responses: Mapping[str, Any] | None = None,
        failures: Mapping[str, str] | None = None,
        provider_id: str = "fake",
    ) -> None:
        super().__init__(provider_id=provider_id)
        self.repos = [
            repo if isinstance(repo, RepoItem) else RepoItem.from_dict(repo) for repo in repos
        ]
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.calls = []

    def search(self, query: str, context: FetchContext) -> Result[list[RepoItem]]:  # pyright: ignore[reportImplicitOverride]
        self.calls.append(query)
        context.request_count += 1
        if query in self.failures:
            return Result.failure(self.failures[query])
        return Result.success([repo for repo in self.repos if _matches(repo, query)])

    def get_json(self, endpoint: str, context: FetchContext) -> Result[Any]:  # pyright: ignore[reportImplicitOverride]
        self.calls.append(endpoint)
        context.request_count += 1
        if endpoint in self.failures:
            return Result.failure(self.failures[endpoint])
        if endpoint in self.responses:
            return Result.success(self.responses[endpoint])
        return Result.failure(f"404 Not Found: {endpoint}")

    def get_repo(self, owner: str, repo: str, context: FetchContext) -> Result[RepoItem]:  # pyright: ignore[reportImplicitOverride]
        endpoint = f"repos/{owner}/{repo}"
        if endpoint in self.responses or endpoint in self.failures:
            return super().get_repo(owner, repo, context)
        self.calls.append(endpoint)
        context.request_count += 1
        full_name = f"{owner}/{repo}".lower()
        for item in self.repos:
            if item.full_name.lower() == full_name:
                return Result.success(item)
        return Result.failure(f"404 Not Found: {endpoint}")
