"""GitHub REST / Search provider backed by requests."""

from __future__ import annotations

import logging
import os
from typing import Any
from urllib.parse import quote

import requests

from promo_core.result import Result
from promo_core.schemas import RepoItem

from .base import FetchContext, FetchError, SearchProvider
from .cache import DayCache
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


def _is_rate_limited(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"


class GitHubSearchProvider(SearchProvider):
    """Thin GitHub client returning ``Result`` values instead of raising.

    Search results are cached per day when a ``DayCache`` is supplied. After a
    rate-limit response every further call on the same context short-circuits.
    """

    api_url: str
    per_page: int
    timeout_seconds: int
    _session: requests.Session
    _cache: DayCache | None
    _retry_policy: RetryPolicy

    def __init__(
        self,
        token: str | None = None,
        api_url: str = DEFAULT_API_URL,
        per_page: int = 50,
        timeout_seconds: int = 30,
        cache: DayCache | None = None,
        retry_policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        token_env: str = "GITHUB_TOKEN",
    ) -> None:
        super().__init__(provider_id="github")
        self.api_url = api_url.rstrip("/")
        self.per_page = per_page
        self.timeout_seconds = timeout_seconds
        self._cache = cache
        self._retry_policy = retry_policy or RetryPolicy()
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        token_value = token or os.getenv(token_env)
        if token_value:
            self._session.headers["Authorization"] = f"token {token_value}"

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self._session.headers

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("https://"):
            return endpoint
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _request(self, url: str, context: FetchContext) -> Any:
        context.request_count += 1
        response = self._session.get(url, timeout=self.timeout_seconds)
        if not response.ok:
            if _is_rate_limited(response):
                context.rate_limited = True
            raise FetchError(response.status_code, response.reason or "", url)
        return response.json()

    def get_json(self, endpoint: str, context: FetchContext) -> Result[Any]:  # pyright: ignore[reportImplicitOverride]
        url = self._url(endpoint)
        if context.rate_limited:
            return Result.failure(f"rate limited, skipped: {url}")
        try:
            return Result.success(self._retry_policy.execute(lambda: self._request(url, context)))
        except (FetchError, requests.RequestException, ValueError) as exc:
            logger.debug(f"GitHub request failed: {exc}")
            return Result.failure(str(exc))

    def search(self, query: str, context: FetchContext) -> Result[list[RepoItem]]:  # pyright: ignore[reportImplicitOverride]
        payload = self._cache.get(query, context.today) if self._cache else None
        if payload is not None:
            context.cache_hits += 1
        else:
            endpoint = (
                f"search/repositories?q={quote(query, safe='')}"
                f"&sort=stars&order=desc&per_page={self.per_page}"
            )
            skipped = context.rate_limited
            fetched = self.get_json(endpoint, context)
            if not skipped:
                context.throttle()
            if not fetched.ok:
                return Result.failure(fetched.error or "search failed")
            payload = fetched.value
            if self._cache is not None:
                self._cache.set(query, context.today, payload)
        items = payload.get("items") if isinstance(payload, dict) else None
        return Result.success([RepoItem.from_github(item) for item in items or []])
