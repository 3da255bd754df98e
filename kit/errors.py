"""Error taxonomy: ``MKT.<AREA>.<KIND>`` codes and the one cross-module exception."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class ErrorCode(str, Enum):
    FETCH_MISSING = "MKT.FETCH.MISSING"
    FETCH_NETWORK = "MKT.FETCH.NETWORK"
    FETCH_QUOTA = "MKT.FETCH.QUOTA"
    DATA_MISSING = "MKT.DATA.MISSING"
    DATA_INVALID = "MKT.DATA.INVALID"
    GEN_INVALID = "MKT.GEN.INVALID"
    AUTH_DENIED = "MKT.AUTH.DENIED"
    CONFIG_INVALID = "MKT.CONFIG.INVALID"
    CONFIG_MISSING = "MKT.CONFIG.MISSING"


class KitError(Exception):
    """A failure the entry point reports and exits on."""

    code: ErrorCode
    headline: str
    fix: str | None
    path: str | None
    detail: str | None

    def __init__(
        self,
        code: ErrorCode,
        headline: str,
        fix: str | None = None,
        path: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(f"{code.value} {headline}")
        self.code = code
        self.headline = headline
        self.fix = fix
        self.path = path
        self.detail = detail

    def format_lines(self) -> list[str]:
        lines = [f"{self.code.value}  {self.headline}"]
        if self.path:
            lines.append(f"  file:   {self.path}")
        if self.fix:
            lines.append(f"  fix:    {self.fix}")
        if self.detail:
            lines.append(f"  detail: {self.detail}")
        return lines


def classify_fetch_error(message: str) -> ErrorCode:
    lowered = message.lower()
    if "404" in lowered or "not found" in lowered:
        return ErrorCode.FETCH_MISSING
    if "401" in lowered or "403" in lowered:
        return ErrorCode.AUTH_DENIED
    if "429" in lowered or "rate limit" in lowered:
        return ErrorCode.FETCH_QUOTA
    return ErrorCode.FETCH_NETWORK


class ErrorTally:
    """Counts fetch errors per code for run summaries."""

    def __init__(self) -> None:
        self.counts: dict[ErrorCode, int] = {}

    def record(self, message: str) -> ErrorCode:
        code = classify_fetch_error(message)
        self.counts[code] = self.counts.get(code, 0) + 1
        return code

    def record_all(self, messages: Iterable[str]) -> None:
        for message in messages:
            self.record(message)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def top(self, n: int = 5) -> list[tuple[str, int]]:
        ranked = sorted(self.counts.items(), key=lambda x: x[1], reverse=True)
        return [(code.value, count) for code, count in ranked[:n]]
