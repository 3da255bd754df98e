"""One-shot retry for transient fetch failures."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

import requests

T = TypeVar("T")


class RetryPolicy:
    """Retry 5xx responses and connection errors; everything else raises at once."""

    max_retries: int
    delay_seconds: float
    sleep_fn: Callable[[float], None]

    def __init__(
        self,
        max_retries: int = 1,
        delay_seconds: float = 0.0,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds
        self.sleep_fn = sleep_fn or time.sleep

    def execute(self, operation: Callable[[], T]) -> T:
        retries = 0
        while True:
            try:
                return operation()
            except Exception as exc:  # noqa: BLE001
                if not self._is_retryable(exc) or retries >= self.max_retries:
                    raise
                retries += 1
                if self.delay_seconds > 0:
                    self.sleep_fn(self.delay_seconds)

    def _is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
            return True
        if isinstance(exc, (TimeoutError, ConnectionError)):
            return True
        status_code = _coerce_status_code(getattr(exc, "status_code", None))
        if status_code is None:
            response = getattr(exc, "response", None)
            status_code = _coerce_status_code(getattr(response, "status_code", None))
        if status_code is None:
            return False
        return status_code >= 500


def _coerce_status_code(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None
