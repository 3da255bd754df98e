"""Day-keyed JSON file cache for remote search results."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9-]")


def cache_key(query: str) -> str:
    return _UNSAFE.sub("_", query)[:120]


class DayCache:
    """Read-if-exists, write-on-miss. Entries expire only when the day changes."""

    cache_dir: Path

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)

    def path_for(self, query: str, day: str) -> Path:
        return self.cache_dir / f"{cache_key(query)}-{day}.json"

    def get(self, query: str, day: str) -> Any | None:
        path = self.path_for(query, day)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(f"Ignoring unreadable cache entry {path.name}: {exc}")
            return None

    def set(self, query: str, day: str, data: Any) -> Path:
        path = self.path_for(query, day)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path
