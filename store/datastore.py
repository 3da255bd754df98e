"""
File-backed JSON data directory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from kit.errors import ErrorCode, KitError

logger = logging.getLogger(__name__)


def dump_json(data: Any) -> str:
    """Two-space indented JSON with a trailing newline, keys in insertion order."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class DataStore:
    """Reads and writes artifacts relative to one data directory.

    There is no locking; each pipeline step is expected to finish before
    another step touches the same file.
    """

    root: Path

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path(self, name: str) -> Path:
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path(name).exists()

    def load_json(self, name: str, default: Any = None) -> Any:
        path = self.path(name)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(f"Could not read {path}: {exc}; using default")
            return default

    def require_json(self, name: str, fix: str | None = None) -> Any:
        path = self.path(name)
        if not path.exists():
            raise KitError(
                ErrorCode.DATA_MISSING,
                f"Required file {name} not found",
                fix=fix or f"Create {name} in the data directory",
                path=str(path),
            )
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise KitError(
                ErrorCode.DATA_INVALID,
                f"Required file {name} is not valid JSON",
                fix=f"Fix the JSON syntax in {name}",
                path=str(path),
                detail=str(exc),
            ) from exc

    def load_text(self, name: str, default: str = "") -> str:
        path = self.path(name)
        if not path.exists():
            return default
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning(f"Could not read {path}: {exc}")
            return default

    def load_jsonl_dir(self, name: str) -> str:
        """Concatenate every ``*.jsonl`` file in ``name``, in filename order."""
        directory = self.path(name)
        if not directory.is_dir():
            return ""
        chunks = []
        for file in sorted(directory.glob("*.jsonl")):
            try:
                chunks.append(file.read_text(encoding="utf-8"))
            except OSError as exc:
                logger.warning(f"Could not read {file}: {exc}")
        return "\n".join(chunks)

    def load_json_dir(self, name: str) -> dict[str, Any]:
        """Map of file stem -> parsed content for every ``*.json`` in ``name``."""
        directory = self.path(name)
        if not directory.is_dir():
            return {}
        loaded: dict[str, Any] = {}
        for file in sorted(directory.glob("*.json")):
            try:
                loaded[file.stem] = json.loads(file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning(f"Skipping unreadable {file}: {exc}")
        return loaded

    def save_json(self, name: str, data: Any) -> Path:
        return self.save_text(name, dump_json(data))

    def save_text(self, name: str, content: str) -> Path:
        path = self.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
