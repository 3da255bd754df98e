"""Artifact locations and validated writes for pipeline steps."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from promo_core.schemas import BaseSchema
from store.datastore import DataStore, dump_json

from .config import KitConfig, save_config
from .errors import ErrorCode, KitError

logger = logging.getLogger(__name__)


class ArtifactManager:
    """Resolves data/public/cache directories and writes generated files.

    With ``dry_run`` nothing is written; the paths that would have been
    written are still recorded in ``written``.
    """

    def __init__(self, config: KitConfig, root: str | Path, dry_run: bool = False):
        self.config = config
        self.root = Path(root)
        self.dry_run = dry_run
        self.data = DataStore(self.data_dir)
        self.public = DataStore(self.public_dir)
        self.written: list[Path] = []

    @property
    def data_dir(self) -> Path:
        return self.root / self.config.paths.data_dir

    @property
    def public_dir(self) -> Path:
        return self.root / self.config.paths.public_dir

    @property
    def cache_dir(self) -> Path:
        return self.root / self.config.paths.cache_dir

    @property
    def plots_dir(self) -> Path:
        return self.public_dir / "lab" / "plots"

    def targets_dir(self, slug: str) -> str:
        return f"targets/{slug}"

    def snapshot_config(self) -> Path:
        """Save the effective configuration next to the generated data."""
        path = self.data_dir / "kit.config.effective.yaml"
        if not self.dry_run:
            save_config(self.config, path)
        return path

    def write_json(self, name: str, artifact: BaseSchema | Any, public: bool = False) -> Path:
        """Validate and write one JSON artifact.

        Models are round-tripped through their own schema first; a failure
        there is a generation bug and aborts with ``MKT.GEN.INVALID``.
        """
        store = self.public if public else self.data
        if isinstance(artifact, BaseSchema):
            payload = artifact.to_dict()
            try:
                type(artifact).from_dict(payload)
            except ValidationError as exc:
                raise KitError(
                    ErrorCode.GEN_INVALID,
                    f"Generated {name} failed validation",
                    fix="This is a bug in the generator; report it with the input files",
                    path=str(store.path(name)),
                    detail=str(exc).splitlines()[0],
                ) from exc
        else:
            payload = artifact
        return self._write(store, name, dump_json(payload))

    def write_text(self, name: str, content: str, public: bool = True) -> Path:
        store = self.public if public else self.data
        return self._write(store, name, content)

    def _write(self, store: DataStore, name: str, content: str) -> Path:
        path = store.path(name)
        self.written.append(path)
        if self.dry_run:
            logger.info(f"[dry-run] would write {path}")
            return path
        return store.save_text(name, content)
