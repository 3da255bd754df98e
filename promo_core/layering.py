"""Ordered merging of partial tool records with per-field provenance.

Layers are applied left to right (registry, then live facts, then the
human override); the last layer to set a field wins. ``None`` values do
not overwrite.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LayeredRecord:
    values: dict[str, Any] = field(default_factory=dict)
    provenance: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def source_of(self, key: str) -> str | None:
        return self.provenance.get(key)

    def apply(self, source: str, layer: Mapping[str, Any] | None) -> None:
        for key, value in (layer or {}).items():
            if value is None:
                continue
            self.values[key] = value
            self.provenance[key] = source


def merge_layers(layers: Iterable[tuple[str, Mapping[str, Any] | None]]) -> LayeredRecord:
    record = LayeredRecord()
    for source, layer in layers:
        record.apply(source, layer)
    return record
