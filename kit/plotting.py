"""Charts for the ops baseline and telemetry rollup."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from promo_core.schemas import OpsRun, TelemetryRollup  # noqa: E402


class PlotGenerator:
    def _set_style(self) -> None:
        style = "seaborn-v0_8-whitegrid" if "seaborn-v0_8-whitegrid" in plt.style.available else "ggplot"
        plt.style.use(style)

    def _reset_style(self) -> None:
        plt.style.use("default")

    def plot_runtime_history(self, history: Sequence[OpsRun], save_path: str | Path) -> bool:
        """Run duration in seconds per run, oldest first. Returns False with no data."""
        runs = [r for r in history if r.date]
        if not runs:
            return False
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        self._set_style()
        runs.sort(key=lambda r: r.date or "")
        labels = [(r.date or "")[:10] for r in runs]
        seconds = [r.total_duration_ms / 1000 for r in runs]

        plt.figure(figsize=(10, 6))
        plt.plot(range(len(runs)), seconds, "b-", linewidth=2, marker="o", label="Duration (s)")
        plt.xticks(range(len(runs)), labels, rotation=45, ha="right")
        plt.xlabel("Run date", fontsize=12)
        plt.ylabel("Seconds", fontsize=12)
        plt.title("Ops Run Duration", fontsize=14, fontweight="bold")
        plt.legend(loc="best")
        plt.grid(True, alpha=0.3)
        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        plt.close()
        self._reset_style()
        return True

    def plot_weekly_events(self, rollup: TelemetryRollup, save_path: str | Path) -> bool:
        """Stacked weekly event counts by type."""
        if not rollup.by_week:
            return False
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        self._set_style()
        weeks = sorted(rollup.by_week)
        types = sorted({t for counts in rollup.by_week.values() for t in counts})

        plt.figure(figsize=(10, 6))
        bottoms = [0] * len(weeks)
        cmap = plt.get_cmap("Set3")
        for index, event_type in enumerate(types):
            values = [rollup.by_week[w].get(event_type, 0) for w in weeks]
            plt.bar(weeks, values, bottom=bottoms, label=event_type, color=cmap(index % 12))
            bottoms = [b + v for b, v in zip(bottoms, values)]
        plt.xlabel("ISO week", fontsize=12)
        plt.ylabel("Events", fontsize=12)
        plt.title("Telemetry Events per Week", fontsize=14, fontweight="bold")
        plt.legend(loc="best", fontsize=8)
        plt.xticks(rotation=45, ha="right")
        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        plt.close()
        self._reset_style()
        return True
