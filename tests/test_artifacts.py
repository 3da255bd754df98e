from datetime import datetime, timezone

import pytest

from kit.artifacts import ArtifactManager
from kit.config import KitConfig
from kit.errors import ErrorCode, KitError
from promo_core.schemas import FeedbackSummary, QueueHealthSnapshot

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_directories_follow_config(tmp_path) -> None:
    manager = ArtifactManager(KitConfig(), tmp_path)

    assert manager.data_dir == tmp_path / "site" / "src" / "data"
    assert manager.public_dir == tmp_path / "site" / "public"
    assert manager.plots_dir == tmp_path / "site" / "public" / "lab" / "plots"
    assert manager.targets_dir("alpha") == "targets/alpha"


def test_write_json_model_and_plain(tmp_path) -> None:
    manager = ArtifactManager(KitConfig(), tmp_path)

    path = manager.write_json("feedback-summary.json", FeedbackSummary(generated_at=NOW))
    manager.write_json("telemetry/daily/2026-01-12.json", {"date": "2026-01-12"})
    manager.write_text("lab/x.md", "# hi\n")

    assert '"generatedAt": "2026-02-01T00:00:00.000Z"' in path.read_text(encoding="utf-8")
    assert (manager.data_dir / "telemetry" / "daily" / "2026-01-12.json").exists()
    assert (manager.public_dir / "lab" / "x.md").read_text(encoding="utf-8") == "# hi\n"
    assert len(manager.written) == 3


def test_dry_run_records_but_does_not_write(tmp_path) -> None:
    manager = ArtifactManager(KitConfig(), tmp_path, dry_run=True)

    path = manager.write_json("queue-health.json", QueueHealthSnapshot(generated_at=NOW))
    manager.snapshot_config()

    assert manager.written == [path]
    assert not path.exists()
    assert not (manager.data_dir / "kit.config.effective.yaml").exists()


def test_invalid_generated_model_is_gen_invalid(tmp_path) -> None:
    manager = ArtifactManager(KitConfig(), tmp_path)
    broken = QueueHealthSnapshot.model_construct(generated_at=NOW, submissions="many")

    with pytest.raises(KitError) as excinfo:
        manager.write_json("queue-health.json", broken)

    assert excinfo.value.code is ErrorCode.GEN_INVALID
    assert not (manager.data_dir / "queue-health.json").exists()


def test_snapshot_config(tmp_path) -> None:
    manager = ArtifactManager(KitConfig(), tmp_path)

    path = manager.snapshot_config()

    assert path.exists()
    assert "winner_ratio" in path.read_text(encoding="utf-8")
