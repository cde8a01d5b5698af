import json

from core.config import _reset_settings_cache_for_tests, get_settings
from core.metrics import write_metrics_snapshot


def test_metrics_snapshot_written_atomically(monkeypatch, tmp_path):
    monkeypatch.setenv("API_FOOTBALL_KEY", "DUMMY")
    monkeypatch.setenv("RADAR_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("ENABLE_METRICS_FILE", raising=False)
    monkeypatch.delenv("METRICS_DIR", raising=False)
    _reset_settings_cache_for_tests()

    target = write_metrics_snapshot({"leagues": 2, "written": True}, get_settings())

    assert target == tmp_path / "metrics" / "last_run.json"
    assert json.loads(target.read_text(encoding="utf-8")) == {"leagues": 2, "written": True}
    assert target.read_text(encoding="utf-8").endswith("\n")
    assert [p.name for p in target.parent.iterdir()] == ["last_run.json"]


def test_metrics_snapshot_disabled(monkeypatch, tmp_path):
    monkeypatch.setenv("API_FOOTBALL_KEY", "DUMMY")
    monkeypatch.setenv("RADAR_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ENABLE_METRICS_FILE", "0")
    _reset_settings_cache_for_tests()

    target = write_metrics_snapshot({"leagues": 2})
    assert not target.exists()
