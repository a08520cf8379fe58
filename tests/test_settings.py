import json

from flowcanvas.core.settings import Settings, DEFAULTS


def test_defaults_when_file_missing(tmp_path):
    s = Settings(tmp_path / "missing.json")
    assert s.to_dict() == DEFAULTS


def test_reads_saved_values(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"grid_size": 10, "snap_to_grid": True, "history_size": 5}))
    s = Settings(path)
    assert s.grid_size == 10
    assert s.snap_to_grid is True
    assert s.history_size == 5
    assert s.max_scale == DEFAULTS["max_scale"]


def test_corrupt_file_falls_back(tmp_path, capsys):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    s = Settings(path)
    assert s.to_dict() == DEFAULTS
    assert "[Settings]" in capsys.readouterr().out


def test_bad_zoom_limits_reset(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"min_scale": 4.0, "max_scale": 2.0, "grid_size": -5}))
    s = Settings(path)
    assert (s.min_scale, s.max_scale) == (DEFAULTS["min_scale"], DEFAULTS["max_scale"])
    assert s.grid_size == DEFAULTS["grid_size"]


def test_save_round_trip(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    s = Settings(path)
    s.last_file = "/tmp/graph.json"
    s.zoom_sensitivity = 0.002
    s.save()
    again = Settings(path)
    assert again.last_file == "/tmp/graph.json"
    assert again.zoom_sensitivity == 0.002
