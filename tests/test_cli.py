import json

import geosketch.__main__ as cli
from geosketch import LatLon


def _snapshot():
    return {
        "points": [
            {"id": "a", "name": "A", "coordinates": {"lat": 48.8566, "lon": 2.3522}},
            {"id": "b", "name": "B", "coordinates": {"lat": 48.86, "lon": 2.355}},
        ],
        "lineSegments": [
            {
                "id": "l",
                "name": "L",
                "mode": "coordinate",
                "center": {"lat": 48.8566, "lon": 2.3522},
                "endpoint": {"lat": 48.86, "lon": 2.355},
            }
        ],
        "polygons": [{"id": "bad", "name": "Bad", "pointIds": ["a", "b"]}],
    }


def test_repair_writes_repaired_snapshot(tmp_path, capsys):
    source = tmp_path / "layers.json"
    source.write_text(json.dumps(_snapshot()), encoding="utf-8")
    target = tmp_path / "out" / "repaired.json"

    code = cli.main(["repair", str(source), "-o", str(target)])

    assert code == 0
    repaired = json.loads(target.read_text(encoding="utf-8"))
    assert repaired["lineSegments"][0]["startPointId"] == "a"
    assert repaired["lineSegments"][0]["endPointId"] == "b"
    assert repaired["points"][0]["lineId"] == "l"
    assert repaired["polygons"] == []

    out = capsys.readouterr().out
    assert "lineSegments: 1" in out
    assert "Repaired lines: 1" in out
    assert "Warnings:\n  (none)" in out


def test_repair_reports_consistency_warnings(tmp_path, monkeypatch, capsys):
    source = tmp_path / "layers.json"
    source.write_text(json.dumps(_snapshot()), encoding="utf-8")
    monkeypatch.setattr(cli, "check_consistency", lambda graph: ["point 'a' is broken"])

    code = cli.main(["repair", str(source)])

    assert code == 1
    assert "  - point 'a' is broken" in capsys.readouterr().out


def test_endpoint_prints_solution(monkeypatch, capsys):
    calls = []

    def _solve(*args):
        calls.append(args)
        return LatLon(1.5, 2.5)

    monkeypatch.setattr(cli, "endpoint_from_intersection", _solve)

    code = cli.main(["--log-level", "WARNING", "endpoint", "1", "2", "1.1", "2.1", "30"])

    assert code == 0
    assert calls == [(1.0, 2.0, 1.1, 2.1, 30.0)]
    assert capsys.readouterr().out.strip() == "1.5000000 2.5000000"
