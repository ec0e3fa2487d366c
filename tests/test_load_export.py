import copy

import pytest

import geosketch.graph as graph_module
from geosketch import (
    AzimuthLine,
    CoordinateLine,
    ElementGraph,
    ElementType,
    IntersectionLine,
    LatLon,
    Note,
    ParallelLine,
    Point,
    Polygon,
    check_consistency,
    destination_point,
)


def _pt(pid, lat, lon, **extra):
    return {"id": pid, "name": pid.upper(), "coordinates": {"lat": lat, "lon": lon}, **extra}


def _legacy_snapshot():
    return {
        "circles": [{"id": "c1", "name": "Ring", "center": {"lat": 0.0, "lon": 0.0}, "radius": 2.0}],
        "points": [
            _pt("a", 48.8566, 2.3522),
            _pt("b", 48.86, 2.355),
            _pt("c", 48.87, 2.36),
            _pt("d", 48.88, 2.37),
        ],
        "lineSegments": [
            {
                "id": "l1",
                "name": "Line 1",
                "mode": "coordinate",
                "center": {"lat": 48.8566, "lon": 2.3522},
                "endpoint": {"lat": 48.86, "lon": 2.355},
            }
        ],
        "polygons": [{"id": "poly", "name": "Poly", "pointIds": ["b", "c", "d"]}],
        "notes": [],
    }


def test_legacy_snapshot_references_rebuilt():
    graph = ElementGraph()
    report = graph.load_layers(_legacy_snapshot())

    line = graph.get_line_segment("l1")
    assert (line.start_point_id, line.end_point_id) == ("a", "b")
    assert line.points_on_line == []
    assert graph.get_point("a").line_id == "l1"
    assert graph.get_point("c").polygon_ids == ["poly"]
    assert report.loaded == {"circles": 1, "lineSegments": 1, "points": 4, "polygons": 1, "notes": 0}
    assert report.repaired_lines == ["l1"]
    assert check_consistency(graph) == []


def test_stale_stored_references_are_repaired():
    snapshot = _legacy_snapshot()
    snapshot["lineSegments"][0].update(startPointId="d", endPointId="ghost", pointsOnLine=["c", "ghost"])
    snapshot["points"][3]["lineId"] = "nope"
    snapshot["points"][0]["polygonIds"] = ["poly"]

    graph = ElementGraph()
    report = graph.load_layers(snapshot)

    line = graph.get_line_segment("l1")
    assert (line.start_point_id, line.end_point_id) == ("a", "b")
    assert line.points_on_line == ["c"]
    assert graph.get_point("c").line_id == "l1"
    assert graph.get_point("d").line_id is None
    assert graph.get_point("a").polygon_ids == []
    assert any("ghost" in msg for msg in report.dropped_references)
    assert check_consistency(graph) == []


def test_stored_start_id_wins_when_still_in_place():
    snapshot = _legacy_snapshot()
    snapshot["points"].append(_pt("a2", 48.8566, 2.3522))
    snapshot["lineSegments"][0]["startPointId"] = "a2"

    graph = ElementGraph()
    graph.load_layers(snapshot)

    assert graph.get_line_segment("l1").start_point_id == "a2"


def test_stored_point_line_id_overlay():
    snapshot = _legacy_snapshot()
    snapshot["lineSegments"].append(
        {
            "id": "l2",
            "name": "Line 2",
            "mode": "coordinate",
            "center": {"lat": 48.86, "lon": 2.355},
            "endpoint": {"lat": 49.0, "lon": 3.0},
        }
    )
    snapshot["points"][1]["lineId"] = "l1"

    graph = ElementGraph()
    graph.load_layers(snapshot)

    assert graph.get_line_segment("l2").start_point_id == "b"
    assert graph.get_point("b").line_id == "l1"


def test_saved_coordinates_migrate_to_points():
    snapshot = _legacy_snapshot()
    snapshot["savedCoordinates"] = [
        {"id": "s1", "name": "Saved", "lat": 10.0, "lon": 20.0, "timestamp": 5},
        {"id": "s2", "name": "Dup position", "lat": 48.8566, "lon": 2.3522},
        {"id": "a", "name": "Dup id", "lat": 1.0, "lon": 1.0},
        {"id": "s3", "name": "Broken", "lat": "x", "lon": 1.0},
    ]

    graph = ElementGraph()
    report = graph.load_layers(snapshot)

    assert report.migrated_points == ["s1"]
    saved = graph.get_point("s1")
    assert saved.coordinates == LatLon(10.0, 20.0)
    assert saved.created_at == 5
    assert graph.point_count == 5


def test_legacy_polygon_coordinates_migrate():
    snapshot = _legacy_snapshot()
    snapshot["polygons"] = [
        {
            "id": "old",
            "name": "Old",
            "points": [
                {"lat": 48.8566, "lon": 2.3522},
                {"lat": 50.0, "lon": 3.0},
                {"lat": 51.0, "lon": 4.0},
            ],
        }
    ]

    graph = ElementGraph()
    report = graph.load_layers(snapshot)

    polygon = graph.get_polygon("old")
    assert polygon.point_ids == ["a", "old-point-1", "old-point-2"]
    assert graph.get_point("old-point-1").name == "Old Point 2"
    assert sorted(report.migrated_points) == ["old-point-1", "old-point-2"]
    assert graph.get_point("a").polygon_ids == ["old"]
    assert check_consistency(graph) == []


def test_invalid_records_are_skipped():
    snapshot = _legacy_snapshot()
    snapshot["points"].append({"id": "bad", "name": "Bad", "coordinates": {"lat": "x", "lon": 0}})
    snapshot["points"].append(_pt("a", 0.0, 0.0))
    snapshot["lineSegments"].append({"id": "weird", "name": "W", "mode": "spline", "center": {"lat": 0, "lon": 0}})
    snapshot["polygons"].append({"id": "tiny", "name": "Tiny", "pointIds": ["a", "b"]})
    snapshot["polygons"].append({"id": "lost", "name": "Lost", "pointIds": ["a", "b", "ghost"]})
    snapshot["circles"].append({"id": "c2", "name": "Flat", "center": {"lat": 0, "lon": 0}, "radius": 0})

    graph = ElementGraph()
    report = graph.load_layers(snapshot)

    assert graph.get_point("a").coordinates == LatLon(48.8566, 2.3522)
    assert graph.point_count == 4
    assert graph.line_segment_count == 1
    assert [p.id for p in graph.polygons] == ["poly"]
    assert graph.circle_count == 1
    assert len(report.skipped) == 6


LINE_AT_ORIGIN = {"id": "l", "name": "L", "center": {"lat": 0.0, "lon": 0.0}}


@pytest.mark.parametrize(
    "key, record",
    [
        ("points", _pt("p", 1.0, 1.0, lineId=["l"])),
        ("lineSegments", {**LINE_AT_ORIGIN, "mode": "coordinate", "endpoint": {"lat": 1, "lon": 1}, "startPointId": {"id": "a"}}),
        ("lineSegments", {**LINE_AT_ORIGIN, "mode": "intersection", "intersectionPoint": {"lat": 1, "lon": 1}, "distance": "10"}),
        ("lineSegments", {**LINE_AT_ORIGIN, "mode": "intersection", "intersectionPoint": {"lat": 1, "lon": 1}, "intersectionDistance": [1]}),
        ("notes", {"id": "n", "title": "T", "content": "", "linkedElementType": "point", "linkedElementId": ["a"]}),
    ],
)
def test_badly_typed_fields_skip_the_record(key, record):
    graph = ElementGraph()
    graph.add_point(Point(id="keep", name="Keep", coordinates=LatLon(5.0, 5.0)))

    snapshot = {"points": [_pt("a", 0.0, 0.0)]}
    snapshot.setdefault(key, []).append(record)
    report = graph.load_layers(snapshot)

    assert len(report.skipped) == 1
    assert [p.id for p in graph.points] == ["a"]
    assert graph.line_segment_count == 0 and graph.note_count == 0
    assert check_consistency(graph) == []


def test_failed_load_keeps_previous_contents(monkeypatch):
    graph = ElementGraph()
    graph.add_point(Point(id="keep", name="Keep", coordinates=LatLon(5.0, 5.0)))

    def _explode(self, report):
        raise RuntimeError("repair failed")

    monkeypatch.setattr(ElementGraph, "_repair_references", _explode)
    with pytest.raises(RuntimeError):
        graph.load_layers(_legacy_snapshot())

    assert [p.id for p in graph.points] == ["keep"]
    assert graph.line_segment_count == 0


def test_notes_to_missing_elements_are_unlinked():
    snapshot = _legacy_snapshot()
    snapshot["notes"] = [
        {"id": "n1", "title": "ok", "content": "", "linkedElementType": "point", "linkedElementId": "a"},
        {"id": "n2", "title": "gone", "content": "", "linkedElementType": "polygon", "linkedElementId": "zzz"},
    ]

    graph = ElementGraph()
    report = graph.load_layers(snapshot)

    assert report.unlinked_notes == ["n2"]
    note = graph.get_note("n2")
    assert note.linked_element_type is None and note.linked_element_id is None
    assert graph.get_note("n1").linked_element_type is ElementType.POINT


def test_missing_timestamps_are_sequential():
    graph = ElementGraph()
    graph.load_layers(_legacy_snapshot())
    stamps = [graph.get_line_segment("l1").created_at] + [p.created_at for p in graph.points]
    assert all(b - a == 1000 for a, b in zip(stamps, stamps[1:]))


def test_undated_timestamps_count_every_record_but_notes(monkeypatch):
    monkeypatch.setattr(graph_module, "_now_ms", lambda: 100_000)
    snapshot = _legacy_snapshot()
    snapshot["points"][0]["createdAt"] = 5
    snapshot["notes"] = [{"id": "n", "title": "T", "content": ""}]

    graph = ElementGraph()
    graph.load_layers(snapshot)

    # circle, line, 4 points, polygon -> base is 100000 - 7 * 1000
    assert graph.circles[0]["createdAt"] == 93_000
    assert graph.get_line_segment("l1").created_at == 94_000
    assert graph.get_point("a").created_at == 5
    assert [graph.get_point(pid).created_at for pid in "bcd"] == [95_000, 96_000, 97_000]
    assert graph.get_polygon("poly").created_at == 98_000
    assert graph.get_note("n").created_at == 99_000


def test_parallel_latitude_uses_longitude_key():
    snapshot = _legacy_snapshot()
    snapshot["lineSegments"].append(
        {"id": "par", "name": "Parallel", "mode": "parallel", "center": {"lat": 0, "lon": 0}, "longitude": 45.0}
    )
    graph = ElementGraph()
    graph.load_layers(snapshot)

    line = graph.get_line_segment("par")
    assert isinstance(line, ParallelLine)
    assert line.latitude == 45.0
    exported = next(r for r in graph.export_layers()["lineSegments"] if r["id"] == "par")
    assert exported["longitude"] == 45.0
    assert "latitude" not in exported


def test_legacy_azimuth_line_measures_parameters():
    end = destination_point(10.0, 10.0, 30.0, 60.0)
    snapshot = {
        "lineSegments": [
            {
                "id": "az",
                "name": "Az",
                "mode": "azimuth",
                "center": {"lat": 10.0, "lon": 10.0},
                "endpoint": {"lat": end.lat, "lon": end.lon},
            }
        ]
    }
    graph = ElementGraph()
    graph.load_layers(snapshot)
    line = graph.get_line_segment("az")
    assert line.distance == pytest.approx(30.0)
    assert line.azimuth == pytest.approx(60.0)
    assert line.endpoint == end


def test_export_load_round_trip():
    graph = ElementGraph()
    graph.add_circle({"id": "c", "name": "C", "center": {"lat": 0.0, "lon": 0.0}, "radius": 1.0})
    for pid, lat in (("a", 0.0), ("b", 1.0), ("c", 2.0)):
        graph.add_point(Point(id=pid, name=pid, coordinates=LatLon(lat, lat), elevation=12.5))
    graph.add_line_segment(CoordinateLine(id="ab", name="AB", center=LatLon(0.0, 0.0), endpoint=LatLon(1.0, 1.0)))
    graph.add_line_segment(AzimuthLine(id="az", name="Az", center=LatLon(2.0, 2.0), distance=10.0, azimuth=45.0))
    graph.add_line_segment(
        IntersectionLine(id="x", name="X", center=LatLon(0.0, 0.0), intersection_point=LatLon(0.5, 0.6), distance=200.0)
    )
    graph.add_line_segment(ParallelLine(id="par", name="Par", center=LatLon(30.0, 0.0), latitude=30.0))
    graph.add_polygon(Polygon(id="poly", name="Poly", point_ids=["a", "b", "c"], color="#ff0000"))
    graph.add_note(Note(id="n", title="T", content="body", linked_element_type=ElementType.POLYGON, linked_element_id="poly"))

    exported = graph.export_layers()
    restored = ElementGraph()
    report = restored.load_layers(copy.deepcopy(exported))

    assert restored.export_layers() == exported
    assert report.skipped == []
    assert report.repaired_lines == []
    assert exported["points"][0]["polygonIds"] == ["poly"]
    assert exported["lineSegments"][0]["mode"] == "coordinate"
    assert exported["notes"][0]["linkedElementType"] == "polygon"


def test_load_replaces_previous_contents():
    graph = ElementGraph()
    graph.add_point(Point(id="old", name="Old", coordinates=LatLon(0.0, 0.0)))
    graph.load_layers({})
    assert graph.is_empty
