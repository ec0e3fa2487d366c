"""In-memory element graph keeping points, lines, polygons and notes consistent.

Every mutation goes through :class:`ElementGraph`, which re-runs reference
maintenance after adds and updates and cascades deletes:

* a line's ``start_point_id``/``end_point_id`` name the point sitting on its
  start/end position (within ``GraphConfig.match_tolerance`` degrees);
* ``Point.polygon_ids`` mirrors exactly the polygons listing the point;
* a polygon never keeps fewer than three vertices, it is deleted instead;
* notes die with the element they are linked to.

Entities handed out by the graph are copies; changing them has no effect on
the graph.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import numpy as np

from .config import GraphConfig, get_default_graph_config
from .geodesy import calculate_distance, destination_point, endpoint_from_intersection
from .logging_utils import apply_debug_logging
from .model import (
    LINE_CLASSES,
    MIN_POLYGON_VERTICES,
    AzimuthLine,
    DeletionReport,
    ElementId,
    ElementType,
    IntersectionLine,
    LatLon,
    LineMode,
    LineSegment,
    Note,
    ParallelLine,
    Point,
    Polygon,
    UnknownElementError,
)
from .snapshot import (
    entity_to_dict,
    line_from_dict,
    migrate_polygon_coordinates,
    migrate_saved_coordinates,
    note_from_dict,
    point_from_dict,
    polygon_from_dict,
)
from .validate import ValidationError, ensure_polygon_vertices, validate_circle_record

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Element = Union[Record, Point, LineSegment, Polygon]

_POINT_PATCH_FIELDS = {"name", "coordinates", "elevation", "color", "line_id"}
_POLYGON_PATCH_FIELDS = {"name", "point_ids", "color"}
_NOTE_PATCH_FIELDS = {"title", "content", "linked_element_type", "linked_element_id"}
_LAT_LON_FIELDS = ("center", "endpoint", "intersection_point", "coordinates")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_lat_lon(value: Any) -> Any:
    if isinstance(value, Mapping):
        return LatLon(value["lat"], value["lon"])
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return LatLon(value[0], value[1])
    return value


def _dedupe(ids: Iterable[ElementId]) -> List[ElementId]:
    return list(dict.fromkeys(ids))


@dataclass
class LoadReport:
    """What :meth:`ElementGraph.load_layers` accepted, dropped and repaired."""

    loaded: Dict[str, int] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    migrated_points: List[ElementId] = field(default_factory=list)
    repaired_lines: List[ElementId] = field(default_factory=list)
    dropped_references: List[str] = field(default_factory=list)
    unlinked_notes: List[ElementId] = field(default_factory=list)


class ElementGraph:
    """Owned store of map elements and the references between them."""

    def __init__(self, config: Optional[GraphConfig] = None) -> None:
        self.config = copy.deepcopy(config) if config is not None else get_default_graph_config()
        self._circles: Dict[ElementId, Record] = {}
        self._points: Dict[ElementId, Point] = {}
        self._lines: Dict[ElementId, LineSegment] = {}
        self._polygons: Dict[ElementId, Polygon] = {}
        self._notes: Dict[ElementId, Note] = {}

    # ------------------------------------------------------------------
    # Read access

    @property
    def circles(self) -> List[Record]:
        return copy.deepcopy(list(self._circles.values()))

    @property
    def points(self) -> List[Point]:
        return copy.deepcopy(list(self._points.values()))

    @property
    def line_segments(self) -> List[LineSegment]:
        return copy.deepcopy(list(self._lines.values()))

    @property
    def polygons(self) -> List[Polygon]:
        return copy.deepcopy(list(self._polygons.values()))

    @property
    def notes(self) -> List[Note]:
        return copy.deepcopy(list(self._notes.values()))

    @property
    def circle_count(self) -> int:
        return len(self._circles)

    @property
    def point_count(self) -> int:
        return len(self._points)

    @property
    def line_segment_count(self) -> int:
        return len(self._lines)

    @property
    def polygon_count(self) -> int:
        return len(self._polygons)

    @property
    def note_count(self) -> int:
        return len(self._notes)

    @property
    def is_empty(self) -> bool:
        return not (self._circles or self._points or self._lines or self._polygons or self._notes)

    def sorted_points(self) -> List[Point]:
        return sorted(self.points, key=lambda p: p.created_at or 0, reverse=True)

    def sorted_line_segments(self) -> List[LineSegment]:
        return sorted(self.line_segments, key=lambda line: line.created_at or 0, reverse=True)

    def sorted_polygons(self) -> List[Polygon]:
        return sorted(self.polygons, key=lambda p: p.created_at or 0, reverse=True)

    def sorted_notes(self) -> List[Note]:
        return sorted(self.notes, key=lambda n: n.updated_at or n.created_at or 0, reverse=True)

    def get_point(self, point_id: ElementId) -> Optional[Point]:
        return copy.deepcopy(self._points.get(point_id))

    def get_line_segment(self, line_id: ElementId) -> Optional[LineSegment]:
        return copy.deepcopy(self._lines.get(line_id))

    def get_polygon(self, polygon_id: ElementId) -> Optional[Polygon]:
        return copy.deepcopy(self._polygons.get(polygon_id))

    def get_note(self, note_id: ElementId) -> Optional[Note]:
        return copy.deepcopy(self._notes.get(note_id))

    def get_element(self, element_type: ElementType, element_id: ElementId) -> Optional[Element]:
        return copy.deepcopy(self._table(ElementType(element_type)).get(element_id))

    def get_notes_for_element(self, element_type: ElementType, element_id: ElementId) -> List[Note]:
        element_type = ElementType(element_type)
        return [copy.deepcopy(n) for n in self._notes.values() if n.is_linked_to(element_type, element_id)]

    def _table(self, element_type: ElementType) -> Dict[ElementId, Any]:
        return {
            ElementType.CIRCLE: self._circles,
            ElementType.POINT: self._points,
            ElementType.LINE_SEGMENT: self._lines,
            ElementType.POLYGON: self._polygons,
        }[element_type]

    def _require(self, element_type: ElementType, element_id: ElementId) -> Any:
        try:
            return self._table(element_type)[element_id]
        except KeyError:
            raise UnknownElementError(element_type, element_id) from None

    def _ensure_new_id(self, table: Mapping[ElementId, Any], element_id: Any, kind: str) -> None:
        if not isinstance(element_id, str) or not element_id:
            raise ValidationError(f"{kind} needs a non-empty string id")
        if element_id in table:
            raise ValueError(f"{kind} '{element_id}' already exists")

    # ------------------------------------------------------------------
    # Coordinate matching

    def _points_within(self, lat: float, lon: float, tolerance: float) -> List[Point]:
        candidates = list(self._points.values())
        if not candidates:
            return []
        coords = np.array([p.coordinates.as_tuple() for p in candidates], dtype=float)
        mask = np.all(np.abs(coords - np.array([lat, lon], dtype=float)) < tolerance, axis=1)
        return [candidates[int(idx)] for idx in np.flatnonzero(mask)]

    def _within(self, a: LatLon, b: LatLon) -> bool:
        tol = self.config.match_tolerance
        return abs(a.lat - b.lat) < tol and abs(a.lon - b.lon) < tol

    def find_point_at_coordinates(
        self, lat: float, lon: float, tolerance: Optional[float] = None
    ) -> Optional[Point]:
        """First point (in insertion order) within ``tolerance`` degrees on both axes."""

        tol = self.config.match_tolerance if tolerance is None else tolerance
        hits = self._points_within(lat, lon, tol)
        return copy.deepcopy(hits[0]) if hits else None

    def _match_position(self, position: LatLon, preferred_id: Optional[ElementId]) -> Optional[Point]:
        # a still-valid explicit link wins over the first coordinate match
        if preferred_id is not None:
            preferred = self._points.get(preferred_id)
            if preferred is not None and self._within(preferred.coordinates, position):
                return preferred
        hits = self._points_within(position.lat, position.lon, self.config.match_tolerance)
        return hits[0] if hits else None

    # ------------------------------------------------------------------
    # Reference maintenance

    def _resolve_line_geometry(self, line: LineSegment, *, keep_endpoint: bool = False) -> None:
        if isinstance(line, AzimuthLine):
            if line.endpoint is None or not keep_endpoint:
                line.endpoint = destination_point(line.center.lat, line.center.lon, line.distance, line.azimuth)
        elif isinstance(line, IntersectionLine):
            if line.intersection_distance is None:
                line.intersection_distance = calculate_distance(
                    line.center.lat,
                    line.center.lon,
                    line.intersection_point.lat,
                    line.intersection_point.lon,
                )
            if line.endpoint is None or not keep_endpoint:
                target = line.distance if line.distance is not None else line.intersection_distance
                line.endpoint = endpoint_from_intersection(
                    line.center.lat,
                    line.center.lon,
                    line.intersection_point.lat,
                    line.intersection_point.lon,
                    target,
                    options=self.config.intersection,
                )
        elif isinstance(line, ParallelLine):
            line.center = LatLon(line.latitude, 0.0)

    def _link_line(self, line: LineSegment, previous_ids: Iterable[ElementId] = ()) -> None:
        start = self._match_position(line.center, line.start_point_id)
        end_position = line.end_position()
        end = self._match_position(end_position, line.end_point_id) if end_position is not None else None

        line.start_point_id = start.id if start is not None else None
        line.end_point_id = end.id if end is not None else None
        # a point holds one role per line
        line.points_on_line = [
            pid
            for pid in _dedupe(line.points_on_line or [])
            if pid not in (line.start_point_id, line.end_point_id)
        ]

        for pid in line.referenced_point_ids():
            point = self._points.get(pid)
            if point is not None:
                point.line_id = line.id

        current = set(line.referenced_point_ids())
        for pid in previous_ids:
            point = self._points.get(pid)
            if pid not in current and point is not None and point.line_id == line.id:
                point.line_id = None

    def _link_polygon(self, polygon: Polygon, previous_ids: Iterable[ElementId] = ()) -> None:
        for pid in polygon.point_ids:
            point = self._points[pid]
            if polygon.id not in point.polygon_ids:
                point.polygon_ids.append(polygon.id)
        for pid in previous_ids:
            point = self._points.get(pid)
            if pid not in polygon.point_ids and point is not None and polygon.id in point.polygon_ids:
                point.polygon_ids.remove(polygon.id)

    def _link_new_point(self, point: Point) -> None:
        # forward references from lines created before the point
        for line in self._lines.values():
            if point.id in line.points_on_line and point.line_id is None:
                point.line_id = line.id

        for line in self._lines.values():
            end_position = line.end_position()
            if line.start_point_id is None and self._within(point.coordinates, line.center):
                line.start_point_id = point.id
            elif line.end_point_id is None and end_position is not None and self._within(point.coordinates, end_position):
                line.end_point_id = point.id
            else:
                continue
            if point.id in line.points_on_line:
                line.points_on_line.remove(point.id)
            logger.info("Point '%s' attached to line '%s'", point.id, line.id)
            if point.line_id is None:
                point.line_id = line.id

    def _delete_linked_notes(
        self, element_type: ElementType, element_id: ElementId, report: DeletionReport
    ) -> None:
        for note in [n for n in self._notes.values() if n.is_linked_to(element_type, element_id)]:
            del self._notes[note.id]
            report.deleted_notes.append(note.id)

    # ------------------------------------------------------------------
    # Points

    def add_point(self, point: Point) -> Point:
        self._ensure_new_id(self._points, point.id, "point")
        point = copy.deepcopy(point)
        point.coordinates = _as_lat_lon(point.coordinates)
        if point.line_id is not None:
            self._require(ElementType.LINE_SEGMENT, point.line_id)
        point.polygon_ids = []
        if point.created_at is None:
            point.created_at = _now_ms()

        self._points[point.id] = point
        if point.line_id is not None:
            line = self._lines[point.line_id]
            if not line.references(point.id):
                line.points_on_line.append(point.id)
        self._link_new_point(point)

        logger.info("Added point '%s' at (%.7f, %.7f)", point.id, point.coordinates.lat, point.coordinates.lon)
        return copy.deepcopy(point)

    def update_point(self, point_id: ElementId, patch: Mapping[str, Any]) -> Point:
        point = self._require(ElementType.POINT, point_id)
        unknown = set(patch) - _POINT_PATCH_FIELDS
        if unknown:
            raise ValidationError(f"point fields cannot be patched: {', '.join(sorted(unknown))}")

        old_position = point.coordinates
        if "line_id" in patch and patch["line_id"] != point.line_id:
            new_line_id = patch["line_id"]
            if new_line_id is not None:
                self._require(ElementType.LINE_SEGMENT, new_line_id)
            old_line = self._lines.get(point.line_id) if point.line_id is not None else None
            if old_line is not None and point_id in old_line.points_on_line:
                old_line.points_on_line.remove(point_id)
            point.line_id = new_line_id
            if new_line_id is not None and not self._lines[new_line_id].references(point_id):
                self._lines[new_line_id].points_on_line.append(point_id)

        for key, value in patch.items():
            if key == "line_id":
                continue
            setattr(point, key, _as_lat_lon(value) if key == "coordinates" else value)

        if point.coordinates != old_position:
            for line in self._lines.values():
                end_position = line.end_position()
                touches = line.references(point_id) or any(
                    self._within(position, candidate)
                    for position in (old_position, point.coordinates)
                    for candidate in (line.center, end_position)
                    if candidate is not None
                )
                if touches:
                    self._link_line(line, previous_ids=line.referenced_point_ids())
            logger.info("Moved point '%s' to (%.7f, %.7f)", point_id, point.coordinates.lat, point.coordinates.lon)
        return copy.deepcopy(point)

    def delete_point(self, point_id: ElementId) -> Optional[DeletionReport]:
        """Delete a point and cascade through lines, polygons and notes.

        Returns ``None`` when the point does not exist (deleting twice is a no-op).
        Polygons left with fewer than three vertices are deleted; survivors are
        listed in ``updated_polygons`` so the caller can redraw them.
        """

        if point_id not in self._points:
            logger.debug("delete_point: '%s' not present", point_id)
            return None
        report = DeletionReport(ElementType.POINT, point_id)

        for line in self._lines.values():
            if not line.references(point_id):
                continue
            if line.start_point_id == point_id:
                line.start_point_id = None
            if line.end_point_id == point_id:
                line.end_point_id = None
            line.points_on_line = [pid for pid in line.points_on_line if pid != point_id]
            report.updated_lines.append(line.id)

        for polygon in [p for p in self._polygons.values() if point_id in p.point_ids]:
            polygon.point_ids = [pid for pid in polygon.point_ids if pid != point_id]
            if len(polygon.point_ids) < MIN_POLYGON_VERTICES:
                logger.info("Polygon '%s' dropped below %d vertices; deleting", polygon.id, MIN_POLYGON_VERTICES)
                report.merge(self.delete_polygon(polygon.id))
            else:
                report.updated_polygons.append(polygon.id)

        self._delete_linked_notes(ElementType.POINT, point_id, report)
        del self._points[point_id]
        logger.info(
            "Deleted point '%s' (lines updated=%d, polygons updated=%d, polygons deleted=%d)",
            point_id,
            len(report.updated_lines),
            len(report.updated_polygons),
            len(report.deleted_polygons),
        )
        return report

    # ------------------------------------------------------------------
    # Line segments

    def _patched_line(self, line: LineSegment, patch: Mapping[str, Any]) -> LineSegment:
        try:
            mode = LineMode(patch.get("mode", line.mode))
        except ValueError as exc:
            raise ValidationError(f"unknown line mode {patch.get('mode')!r}") from exc
        cls = LINE_CLASSES[mode]
        allowed = {f.name for f in dataclasses.fields(cls)}
        unknown = set(patch) - allowed - {"mode"}
        if unknown:
            raise ValidationError(
                f"{mode.value} line fields cannot be patched: {', '.join(sorted(unknown))}"
            )
        if patch.get("id", line.id) != line.id:
            raise ValidationError("line ids cannot be changed")
        if "endpoint" in patch and mode in (LineMode.AZIMUTH, LineMode.INTERSECTION):
            raise ValidationError(f"{mode.value} line endpoints are derived and cannot be patched")

        values = {f.name: getattr(line, f.name) for f in dataclasses.fields(line) if f.name in allowed}
        if mode != line.mode and mode in (LineMode.AZIMUTH, LineMode.INTERSECTION):
            values.pop("endpoint", None)
        if mode == LineMode.INTERSECTION and {"center", "intersection_point"} & set(patch):
            values["intersection_distance"] = None
        values.update({key: value for key, value in patch.items() if key != "mode"})
        for key in _LAT_LON_FIELDS:
            if key in values:
                values[key] = _as_lat_lon(values[key])
        try:
            return cls(**values)
        except TypeError as exc:
            raise ValidationError(f"line '{line.id}' cannot become {mode.value}: {exc}") from exc

    def add_line_segment(self, line: LineSegment) -> LineSegment:
        """Store a line, resolve its derived endpoint and link points at its ends."""

        self._ensure_new_id(self._lines, line.id, "line segment")
        line = self._patched_line(line, {})
        if line.created_at is None:
            line.created_at = _now_ms()
        self._resolve_line_geometry(line)

        self._lines[line.id] = line
        self._link_line(line)
        logger.info(
            "Added %s line '%s' (start=%s, end=%s)",
            line.mode.value,
            line.id,
            line.start_point_id,
            line.end_point_id,
        )
        return copy.deepcopy(line)

    def update_line_segment(self, line_id: ElementId, patch: Mapping[str, Any]) -> LineSegment:
        old = self._require(ElementType.LINE_SEGMENT, line_id)
        line = self._patched_line(old, patch)
        self._resolve_line_geometry(line)

        self._lines[line_id] = line
        self._link_line(line, previous_ids=old.referenced_point_ids())
        logger.info("Updated line '%s' (mode=%s)", line_id, line.mode.value)
        return copy.deepcopy(line)

    def delete_line_segment(self, line_id: ElementId) -> Optional[DeletionReport]:
        if line_id not in self._lines:
            logger.debug("delete_line_segment: '%s' not present", line_id)
            return None
        report = DeletionReport(ElementType.LINE_SEGMENT, line_id)
        for point in self._points.values():
            if point.line_id == line_id:
                point.line_id = None
                report.unlinked_points.append(point.id)
        self._delete_linked_notes(ElementType.LINE_SEGMENT, line_id, report)
        del self._lines[line_id]
        logger.info("Deleted line '%s' (%d point(s) unlinked)", line_id, len(report.unlinked_points))
        return report

    def get_lines_referencing_point(self, point_id: ElementId) -> List[LineSegment]:
        return [copy.deepcopy(line) for line in self._lines.values() if line.references(point_id)]

    # ------------------------------------------------------------------
    # Polygons

    def add_polygon(self, polygon: Polygon) -> Optional[Polygon]:
        """Store a polygon; returns ``None`` when fewer than three vertices resolve."""

        self._ensure_new_id(self._polygons, polygon.id, "polygon")
        requested = _dedupe(polygon.point_ids)
        resolved = [pid for pid in requested if pid in self._points]
        if len(resolved) < MIN_POLYGON_VERTICES:
            logger.warning(
                "Rejected polygon '%s': %d of %d vertex id(s) resolve, need %d",
                polygon.id,
                len(resolved),
                len(requested),
                MIN_POLYGON_VERTICES,
            )
            return None

        polygon = copy.deepcopy(polygon)
        polygon.point_ids = resolved
        if polygon.created_at is None:
            polygon.created_at = _now_ms()
        self._polygons[polygon.id] = polygon
        self._link_polygon(polygon)
        logger.info("Added polygon '%s' with %d vertices", polygon.id, len(resolved))
        return copy.deepcopy(polygon)

    def update_polygon(self, polygon_id: ElementId, patch: Mapping[str, Any]) -> Polygon:
        polygon = self._require(ElementType.POLYGON, polygon_id)
        unknown = set(patch) - _POLYGON_PATCH_FIELDS
        if unknown:
            raise ValidationError(f"polygon fields cannot be patched: {', '.join(sorted(unknown))}")

        previous = list(polygon.point_ids)
        if "point_ids" in patch:
            new_ids = _dedupe(patch["point_ids"])
            for pid in new_ids:
                self._require(ElementType.POINT, pid)
            ensure_polygon_vertices(new_ids, f"polygon '{polygon_id}'")
            polygon.point_ids = new_ids
        for key in ("name", "color"):
            if key in patch:
                setattr(polygon, key, patch[key])

        self._link_polygon(polygon, previous_ids=previous)
        logger.info("Updated polygon '%s' (%d vertices)", polygon_id, len(polygon.point_ids))
        return copy.deepcopy(polygon)

    def delete_polygon(self, polygon_id: ElementId) -> Optional[DeletionReport]:
        polygon = self._polygons.get(polygon_id)
        if polygon is None:
            logger.debug("delete_polygon: '%s' not present", polygon_id)
            return None
        report = DeletionReport(ElementType.POLYGON, polygon_id)
        for pid in polygon.point_ids:
            point = self._points.get(pid)
            if point is not None and polygon_id in point.polygon_ids:
                point.polygon_ids.remove(polygon_id)
                report.unlinked_points.append(pid)
        self._delete_linked_notes(ElementType.POLYGON, polygon_id, report)
        del self._polygons[polygon_id]
        logger.info("Deleted polygon '%s'", polygon_id)
        return report

    def get_polygons_referencing_point(self, point_id: ElementId) -> List[Polygon]:
        return [copy.deepcopy(p) for p in self._polygons.values() if point_id in p.point_ids]

    # ------------------------------------------------------------------
    # Notes

    def _check_note_link(self, note: Note) -> None:
        if (note.linked_element_type is None) != (note.linked_element_id is None):
            raise ValidationError(f"note '{note.id}' needs both a linked element type and id, or neither")
        if note.linked_element_type is not None:
            try:
                note.linked_element_type = ElementType(note.linked_element_type)
            except ValueError as exc:
                raise ValidationError(f"note '{note.id}' links to unknown element type") from exc
            self._require(note.linked_element_type, note.linked_element_id)

    def add_note(self, note: Note) -> Note:
        self._ensure_new_id(self._notes, note.id, "note")
        note = copy.deepcopy(note)
        self._check_note_link(note)
        now = _now_ms()
        note.created_at = note.created_at or now
        note.updated_at = note.updated_at or now
        self._notes[note.id] = note
        logger.info(
            "Added note '%s' linked to %s",
            note.id,
            f"{note.linked_element_type.value} '{note.linked_element_id}'" if note.linked_element_type else "nothing",
        )
        return copy.deepcopy(note)

    def update_note(self, note_id: ElementId, patch: Mapping[str, Any]) -> Note:
        if note_id not in self._notes:
            raise UnknownElementError("note", note_id)
        unknown = set(patch) - _NOTE_PATCH_FIELDS
        if unknown:
            raise ValidationError(f"note fields cannot be patched: {', '.join(sorted(unknown))}")
        note = dataclasses.replace(self._notes[note_id], **patch)
        self._check_note_link(note)
        note.updated_at = _now_ms()
        self._notes[note_id] = note
        logger.info("Updated note '%s'", note_id)
        return copy.deepcopy(note)

    def delete_note(self, note_id: ElementId) -> bool:
        if self._notes.pop(note_id, None) is None:
            return False
        logger.info("Deleted note '%s'", note_id)
        return True

    # ------------------------------------------------------------------
    # Circles (stored as snapshot records, no geometry of their own)

    def add_circle(self, circle: Mapping[str, Any]) -> Record:
        validate_circle_record(circle)
        self._ensure_new_id(self._circles, circle["id"], "circle")
        record = copy.deepcopy(dict(circle))
        record.setdefault("createdAt", _now_ms())
        self._circles[record["id"]] = record
        logger.info("Added circle '%s'", record["id"])
        return copy.deepcopy(record)

    def update_circle(self, circle_id: ElementId, patch: Mapping[str, Any]) -> Record:
        record = {**self._require(ElementType.CIRCLE, circle_id), **copy.deepcopy(dict(patch))}
        if record["id"] != circle_id:
            raise ValidationError("circle ids cannot be changed")
        validate_circle_record(record)
        self._circles[circle_id] = record
        return copy.deepcopy(record)

    def delete_circle(self, circle_id: ElementId) -> Optional[DeletionReport]:
        if circle_id not in self._circles:
            return None
        report = DeletionReport(ElementType.CIRCLE, circle_id)
        self._delete_linked_notes(ElementType.CIRCLE, circle_id, report)
        del self._circles[circle_id]
        logger.info("Deleted circle '%s'", circle_id)
        return report

    # ------------------------------------------------------------------
    # Bulk import / export

    def clear(self) -> None:
        self._circles.clear()
        self._points.clear()
        self._lines.clear()
        self._polygons.clear()
        self._notes.clear()

    def export_layers(self) -> Dict[str, List[Record]]:
        """JSON-shaped snapshot with every reference field populated."""

        return {
            "circles": copy.deepcopy(list(self._circles.values())),
            "lineSegments": [entity_to_dict(line) for line in self._lines.values()],
            "points": [entity_to_dict(point) for point in self._points.values()],
            "polygons": [entity_to_dict(polygon) for polygon in self._polygons.values()],
            "notes": [entity_to_dict(note) for note in self._notes.values()],
        }

    def load_layers(self, snapshot: Mapping[str, Any]) -> LoadReport:
        """Replace the graph contents with ``snapshot`` and repair every reference.

        Invalid records are skipped, legacy ``savedCoordinates`` and
        coordinate-only polygons are migrated, then :meth:`_repair_references`
        rebuilds the bidirectional fields from coordinates. Stored ids are only
        kept where they still resolve, so the repair is lossy but never leaves
        a dangling id. The records are repaired in a staging graph, so the
        current contents survive if loading fails.
        """

        report = LoadReport()
        legacy_tol = self.config.legacy_match_tolerance

        def parse(records: Any, decode, kind: str) -> List[Any]:
            parsed: List[Any] = []
            seen: set[str] = set()
            for record in records or []:
                try:
                    entity = decode(record)
                except (ValidationError, KeyError, TypeError, ValueError) as exc:
                    report.skipped.append(f"{kind}: {exc}")
                    logger.warning("Skipping invalid %s record: %s", kind, exc)
                    continue
                entity_id = entity["id"] if isinstance(entity, dict) else entity.id
                if entity_id in seen:
                    report.skipped.append(f"{kind}: duplicate id '{entity_id}'")
                    logger.warning("Skipping duplicate %s '%s'", kind, entity_id)
                    continue
                seen.add(entity_id)
                parsed.append(entity)
            return parsed

        def decode_circle(record: Any) -> Record:
            validate_circle_record(record)
            return copy.deepcopy(dict(record))

        circles = parse(snapshot.get("circles"), decode_circle, "circle")
        points: List[Point] = parse(snapshot.get("points"), point_from_dict, "point")

        saved = snapshot.get("savedCoordinates")
        if isinstance(saved, list):
            report.migrated_points.extend(migrate_saved_coordinates(saved, points, legacy_tol))

        known_before = {p.id for p in points}
        polygon_records = [
            migrate_polygon_coordinates(record, points, legacy_tol) for record in snapshot.get("polygons") or []
        ]
        report.migrated_points.extend(p.id for p in points if p.id not in known_before)
        polygons: List[Polygon] = parse(polygon_records, polygon_from_dict, "polygon")
        lines: List[LineSegment] = parse(snapshot.get("lineSegments"), line_from_dict, "line segment")
        notes: List[Note] = parse(snapshot.get("notes"), note_from_dict, "note")

        # undated records get stamps one second apart; notes are not part of the base count
        timestamp = _now_ms() - (len(circles) + len(lines) + len(points) + len(polygons)) * 1000
        for circle in circles:
            if not circle.get("createdAt"):
                circle["createdAt"] = timestamp
                timestamp += 1000
        for entity in (*lines, *points, *polygons, *notes):
            if not entity.created_at:
                entity.created_at = timestamp
                timestamp += 1000

        staged = ElementGraph(self.config)
        staged._circles = {c["id"]: c for c in circles}
        staged._points = {p.id: p for p in points}
        staged._lines = {l.id: l for l in lines}
        staged._polygons = {p.id: p for p in polygons}
        staged._notes = {n.id: n for n in notes}
        staged._repair_references(report)

        self._circles = staged._circles
        self._points = staged._points
        self._lines = staged._lines
        self._polygons = staged._polygons
        self._notes = staged._notes

        report.loaded = {
            "circles": len(self._circles),
            "lineSegments": len(self._lines),
            "points": len(self._points),
            "polygons": len(self._polygons),
            "notes": len(self._notes),
        }
        logger.info(
            "Loaded snapshot: %s (skipped=%d, migrated points=%d, repaired lines=%d)",
            report.loaded,
            len(report.skipped),
            len(report.migrated_points),
            len(report.repaired_lines),
        )
        return report

    def _repair_references(self, report: LoadReport) -> None:
        stored_line_ids = {pid: p.line_id for pid, p in self._points.items()}
        for point in self._points.values():
            point.line_id = None
            point.polygon_ids = []

        for line in self._lines.values():
            stored = (line.start_point_id, line.end_point_id, list(line.points_on_line))
            self._resolve_line_geometry(line, keep_endpoint=True)
            kept = []
            for pid in _dedupe(line.points_on_line):
                if pid in self._points:
                    kept.append(pid)
                else:
                    report.dropped_references.append(f"line '{line.id}' pointsOnLine '{pid}'")
            line.points_on_line = kept
            self._link_line(line)
            if (line.start_point_id, line.end_point_id, line.points_on_line) != stored:
                report.repaired_lines.append(line.id)

        for pid, stored_line in stored_line_ids.items():
            line = self._lines.get(stored_line) if stored_line is not None else None
            if line is not None and line.references(pid):
                self._points[pid].line_id = stored_line

        for polygon in list(self._polygons.values()):
            resolved = [pid for pid in _dedupe(polygon.point_ids) if pid in self._points]
            if len(resolved) < MIN_POLYGON_VERTICES:
                report.skipped.append(f"polygon: '{polygon.id}' has {len(resolved)} resolvable vertices")
                logger.warning("Dropping polygon '%s': only %d vertices resolve", polygon.id, len(resolved))
                del self._polygons[polygon.id]
                continue
            if len(resolved) != len(polygon.point_ids):
                report.dropped_references.append(f"polygon '{polygon.id}' pointIds")
            polygon.point_ids = resolved
            self._link_polygon(polygon)

        for note in self._notes.values():
            if note.linked_element_type is None and note.linked_element_id is None:
                continue
            table = self._table(note.linked_element_type) if note.linked_element_type is not None else {}
            if note.linked_element_id not in table:
                logger.warning("Note '%s' links to a missing element; unlinking", note.id)
                note.linked_element_type = None
                note.linked_element_id = None
                report.unlinked_notes.append(note.id)


apply_debug_logging(globals(), logger=logger, skip={"_points_within", "_within", "_table"})


__all__ = ["ElementGraph", "LoadReport"]
