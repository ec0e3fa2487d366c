from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .graph import ElementGraph
from .model import MIN_POLYGON_VERTICES, ElementType, LatLon, LineSegment, Point


@dataclass
class ConsistencyWarning:
    kind: str
    element_type: str
    element_id: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - trivial string formatting
        return self.message


def _within(a: LatLon, b: LatLon, tolerance: float) -> bool:
    return abs(a.lat - b.lat) < tolerance and abs(a.lon - b.lon) < tolerance


def _check_endpoint(
    line: LineSegment,
    slot: str,
    point_id: Optional[str],
    position: Optional[LatLon],
    points: Dict[str, Point],
    tolerance: float,
) -> List[ConsistencyWarning]:
    if point_id is None:
        return []
    point = points.get(point_id)
    if point is None:
        return [
            ConsistencyWarning(
                'dangling-line-point',
                ElementType.LINE_SEGMENT.value,
                line.id,
                f"line '{line.id}' {slot} references missing point '{point_id}'",
            )
        ]
    if position is None or not _within(point.coordinates, position, tolerance):
        return [
            ConsistencyWarning(
                'line-point-mismatch',
                ElementType.LINE_SEGMENT.value,
                line.id,
                f"line '{line.id}' {slot} point '{point_id}' is not at {position!r}",
            )
        ]
    return []


def check_consistency(graph: ElementGraph, tolerance: Optional[float] = None) -> List[ConsistencyWarning]:
    """Report every broken reference in ``graph``; an empty list means all links hold."""

    tol = graph.config.match_tolerance if tolerance is None else tolerance
    points = {p.id: p for p in graph.points}
    lines = {line.id: line for line in graph.line_segments}
    polygons = {p.id: p for p in graph.polygons}
    circles = {c['id'] for c in graph.circles}
    warnings: List[ConsistencyWarning] = []

    for line in lines.values():
        warnings.extend(_check_endpoint(line, 'start', line.start_point_id, line.center, points, tol))
        warnings.extend(_check_endpoint(line, 'end', line.end_point_id, line.end_position(), points, tol))
        for pid in line.points_on_line:
            if pid in (line.start_point_id, line.end_point_id):
                warnings.append(
                    ConsistencyWarning(
                        'end-point-on-line',
                        ElementType.LINE_SEGMENT.value,
                        line.id,
                        f"line '{line.id}' lists its own start/end point '{pid}' on the line",
                    )
                )
            elif pid not in points:
                warnings.append(
                    ConsistencyWarning(
                        'unresolved-point-on-line',
                        ElementType.LINE_SEGMENT.value,
                        line.id,
                        f"line '{line.id}' lists unknown point '{pid}' on the line",
                    )
                )

    members: Dict[str, Set[str]] = {pid: set() for pid in points}
    for polygon in polygons.values():
        distinct = set(polygon.point_ids)
        if len(distinct) < MIN_POLYGON_VERTICES:
            warnings.append(
                ConsistencyWarning(
                    'polygon-too-small',
                    ElementType.POLYGON.value,
                    polygon.id,
                    f"polygon '{polygon.id}' has {len(distinct)} distinct vertices",
                )
            )
        for pid in polygon.point_ids:
            if pid not in points:
                warnings.append(
                    ConsistencyWarning(
                        'dangling-polygon-vertex',
                        ElementType.POLYGON.value,
                        polygon.id,
                        f"polygon '{polygon.id}' references missing point '{pid}'",
                    )
                )
            else:
                members[pid].add(polygon.id)

    for point in points.values():
        if set(point.polygon_ids) != members[point.id] or len(point.polygon_ids) != len(set(point.polygon_ids)):
            warnings.append(
                ConsistencyWarning(
                    'polygon-backref',
                    ElementType.POINT.value,
                    point.id,
                    f"point '{point.id}' polygonIds {sorted(point.polygon_ids)} "
                    f"!= {sorted(members[point.id])}",
                )
            )
        if point.line_id is not None:
            line = lines.get(point.line_id)
            if line is None or not line.references(point.id):
                warnings.append(
                    ConsistencyWarning(
                        'line-backref',
                        ElementType.POINT.value,
                        point.id,
                        f"point '{point.id}' lineId '{point.line_id}' does not reference it",
                    )
                )

    tables = {
        ElementType.CIRCLE: circles,
        ElementType.LINE_SEGMENT: lines,
        ElementType.POINT: points,
        ElementType.POLYGON: polygons,
    }
    for note in graph.notes:
        if note.linked_element_type is None:
            continue
        if note.linked_element_id not in tables[note.linked_element_type]:
            warnings.append(
                ConsistencyWarning(
                    'dangling-note',
                    'note',
                    note.id,
                    f"note '{note.id}' links to missing {note.linked_element_type.value} "
                    f"'{note.linked_element_id}'",
                )
            )

    return warnings


__all__ = ['ConsistencyWarning', 'check_consistency']
