"""Creation helpers used by drawing tools on top of :class:`ElementGraph`.

These are the only places that create points implicitly (endpoint markers,
points placed along a line, polygon vertices drawn on empty map).
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence, Tuple

from .geodesy import point_along_line
from .graph import ElementGraph
from .logging_utils import apply_debug_logging
from .model import (
    LINE_CLASSES,
    MIN_POLYGON_VERTICES,
    ElementId,
    ElementType,
    LatLon,
    LineMode,
    LineSegment,
    ParallelLine,
    Point,
    Polygon,
    UnknownElementError,
)

logger = logging.getLogger(__name__)


def new_element_id() -> ElementId:
    return str(uuid.uuid4())


def default_point_name(graph: ElementGraph) -> str:
    return f"Point {graph.point_count + 1}"


def default_line_name(graph: ElementGraph, mode: LineMode = LineMode.COORDINATE) -> str:
    if LineMode(mode) == LineMode.PARALLEL:
        parallels = sum(1 for line in graph.line_segments if line.mode == LineMode.PARALLEL)
        return f"Parallel {parallels + 1}"
    return f"Line Segment {graph.line_segment_count + 1}"


def default_polygon_name(graph: ElementGraph) -> str:
    return f"Polygon {graph.polygon_count + 1}"


def create_point(
    graph: ElementGraph,
    lat: float,
    lon: float,
    *,
    name: Optional[str] = None,
    elevation: Optional[float] = None,
    color: Optional[str] = None,
) -> Point:
    point = Point(
        id=new_element_id(),
        name=name or default_point_name(graph),
        coordinates=LatLon(lat, lon),
        elevation=elevation,
        color=color,
    )
    return graph.add_point(point)


def create_line(
    graph: ElementGraph,
    mode: LineMode,
    center: LatLon,
    *,
    name: Optional[str] = None,
    color: Optional[str] = None,
    with_endpoint_marker: bool = False,
    **fields,
) -> LineSegment:
    """Create a line of ``mode`` starting at ``center``.

    ``fields`` carries the mode-specific values (``endpoint``, ``distance`` and
    ``azimuth``, ``intersection_point``). With ``with_endpoint_marker`` a point is
    created at the resolved endpoint unless one already sits there, and the line
    is re-linked to it.
    """

    mode = LineMode(mode)
    if mode == LineMode.PARALLEL:
        raise ValueError("use create_parallel for parallel lines")
    line = LINE_CLASSES[mode](
        id=new_element_id(),
        name=name or default_line_name(graph, mode),
        center=center,
        color=color,
        **fields,
    )
    line = graph.add_line_segment(line)

    end = line.end_position()
    if with_endpoint_marker and end is not None and line.end_point_id is None:
        create_point(graph, end.lat, end.lon, name=f"{line.name} End", color=color)
        line = graph.get_line_segment(line.id)
        logger.info("Created endpoint marker '%s' for line '%s'", line.end_point_id, line.id)
    return line


def create_parallel(
    graph: ElementGraph, latitude: float, *, name: Optional[str] = None, color: Optional[str] = None
) -> LineSegment:
    line = ParallelLine(
        id=new_element_id(),
        name=name or default_line_name(graph, LineMode.PARALLEL),
        center=LatLon(latitude, 0.0),
        latitude=latitude,
        color=color,
    )
    return graph.add_line_segment(line)


def add_point_on_line(
    graph: ElementGraph,
    line_id: ElementId,
    distance_km: float,
    *,
    from_end: str = "start",
    name: Optional[str] = None,
) -> Tuple[Point, LineSegment]:
    """Place a new point ``distance_km`` along a line and attach it to ``points_on_line``."""

    line = graph.get_line_segment(line_id)
    if line is None:
        raise UnknownElementError(ElementType.LINE_SEGMENT, line_id)
    end = line.end_position()
    if end is None:
        raise ValueError(f"line '{line_id}' has no endpoint to measure along")
    if from_end == "start":
        origin, target = line.center, end
    elif from_end == "end":
        origin, target = end, line.center
    else:
        raise ValueError(f"from_end must be 'start' or 'end', not {from_end!r}")

    position = point_along_line(origin.lat, origin.lon, target.lat, target.lon, distance_km)
    point = graph.add_point(
        Point(
            id=new_element_id(),
            name=name or default_point_name(graph),
            coordinates=position,
            line_id=line_id,
        )
    )
    return point, graph.get_line_segment(line_id)


def create_polygon_from_coordinates(
    graph: ElementGraph,
    coordinates: Sequence[LatLon],
    *,
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> Optional[Polygon]:
    """Build a polygon from clicked positions, reusing points already at a position.

    Returns ``None`` (creating nothing) when fewer than three distinct vertices
    would result.
    """

    tol = graph.config.match_tolerance
    vertex_ids = []
    to_create = []
    for coord in coordinates:
        existing = graph.find_point_at_coordinates(coord.lat, coord.lon)
        if existing is not None:
            vertex_ids.append(existing.id)
            continue
        for pending_id, pending in to_create:
            if abs(pending.lat - coord.lat) < tol and abs(pending.lon - coord.lon) < tol:
                vertex_ids.append(pending_id)
                break
        else:
            pending_id = new_element_id()
            to_create.append((pending_id, coord))
            vertex_ids.append(pending_id)

    if len(dict.fromkeys(vertex_ids)) < MIN_POLYGON_VERTICES:
        logger.warning("Polygon needs at least %d distinct vertices, got %d", MIN_POLYGON_VERTICES, len(set(vertex_ids)))
        return None

    polygon_name = name or default_polygon_name(graph)
    for index, (pending_id, coord) in enumerate(to_create):
        graph.add_point(
            Point(id=pending_id, name=f"{polygon_name} Point {index + 1}", coordinates=coord, color=color)
        )
    return graph.add_polygon(Polygon(id=new_element_id(), name=polygon_name, point_ids=vertex_ids, color=color))


apply_debug_logging(globals(), logger=logger, skip={"new_element_id"})


__all__ = [
    "new_element_id",
    "default_point_name",
    "default_line_name",
    "default_polygon_name",
    "create_point",
    "create_line",
    "create_parallel",
    "add_point_on_line",
    "create_polygon_from_coordinates",
]
