"""Conversion between graph entities and the JSON-shaped snapshot records.

Snapshot records use the camelCase keys of the persisted project format
(``lineSegments``, ``startPointId``, ``pointsOnLine``, ...). Parallel lines keep
their historical ``longitude`` key, which holds the parallel's latitude.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, MutableSequence, Optional, Sequence, Union

from .geodesy import calculate_bearing, calculate_distance
from .model import (
    AzimuthLine,
    CoordinateLine,
    ElementType,
    IntersectionLine,
    LatLon,
    LineMode,
    LineSegment,
    Note,
    ParallelLine,
    Point,
    Polygon,
)
from .validate import (
    validate_line_record,
    validate_note_record,
    validate_point_record,
    validate_polygon_record,
)

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Entity = Union[Point, LineSegment, Polygon, Note]

SNAPSHOT_KEYS = ("circles", "lineSegments", "points", "polygons", "notes")


def _camel(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _lat_lon(value: Optional[Mapping[str, Any]]) -> Optional[LatLon]:
    if value is None:
        return None
    return LatLon(value["lat"], value["lon"])


def _encode(value: Any) -> Any:
    if isinstance(value, LatLon):
        return {"lat": value.lat, "lon": value.lon}
    if isinstance(value, ElementType):
        return value.value
    if isinstance(value, list):
        return list(value)
    return value


def entity_to_dict(entity: Entity) -> Record:
    """Serialize an entity, omitting unset optional fields."""

    record: Record = {}
    if isinstance(entity, LineSegment):
        record["mode"] = entity.mode.value
    for f in dataclasses.fields(entity):
        value = getattr(entity, f.name)
        if value is None:
            continue
        key = "longitude" if isinstance(entity, ParallelLine) and f.name == "latitude" else _camel(f.name)
        record[key] = _encode(value)
    return record


def point_from_dict(record: Mapping[str, Any]) -> Point:
    validate_point_record(record)
    return Point(
        id=record["id"],
        name=record["name"],
        coordinates=_lat_lon(record["coordinates"]),
        elevation=record.get("elevation"),
        color=record.get("color"),
        line_id=record.get("lineId"),
        polygon_ids=list(record.get("polygonIds") or []),
        created_at=record.get("createdAt"),
    )


def line_from_dict(record: Mapping[str, Any]) -> LineSegment:
    """Build the line variant named by ``record['mode']``.

    Legacy azimuth lines saved without ``distance``/``azimuth`` get them
    measured from their stored endpoint; legacy intersection lines without an
    ``intersectionPoint`` treat their endpoint as the intersection.
    """

    validate_line_record(record)
    mode = LineMode(record["mode"])
    common: Record = dict(
        id=record["id"],
        name=record["name"],
        center=_lat_lon(record["center"]),
        color=record.get("color"),
        start_point_id=record.get("startPointId"),
        end_point_id=record.get("endPointId"),
        points_on_line=list(record.get("pointsOnLine") or []),
        created_at=record.get("createdAt"),
    )
    endpoint = _lat_lon(record.get("endpoint"))
    center = common["center"]

    if mode == LineMode.PARALLEL:
        latitude = record.get("latitude", record.get("longitude"))
        return ParallelLine(latitude=float(latitude), **common)

    if mode == LineMode.COORDINATE:
        return CoordinateLine(endpoint=endpoint, **common)

    if mode == LineMode.AZIMUTH:
        distance = record.get("distance")
        azimuth = record.get("azimuth")
        if distance is None or azimuth is None:
            logger.info("Line '%s': measuring missing azimuth parameters from endpoint", record["id"])
            distance = calculate_distance(center.lat, center.lon, endpoint.lat, endpoint.lon)
            azimuth = calculate_bearing(center.lat, center.lon, endpoint.lat, endpoint.lon)
        return AzimuthLine(distance=float(distance), azimuth=float(azimuth), endpoint=endpoint, **common)

    intersection_point = _lat_lon(record.get("intersectionPoint")) or endpoint
    return IntersectionLine(
        intersection_point=intersection_point,
        distance=record.get("distance"),
        intersection_distance=record.get("intersectionDistance"),
        endpoint=endpoint,
        **common,
    )


def polygon_from_dict(record: Mapping[str, Any]) -> Polygon:
    validate_polygon_record(record)
    return Polygon(
        id=record["id"],
        name=record["name"],
        point_ids=list(record["pointIds"]),
        color=record.get("color"),
        created_at=record.get("createdAt"),
    )


def note_from_dict(record: Mapping[str, Any]) -> Note:
    validate_note_record(record)
    linked_type = record.get("linkedElementType")
    return Note(
        id=record["id"],
        title=record["title"],
        content=record["content"],
        linked_element_type=ElementType(linked_type) if linked_type is not None else None,
        linked_element_id=record.get("linkedElementId"),
        created_at=record.get("createdAt"),
        updated_at=record.get("updatedAt"),
    )


def _find_within(points: Sequence[Point], lat: float, lon: float, tolerance: float) -> Optional[Point]:
    for point in points:
        if abs(point.coordinates.lat - lat) < tolerance and abs(point.coordinates.lon - lon) < tolerance:
            return point
    return None


def _is_coordinate(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and isinstance(value.get("lat"), (int, float))
        and isinstance(value.get("lon"), (int, float))
        and value["lat"] == value["lat"]
        and value["lon"] == value["lon"]
    )


def migrate_saved_coordinates(
    saved: Sequence[Any], points: MutableSequence[Point], tolerance: float
) -> List[str]:
    """Turn legacy ``savedCoordinates`` entries into points; returns the new point ids."""

    created: List[str] = []
    known_ids = {point.id for point in points}
    for entry in saved:
        if not (isinstance(entry, Mapping) and isinstance(entry.get("id"), str) and isinstance(entry.get("name"), str)):
            continue
        if not _is_coordinate(entry):
            continue
        if entry["id"] in known_ids or _find_within(points, entry["lat"], entry["lon"], tolerance):
            continue
        points.append(
            Point(
                id=entry["id"],
                name=entry["name"],
                coordinates=LatLon(entry["lat"], entry["lon"]),
                created_at=entry.get("timestamp"),
            )
        )
        known_ids.add(entry["id"])
        created.append(entry["id"])
    if created:
        logger.info("Migrated %d saved coordinate(s) to points", len(created))
    return created


def migrate_polygon_coordinates(
    record: Mapping[str, Any], points: MutableSequence[Point], tolerance: float
) -> Record:
    """Convert a legacy polygon holding raw ``points`` coordinates to ``pointIds``.

    Vertices reuse an existing point at the same position, otherwise a new
    point is appended to ``points``.
    """

    if not (isinstance(record, Mapping) and "pointIds" not in record and isinstance(record.get("points"), list)):
        return dict(record) if isinstance(record, Mapping) else record

    migrated = {key: value for key, value in record.items() if key != "points"}
    point_ids: List[str] = []
    for coord in record["points"]:
        if not _is_coordinate(coord):
            continue
        point = _find_within(points, coord["lat"], coord["lon"], tolerance)
        if point is None:
            point = Point(
                id=f"{record.get('id')}-point-{len(point_ids)}",
                name=f"{record.get('name')} Point {len(point_ids) + 1}",
                coordinates=LatLon(coord["lat"], coord["lon"]),
            )
            points.append(point)
        point_ids.append(point.id)
    migrated["pointIds"] = point_ids
    logger.info("Migrated legacy polygon '%s' with %d vertices", record.get("id"), len(point_ids))
    return migrated


__all__ = [
    "SNAPSHOT_KEYS",
    "entity_to_dict",
    "point_from_dict",
    "line_from_dict",
    "polygon_from_dict",
    "note_from_dict",
    "migrate_saved_coordinates",
    "migrate_polygon_coordinates",
]
