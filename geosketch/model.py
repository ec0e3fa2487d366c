"""Core data structures for map elements and their relationships."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple, Type

MIN_POLYGON_VERTICES = 3

ElementId = str


@dataclass(frozen=True)
class LatLon:
    """Geographic position in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lat", float(self.lat))
        object.__setattr__(self, "lon", float(self.lon))

    def as_tuple(self) -> Tuple[float, float]:
        return self.lat, self.lon

    def __repr__(self) -> str:
        return f"LatLon({self.lat:.7f}, {self.lon:.7f})"


class ElementType(str, enum.Enum):
    CIRCLE = "circle"
    LINE_SEGMENT = "lineSegment"
    POINT = "point"
    POLYGON = "polygon"


class LineMode(str, enum.Enum):
    COORDINATE = "coordinate"
    AZIMUTH = "azimuth"
    INTERSECTION = "intersection"
    PARALLEL = "parallel"


class UnknownElementError(KeyError):
    """Raised when an operation names an element the graph does not hold."""

    def __init__(self, element_type: ElementType | str, element_id: ElementId):
        super().__init__(element_id)
        self.element_type = element_type
        self.element_id = element_id

    def __str__(self) -> str:
        kind = getattr(self.element_type, "value", self.element_type)
        return f"unknown {kind} '{self.element_id}'"


@dataclass(kw_only=True)
class Point:
    id: ElementId
    name: str
    coordinates: LatLon
    elevation: Optional[float] = None
    color: Optional[str] = None
    line_id: Optional[ElementId] = None
    polygon_ids: List[ElementId] = field(default_factory=list)
    created_at: Optional[int] = None


@dataclass(kw_only=True)
class LineSegment:
    """Common part of every line variant.

    ``start_point_id``/``end_point_id`` are maintained by the graph from the
    line's ``center`` and end position; ``points_on_line`` is the ordered list
    of explicitly attached interior points.
    """

    mode: ClassVar[LineMode]

    id: ElementId
    name: str
    center: LatLon
    color: Optional[str] = None
    start_point_id: Optional[ElementId] = None
    end_point_id: Optional[ElementId] = None
    points_on_line: List[ElementId] = field(default_factory=list)
    created_at: Optional[int] = None

    def end_position(self) -> Optional[LatLon]:
        return None

    def referenced_point_ids(self) -> List[ElementId]:
        ids: List[ElementId] = []
        for pid in (self.start_point_id, self.end_point_id, *self.points_on_line):
            if pid is not None and pid not in ids:
                ids.append(pid)
        return ids

    def references(self, point_id: ElementId) -> bool:
        return (
            self.start_point_id == point_id
            or self.end_point_id == point_id
            or point_id in self.points_on_line
        )


@dataclass(kw_only=True)
class CoordinateLine(LineSegment):
    mode: ClassVar[LineMode] = LineMode.COORDINATE

    endpoint: LatLon

    def end_position(self) -> Optional[LatLon]:
        return self.endpoint


@dataclass(kw_only=True)
class AzimuthLine(LineSegment):
    """Line defined by a geodesic distance (km) and bearing (deg) from ``center``."""

    mode: ClassVar[LineMode] = LineMode.AZIMUTH

    distance: float
    azimuth: float
    endpoint: Optional[LatLon] = None

    def end_position(self) -> Optional[LatLon]:
        return self.endpoint


@dataclass(kw_only=True)
class IntersectionLine(LineSegment):
    """Line through ``intersection_point`` whose total geodesic length is ``distance``."""

    mode: ClassVar[LineMode] = LineMode.INTERSECTION

    intersection_point: LatLon
    distance: Optional[float] = None
    intersection_distance: Optional[float] = None
    endpoint: Optional[LatLon] = None

    def end_position(self) -> Optional[LatLon]:
        return self.endpoint


@dataclass(kw_only=True)
class ParallelLine(LineSegment):
    """Constant-latitude line spanning every longitude."""

    mode: ClassVar[LineMode] = LineMode.PARALLEL

    latitude: float


LINE_CLASSES: Dict[LineMode, Type[LineSegment]] = {
    LineMode.COORDINATE: CoordinateLine,
    LineMode.AZIMUTH: AzimuthLine,
    LineMode.INTERSECTION: IntersectionLine,
    LineMode.PARALLEL: ParallelLine,
}


@dataclass(kw_only=True)
class Polygon:
    id: ElementId
    name: str
    point_ids: List[ElementId] = field(default_factory=list)
    color: Optional[str] = None
    created_at: Optional[int] = None


@dataclass(kw_only=True)
class Note:
    id: ElementId
    title: str
    content: str
    linked_element_type: Optional[ElementType] = None
    linked_element_id: Optional[ElementId] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def is_linked_to(self, element_type: ElementType, element_id: ElementId) -> bool:
        return self.linked_element_type == element_type and self.linked_element_id == element_id


@dataclass
class DeletionReport:
    """Side effects of a delete, for the caller to mirror on the map surface."""

    element_type: ElementType
    element_id: ElementId
    updated_lines: List[ElementId] = field(default_factory=list)
    updated_polygons: List[ElementId] = field(default_factory=list)
    deleted_polygons: List[ElementId] = field(default_factory=list)
    deleted_notes: List[ElementId] = field(default_factory=list)
    unlinked_points: List[ElementId] = field(default_factory=list)

    def merge(self, other: "DeletionReport") -> None:
        for name in (
            "updated_lines",
            "updated_polygons",
            "deleted_polygons",
            "deleted_notes",
            "unlinked_points",
        ):
            target = getattr(self, name)
            for value in getattr(other, name):
                if value not in target:
                    target.append(value)
        if other.element_type == ElementType.POLYGON and other.element_id not in self.deleted_polygons:
            self.deleted_polygons.append(other.element_id)


__all__ = [
    "MIN_POLYGON_VERTICES",
    "ElementId",
    "LatLon",
    "ElementType",
    "LineMode",
    "UnknownElementError",
    "Point",
    "LineSegment",
    "CoordinateLine",
    "AzimuthLine",
    "IntersectionLine",
    "ParallelLine",
    "LINE_CLASSES",
    "Polygon",
    "Note",
    "DeletionReport",
]
