from .config import GraphConfig, IntersectionSolveOptions, get_default_graph_config, set_default_graph_config
from .model import (
    LatLon,
    ElementType,
    LineMode,
    Point,
    LineSegment,
    CoordinateLine,
    AzimuthLine,
    IntersectionLine,
    ParallelLine,
    Polygon,
    Note,
    DeletionReport,
    UnknownElementError,
)
from .validate import ValidationError
from .geodesy import (
    EARTH_RADIUS_KM,
    destination_point,
    calculate_bearing,
    calculate_inverse_bearing,
    calculate_distance,
    generate_circle,
    generate_line_points,
    generate_line_points_linear,
    point_along_line,
    endpoint_from_intersection,
)
from .graph import ElementGraph, LoadReport
from .consistency import check_consistency, ConsistencyWarning
from .snapshot import entity_to_dict
from .builders import (
    create_point,
    create_line,
    create_parallel,
    add_point_on_line,
    create_polygon_from_coordinates,
)

__all__ = [
    'GraphConfig',
    'IntersectionSolveOptions',
    'get_default_graph_config',
    'set_default_graph_config',
    'LatLon',
    'ElementType',
    'LineMode',
    'Point',
    'LineSegment',
    'CoordinateLine',
    'AzimuthLine',
    'IntersectionLine',
    'ParallelLine',
    'Polygon',
    'Note',
    'DeletionReport',
    'UnknownElementError',
    'ValidationError',
    'EARTH_RADIUS_KM',
    'destination_point',
    'calculate_bearing',
    'calculate_inverse_bearing',
    'calculate_distance',
    'generate_circle',
    'generate_line_points',
    'generate_line_points_linear',
    'point_along_line',
    'endpoint_from_intersection',
    'ElementGraph',
    'LoadReport',
    'check_consistency',
    'ConsistencyWarning',
    'entity_to_dict',
    'create_point',
    'create_line',
    'create_parallel',
    'add_point_on_line',
    'create_polygon_from_coordinates',
]
