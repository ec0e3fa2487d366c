"""Spherical-earth geodesy and Web Mercator helpers.

Latitudes/longitudes are decimal degrees, distances kilometres, bearings
degrees clockwise from true north. Great-circle computations use a sphere of
radius 6371 km; the Web Mercator projection (EPSG:3857) uses 6 378 137 m, the
same as the slippy-map surfaces that draw straight segments in it.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from .config import IntersectionSolveOptions
from .logging_utils import apply_debug_logging
from .model import LatLon

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = 6_378_137.0
MAX_MERCATOR_LAT = 85.051_128_78

Vector3 = np.ndarray


def to_radians(degrees: float) -> float:
    return degrees * math.pi / 180.0


def to_degrees(radians: float) -> float:
    return radians * 180.0 / math.pi


def _destination_arrays(
    lat: float, lon: float, distance_km: float, bearings_deg: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    delta = distance_km / EARTH_RADIUS_KM
    theta = np.radians(bearings_deg)
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)

    phi2 = np.arcsin(
        math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * np.cos(theta)
    )
    lam2 = lam1 + np.arctan2(
        np.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * np.sin(phi2),
    )
    return np.degrees(phi2), np.degrees(lam2)


def destination_point(lat: float, lon: float, distance_km: float, bearing_deg: float) -> LatLon:
    """Great-circle forward problem: travel ``distance_km`` on ``bearing_deg`` from (lat, lon)."""

    lats, lons = _destination_arrays(lat, lon, distance_km, np.asarray([bearing_deg], dtype=float))
    return LatLon(float(lats[0]), float(lons[0]))


def calculate_bearing(from_lat: float, from_lon: float, to_lat: float, to_lon: float) -> float:
    """Initial great-circle bearing from the first point to the second, in ``[0, 360)``."""

    phi1 = to_radians(from_lat)
    phi2 = to_radians(to_lat)
    d_lam = to_radians(to_lon - from_lon)

    y = math.sin(d_lam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lam)
    bearing = (to_degrees(math.atan2(y, x)) + 360.0) % 360.0
    # (-tiny + 360) % 360 rounds to 360.0
    return 0.0 if bearing >= 360.0 else bearing


def calculate_inverse_bearing(from_lat: float, from_lon: float, to_lat: float, to_lon: float) -> float:
    """Bearing from the second point back to the first."""

    return calculate_bearing(to_lat, to_lon, from_lat, from_lon)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance in kilometres."""

    phi1 = to_radians(lat1)
    phi2 = to_radians(lat2)
    d_phi = to_radians(lat2 - lat1)
    d_lam = to_radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(max(1.0 - a, 0.0)))
    return EARTH_RADIUS_KM * c


def _project_arrays(lats: np.ndarray, lons: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    phi = np.radians(np.clip(lats, -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT))
    x = EARTH_RADIUS_M * np.radians(lons)
    y = EARTH_RADIUS_M * np.log(np.tan(math.pi / 4 + phi / 2))
    return x, y


def _unproject_arrays(xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    lats = np.degrees(2.0 * np.arctan(np.exp(ys / EARTH_RADIUS_M)) - math.pi / 2)
    lons = np.degrees(xs / EARTH_RADIUS_M)
    return lats, lons


def mercator_project(lat: float, lon: float) -> Tuple[float, float]:
    """Project to Web Mercator metres; latitude is clamped to the projection's limit."""

    x, y = _project_arrays(np.asarray(lat, dtype=float), np.asarray(lon, dtype=float))
    return float(x), float(y)


def mercator_unproject(x: float, y: float) -> LatLon:
    lat, lon = _unproject_arrays(np.asarray(x, dtype=float), np.asarray(y, dtype=float))
    return LatLon(float(lat), float(lon))


def lat_lon_to_vector(lat: float, lon: float) -> Vector3:
    phi = to_radians(lat)
    lam = to_radians(lon)
    return np.array([math.cos(phi) * math.cos(lam), math.cos(phi) * math.sin(lam), math.sin(phi)])


def vector_to_lat_lon(vec: Vector3) -> LatLon:
    x, y, z = (float(v) for v in vec)
    return LatLon(to_degrees(math.asin(max(-1.0, min(1.0, z)))), to_degrees(math.atan2(y, x)))


def generate_line_points(
    start_lat: float, start_lon: float, end_lat: float, end_lon: float, num_points: int
) -> List[LatLon]:
    """``num_points + 1`` points along the great circle between two positions (slerp)."""

    if num_points <= 0:
        return [LatLon(start_lat, start_lon)]

    start_vec = lat_lon_to_vector(start_lat, start_lon)
    end_vec = lat_lon_to_vector(end_lat, end_lon)
    omega = math.acos(max(-1.0, min(1.0, float(np.dot(start_vec, end_vec)))))
    ts = np.linspace(0.0, 1.0, num_points + 1)

    if omega < 1e-10:
        lats = start_lat + (end_lat - start_lat) * ts
        lons = start_lon + (end_lon - start_lon) * ts
        return [LatLon(float(a), float(b)) for a, b in zip(lats, lons)]

    sin_omega = math.sin(omega)
    w0 = np.sin((1.0 - ts) * omega) / sin_omega
    w1 = np.sin(ts * omega) / sin_omega
    vecs = np.outer(w0, start_vec) + np.outer(w1, end_vec)
    vecs /= np.linalg.norm(vecs, axis=1, keepdims=True)
    return [vector_to_lat_lon(vec) for vec in vecs]


def generate_line_points_linear(
    start_lat: float, start_lon: float, end_lat: float, end_lon: float, num_points: int
) -> List[LatLon]:
    """``num_points + 1`` points interpolated linearly in Web Mercator, both ends included.

    Matches how a map surface draws a straight two-point segment, not the true
    geodesic.
    """

    ts = np.linspace(0.0, 1.0, max(num_points, 0) + 1)
    xs, ys = _project_arrays(np.array([start_lat, end_lat]), np.array([start_lon, end_lon]))
    lats, lons = _unproject_arrays(xs[0] + (xs[1] - xs[0]) * ts, ys[0] + (ys[1] - ys[0]) * ts)
    return [LatLon(float(a), float(b)) for a, b in zip(lats, lons)]


def generate_circle(
    center_lat: float, center_lon: float, radius_km: float, num_points: int = 360
) -> List[LatLon]:
    """Closed ring of ``num_points`` bearings around the centre (first point repeated)."""

    if num_points <= 0:
        return []
    bearings = (360.0 / num_points) * np.arange(num_points)
    lats, lons = _destination_arrays(center_lat, center_lon, radius_km, bearings)
    ring = [LatLon(float(a), float(b)) for a, b in zip(lats, lons)]
    ring.append(ring[0])
    return ring


def point_along_line(
    start_lat: float, start_lon: float, end_lat: float, end_lon: float, distance_km: float
) -> LatLon:
    """Position ``distance_km`` from the start, heading toward the end."""

    bearing = calculate_bearing(start_lat, start_lon, end_lat, end_lon)
    return destination_point(start_lat, start_lon, distance_km, bearing)


def endpoint_from_intersection(
    start_lat: float,
    start_lon: float,
    intersect_lat: float,
    intersect_lon: float,
    distance_km: float,
    options: Optional[IntersectionSolveOptions] = None,
) -> LatLon:
    """Endpoint on the Mercator ray start→intersection at geodesic distance ``distance_km``.

    The ray is straight in Web Mercator (so the drawn segment visibly passes
    through the intersection point) while the returned endpoint sits at the
    requested great-circle distance from the start. Solved by bracketing the
    projected offset ``s`` beyond the intersection and bisecting
    ``f(s) = distance(start, ray(s)) - distance_km``.

    Fallbacks, none of which raise:

    * start and intersection project to the same point: the ray heads east;
    * ``distance_km`` shorter than the distance to the intersection: the
      intersection point itself is returned;
    * no bracket within ``options.max_offset_m``: the furthest tried point.
    """

    opts = options or IntersectionSolveOptions()

    x0, y0 = mercator_project(start_lat, start_lon)
    xi, yi = mercator_project(intersect_lat, intersect_lon)
    ray = np.array([xi - x0, yi - y0])
    s_intersection = float(np.hypot(ray[0], ray[1]))

    if s_intersection == 0.0:
        logger.warning(
            "Degenerate ray from (%.7f, %.7f): intersection coincides with start, heading east",
            start_lat,
            start_lon,
        )
        unit = np.array([1.0, 0.0])
    else:
        unit = ray / s_intersection

    def end_from_s(s_m: float) -> LatLon:
        return mercator_unproject(x0 + s_m * unit[0], y0 + s_m * unit[1])

    def f(s_m: float) -> float:
        end = end_from_s(s_m)
        return calculate_distance(start_lat, start_lon, end.lat, end.lon) - distance_km

    d_intersection = calculate_distance(start_lat, start_lon, intersect_lat, intersect_lon)
    if abs(d_intersection - distance_km) < opts.exact_hit_km:
        return LatLon(intersect_lat, intersect_lon)

    s_low = s_intersection
    f_low = f(s_low)
    if f_low > 0:
        logger.warning(
            "Requested distance %.6f km is shorter than the %.6f km to the intersection; "
            "returning the intersection point",
            distance_km,
            d_intersection,
        )
        return LatLon(intersect_lat, intersect_lon)

    s_high = s_low + opts.initial_step_m
    f_high = f(s_high)
    doublings = 0
    while f_high < 0 and s_high < opts.max_offset_m and doublings < opts.max_bracket_doublings:
        s_high *= 2.0
        f_high = f(s_high)
        doublings += 1

    if f_high < 0:
        logger.warning(
            "Could not bracket %.3f km along the ray after %d doublings; using offset %.1f m",
            distance_km,
            doublings,
            s_high,
        )
        return end_from_s(s_high)

    logger.debug("Bracketed root in [%.3f, %.3f] m after %d doublings", s_low, s_high, doublings)

    a, b = s_low, s_high
    for iteration in range(opts.max_iterations):
        mid = 0.5 * (a + b)
        f_mid = f(mid)
        if abs(f_mid) < opts.tolerance_km or abs(b - a) < opts.min_bracket_m:
            logger.debug("Bisection converged after %d iterations (residual %.3e km)", iteration + 1, f_mid)
            return end_from_s(mid)
        if f_mid > 0:
            b = mid
        else:
            a = mid

    logger.debug("Bisection hit the iteration cap; returning bracket midpoint")
    return end_from_s(0.5 * (a + b))


apply_debug_logging(globals(), logger=logger, skip={"to_radians", "to_degrees"})


__all__ = [
    "EARTH_RADIUS_KM",
    "EARTH_RADIUS_M",
    "MAX_MERCATOR_LAT",
    "to_radians",
    "to_degrees",
    "destination_point",
    "calculate_bearing",
    "calculate_inverse_bearing",
    "calculate_distance",
    "mercator_project",
    "mercator_unproject",
    "lat_lon_to_vector",
    "vector_to_lat_lon",
    "generate_line_points",
    "generate_line_points_linear",
    "generate_circle",
    "point_along_line",
    "endpoint_from_intersection",
]
