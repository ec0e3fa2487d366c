import math

import numpy as np
import pytest

from geosketch import IntersectionSolveOptions, LatLon
from geosketch.geodesy import (
    MAX_MERCATOR_LAT,
    calculate_bearing,
    calculate_distance,
    calculate_inverse_bearing,
    destination_point,
    endpoint_from_intersection,
    generate_circle,
    generate_line_points,
    generate_line_points_linear,
    mercator_project,
    mercator_unproject,
    point_along_line,
)

PARIS = (48.8566, 2.3522)


def _angle_diff(a, b):
    return (a - b + 180.0) % 360.0 - 180.0


def test_destination_round_trip_random():
    rng = np.random.default_rng(7)
    for _ in range(200):
        lat = float(rng.uniform(-60.0, 60.0))
        lon = float(rng.uniform(-170.0, 170.0))
        distance = float(rng.uniform(0.1, 500.0))
        bearing = float(rng.uniform(0.0, 360.0))

        end = destination_point(lat, lon, distance, bearing)

        assert _angle_diff(calculate_bearing(lat, lon, end.lat, end.lon), bearing) == pytest.approx(0.0, abs=1e-6)
        assert calculate_distance(lat, lon, end.lat, end.lon) == pytest.approx(distance, rel=1e-9, abs=1e-9)


def test_destination_zero_distance_returns_input():
    end = destination_point(*PARIS, 0.0, 123.0)
    assert end.lat == pytest.approx(PARIS[0], abs=1e-12)
    assert end.lon == pytest.approx(PARIS[1], abs=1e-12)


@pytest.mark.parametrize(
    "target, expected",
    [
        ((1.0, 0.0), 0.0),
        ((0.0, 1.0), 90.0),
        ((-1.0, 0.0), 180.0),
        ((0.0, -1.0), 270.0),
    ],
)
def test_bearing_cardinal_directions(target, expected):
    assert calculate_bearing(0.0, 0.0, *target) == pytest.approx(expected, abs=1e-9)


def test_bearing_is_in_half_open_range():
    bearing = calculate_bearing(10.0, 10.0, 11.0, 10.0 - 1e-15)
    assert 0.0 <= bearing < 360.0


def test_inverse_bearing_swaps_arguments():
    back = calculate_inverse_bearing(*PARIS, 51.5074, -0.1278)
    assert back == pytest.approx(calculate_bearing(51.5074, -0.1278, *PARIS))


def test_distance_paris_london():
    assert calculate_distance(*PARIS, 51.5074, -0.1278) == pytest.approx(343.5, abs=1.0)


def test_circle_closure():
    ring = generate_circle(*PARIS, 5.0, 36)
    assert len(ring) == 37
    assert ring[0] == ring[-1]
    for point in ring:
        assert calculate_distance(*PARIS, point.lat, point.lon) == pytest.approx(5.0, rel=1e-9)


def test_circle_with_zero_points_is_empty():
    assert generate_circle(*PARIS, 5.0, 0) == []


def test_circle_default_resolution():
    assert len(generate_circle(*PARIS, 1.0)) == 361


def test_linear_interpolation_count_and_ends():
    pts = generate_line_points_linear(10.0, 20.0, 11.0, 22.0, 10)
    assert len(pts) == 11
    assert pts[0].lat == pytest.approx(10.0, abs=1e-9)
    assert pts[0].lon == pytest.approx(20.0, abs=1e-9)
    assert pts[-1].lat == pytest.approx(11.0, abs=1e-9)
    assert pts[-1].lon == pytest.approx(22.0, abs=1e-9)


def test_linear_interpolation_is_straight_in_mercator():
    pts = generate_line_points_linear(10.0, 20.0, 40.0, 60.0, 4)
    projected = np.array([mercator_project(p.lat, p.lon) for p in pts])
    steps = np.diff(projected, axis=0)
    assert np.allclose(steps, steps[0], rtol=1e-9, atol=1e-6)


def test_great_circle_points_are_evenly_spaced():
    pts = generate_line_points(*PARIS, 40.7128, -74.0060, 4)
    assert len(pts) == 5
    assert pts[0].lat == pytest.approx(PARIS[0], abs=1e-9)
    assert pts[-1].lon == pytest.approx(-74.0060, abs=1e-9)
    legs = [calculate_distance(a.lat, a.lon, b.lat, b.lon) for a, b in zip(pts, pts[1:])]
    assert legs == pytest.approx([legs[0]] * 4, rel=1e-9)


def test_great_circle_points_with_no_steps():
    assert generate_line_points(*PARIS, 0.0, 0.0, 0) == [LatLon(*PARIS)]


def test_mercator_round_trip_and_clamp():
    x, y = mercator_project(*PARIS)
    back = mercator_unproject(x, y)
    assert back.lat == pytest.approx(PARIS[0], abs=1e-9)
    assert back.lon == pytest.approx(PARIS[1], abs=1e-9)
    assert mercator_project(89.9, 0.0) == mercator_project(MAX_MERCATOR_LAT, 0.0)


def test_point_along_line_distance():
    pos = point_along_line(*PARIS, 51.5074, -0.1278, 25.0)
    assert calculate_distance(*PARIS, pos.lat, pos.lon) == pytest.approx(25.0, rel=1e-9)


def test_intersection_exact_hit_returns_intersection():
    inter = (48.9, 2.5)
    distance = calculate_distance(*PARIS, *inter)
    end = endpoint_from_intersection(*PARIS, *inter, distance)
    assert end.lat == pytest.approx(inter[0], abs=1e-5)
    assert end.lon == pytest.approx(inter[1], abs=1e-5)


def test_intersection_shorter_distance_falls_back_to_intersection(caplog):
    inter = (48.9, 2.5)
    with caplog.at_level("WARNING", logger="geosketch.geodesy"):
        end = endpoint_from_intersection(*PARIS, *inter, 1.0)
    assert (end.lat, end.lon) == inter
    assert any("shorter" in record.getMessage() for record in caplog.records)


def test_intersection_solves_requested_distance():
    inter = (48.9, 2.5)
    end = endpoint_from_intersection(*PARIS, *inter, 25.0)
    assert calculate_distance(*PARIS, end.lat, end.lon) == pytest.approx(25.0, abs=1e-4)


def test_intersection_monotonic_along_ray():
    inter = (48.9, 2.5)
    base = calculate_distance(*PARIS, *inter)
    x0, y0 = mercator_project(*PARIS)
    xi, yi = mercator_project(*inter)
    unit = np.array([xi - x0, yi - y0])
    unit /= np.linalg.norm(unit)

    offsets = []
    for extra in (0.5, 2.0, 10.0, 50.0, 200.0):
        end = endpoint_from_intersection(*PARIS, *inter, base + extra)
        ex, ey = mercator_project(end.lat, end.lon)
        rel = np.array([ex - x0, ey - y0])
        along = float(np.dot(rel, unit))
        across = float(rel[0] * unit[1] - rel[1] * unit[0])
        assert abs(across) < 1e-3 * along
        offsets.append(along)
    assert all(b > a for a, b in zip(offsets, offsets[1:]))


def test_intersection_degenerate_ray_heads_east():
    end = endpoint_from_intersection(*PARIS, *PARIS, 10.0)
    assert end.lat == pytest.approx(PARIS[0], abs=1e-9)
    assert end.lon > PARIS[1]
    assert calculate_distance(*PARIS, end.lat, end.lon) == pytest.approx(10.0, abs=1e-4)


def test_intersection_unbracketable_returns_furthest_tried_point():
    options = IntersectionSolveOptions(max_bracket_doublings=0, initial_step_m=10.0)
    inter = (48.9, 2.5)
    end = endpoint_from_intersection(*PARIS, *inter, 5000.0, options=options)
    reached = calculate_distance(*PARIS, end.lat, end.lon)
    assert reached < 5000.0
    assert reached > calculate_distance(*PARIS, *inter)


def test_bisection_respects_iteration_cap():
    options = IntersectionSolveOptions(max_iterations=1)
    inter = (48.9, 2.5)
    end = endpoint_from_intersection(*PARIS, *inter, 30.0, options=options)
    assert math.isfinite(end.lat) and math.isfinite(end.lon)
