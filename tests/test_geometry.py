import math

import numpy as np
import pytest
from ezdxf.math import Vec2
from ezdxf.path import Path

from dxfscene.geometry import (
    add_bulge_segment,
    eval_spline,
    line_intersection,
    path_from_entity,
    spline_path,
)
from dxfscene.segments import (
    CubicSeg,
    LineSeg,
    QuadSeg,
    path_bbox,
    path_segments,
    segment_distance_sq,
    segment_points,
)


def min_distance(path, point):
    return min(segment_distance_sq(seg, point) for seg in path_segments(path)) ** 0.5


def sample_points(path, n=32):
    ts = np.linspace(0.0, 1.0, n)
    return np.vstack([segment_points(seg, ts) for seg in path_segments(path)])


# =============================================================================
# Lines, arcs, circles
# =============================================================================

def test_line_flips_y(msp):
    line = msp.add_line((1, 2), (3, 4))
    assert list(path_segments(path_from_entity(line))) == [LineSeg((1.0, -2.0), (3.0, -4.0))]


def test_decoding_is_deterministic(msp):
    entities = [
        msp.add_line((0, 0), (5, 5)),
        msp.add_arc((1, 1), 2, 30, 200),
        msp.add_circle((4, -2), 3),
        msp.add_lwpolyline([(0, 0, 0.3), (4, 0, -1.2), (4, 4, 0)], format="xyb", close=True),
    ]
    for entity in entities:
        first = list(path_segments(path_from_entity(entity)))
        second = list(path_segments(path_from_entity(entity)))
        assert first == second


def test_circle_bbox(msp):
    circle = msp.add_circle((5, 5), 2)
    bbox = path_bbox(path_from_entity(circle))
    assert bbox == pytest.approx((3.0, -7.0, 7.0, -3.0), abs=1e-2)


def test_arc_sweep_is_mirrored(msp):
    arc = msp.add_arc((0, 0), 1, 0, 90)
    path = path_from_entity(arc)
    assert tuple(path.start)[:2] == pytest.approx((1.0, 0.0), abs=1e-9)
    assert tuple(path.end)[:2] == pytest.approx((0.0, -1.0), abs=1e-9)
    # The short way round, through 45 degrees
    c = math.sqrt(0.5)
    assert min_distance(path, (c, -c)) < 1e-3
    assert min_distance(path, (-c, c)) > 1.0


def test_arc_stays_on_circle(msp):
    arc = msp.add_arc((3, 4), 5, 10, 300)
    points = sample_points(path_from_entity(arc))
    radii = np.hypot(points[:, 0] - 3, points[:, 1] + 4)
    assert np.allclose(radii, 5.0, atol=1e-3)


# =============================================================================
# Bulges
# =============================================================================

def test_zero_bulge_is_straight(msp):
    pline = msp.add_lwpolyline([(0, 0, 0), (10, 0, 0)], format="xyb")
    assert list(path_segments(path_from_entity(pline))) == [LineSeg((0.0, 0.0), (10.0, 0.0))]


def test_half_circle_bulge(msp):
    pline = msp.add_lwpolyline([(0, 0, 1), (2, 0, 0)], format="xyb")
    path = path_from_entity(pline)
    assert tuple(path.start)[:2] == pytest.approx((0.0, 0.0), abs=1e-9)
    assert tuple(path.end)[:2] == pytest.approx((2.0, 0.0), abs=1e-9)
    # Counter-clockwise in DXF passes below the chord, which is +y in the model frame
    assert min_distance(path, (1.0, 1.0)) < 1e-3
    assert min_distance(path, (1.0, -1.0)) > 0.9


def test_bulge_arc_within_tolerance():
    path = Path(Vec2(0, 0))
    add_bulge_segment(path, Vec2(0, 0), Vec2(4, 0), -0.5)
    points = sample_points(path)
    radii = np.hypot(points[:, 0] - 2.0, points[:, 1] + 1.5)
    assert np.allclose(radii, 2.5, atol=1e-3)
    assert tuple(path.end)[:2] == pytest.approx((4.0, 0.0), abs=1e-9)
    assert min_distance(path, (2.0, 1.0)) < 1e-3


def test_coincident_bulge_points_degrade_to_line(msp):
    pline = msp.add_lwpolyline([(0, 0, 0.5), (0, 0, 0), (1, 0, 0)], format="xyb")
    segments = list(path_segments(path_from_entity(pline)))
    assert all(isinstance(seg, LineSeg) for seg in segments)
    assert segments[-1].p1 == pytest.approx((1.0, 0.0))


def test_closed_polyline2d(msp):
    pline = msp.add_polyline2d([(0, 0), (1, 0), (1, 1)], close=True)
    segments = list(path_segments(path_from_entity(pline)))
    assert len(segments) == 3
    assert segments[-1].p1 == pytest.approx((0.0, 0.0))


# =============================================================================
# Splines
# =============================================================================

def test_degree_1_spline_is_polyline(msp):
    spline = msp.add_spline(degree=1)
    spline.control_points = [(0, 0, 0), (1, 1, 0), (2, 0, 0), (3, 1, 0)]
    spline.knots = [0, 0, 1, 2, 3, 3]
    segments = list(path_segments(path_from_entity(spline)))
    assert all(isinstance(seg, LineSeg) for seg in segments)
    assert [seg.p0 for seg in segments] + [segments[-1].p1] == [
        pytest.approx((0.0, 0.0)),
        pytest.approx((1.0, -1.0)),
        pytest.approx((2.0, 0.0)),
        pytest.approx((3.0, -1.0)),
    ]


def test_clamped_cubic_spline_is_its_bezier(msp):
    spline = msp.add_spline(degree=3)
    spline.control_points = [(0, 0, 0), (1, 2, 0), (3, 2, 0), (4, 0, 0)]
    spline.knots = [0, 0, 0, 0, 1, 1, 1, 1]
    segments = list(path_segments(path_from_entity(spline)))
    assert len(segments) == 1
    seg = segments[0]
    assert isinstance(seg, CubicSeg)
    assert seg.p0 == pytest.approx((0.0, 0.0))
    assert seg.p1 == pytest.approx((1.0, -2.0))
    assert seg.p2 == pytest.approx((3.0, -2.0))
    assert seg.p3 == pytest.approx((4.0, 0.0))


def test_clamped_quadratic_spline_uses_tangent_intersection():
    points = [Vec2(0, 0), Vec2(2, 4), Vec2(4, 0)]
    path = spline_path(2, points, [0, 0, 0, 1, 1, 1])
    segments = list(path_segments(path))
    assert len(segments) == 1
    assert isinstance(segments[0], QuadSeg)
    assert segments[0].p1 == pytest.approx((2.0, 4.0))


def test_spline_endpoints_match_first_and_last_valid_knot():
    points = [Vec2(0, 0), Vec2(1, 3), Vec2(4, 4), Vec2(6, 1), Vec2(8, 0)]
    knots = [0, 0, 0, 0, 0.5, 1, 1, 1, 1]
    path = spline_path(3, points, knots)
    assert tuple(path.start)[:2] == pytest.approx((0.0, 0.0))
    assert tuple(path.end)[:2] == pytest.approx((8.0, 0.0))
    # One cubic per span between unique interior knots
    assert len(list(path_segments(path))) == 2


def test_cubic_spans_join_on_the_curve():
    points = [Vec2(0, 0), Vec2(1, 3), Vec2(4, 4), Vec2(6, 1), Vec2(8, 0)]
    knots = [0, 0, 0, 0, 0.5, 1, 1, 1, 1]
    path = spline_path(3, points, knots)
    first, second = list(path_segments(path))
    joint = eval_spline(3, points, knots, 0.5)
    assert first.p3 == pytest.approx((joint.x, joint.y))
    assert second.p0 == pytest.approx((joint.x, joint.y))
    # A simple interior knot keeps the tangent continuous
    d0 = np.subtract(first.p3, first.p2)
    d1 = np.subtract(second.p1, second.p0)
    assert d0 == pytest.approx(d1)


def test_spline_of_degree_above_3_is_skipped(msp):
    spline = msp.add_spline(degree=4)
    spline.control_points = [(i, i % 2, 0) for i in range(5)]
    spline.knots = [0, 0, 0, 0, 0, 1, 1, 1, 1, 1]
    assert path_from_entity(spline) is None


def test_spline_with_too_few_control_points_is_skipped(msp):
    spline = msp.add_spline(degree=3)
    spline.control_points = [(0, 0, 0), (1, 1, 0)]
    spline.knots = [0, 0, 0, 1, 1, 1]
    assert path_from_entity(spline) is None


def test_decreasing_knots_are_malformed():
    points = [Vec2(0, 0), Vec2(1, 1), Vec2(2, 0)]
    assert spline_path(1, points, [0, 0, 2, 1, 1]) is None


def test_line_intersection_parallel():
    assert line_intersection(Vec2(0, 0), Vec2(1, 0), Vec2(0, 1), Vec2(2, 0)) is None
    hit = line_intersection(Vec2(0, 0), Vec2(1, 1), Vec2(2, 0), Vec2(-1, 1))
    assert (hit.x, hit.y) == pytest.approx((1.0, 1.0))


# =============================================================================
# Unsupported input
# =============================================================================

def test_unsupported_entity_yields_none(msp):
    assert path_from_entity(msp.add_point((1, 1))) is None


def test_negative_extrusion_is_skipped(msp):
    circle = msp.add_circle((0, 0), 1, dxfattribs={"extrusion": (0, 0, -1)})
    assert path_from_entity(circle) is None
