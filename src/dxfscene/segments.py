"""
Path segments

Splits ezdxf paths into their primitive segments (line, quadratic and
cubic Bezier) and provides exact bounding boxes and nearest distances for
each kind. Per kind algorithms live in dispatch tables keyed by segment
type.
"""

import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union

import numpy as np
from ezdxf.path import Command, Path
from scipy.optimize import minimize_scalar

from .transform import transform_points

XY = Tuple[float, float]
BBox = Tuple[float, float, float, float]

# Number of samples used to bracket the closest parameter on a curve
CURVE_SAMPLES = 16


@dataclass(frozen=True)
class LineSeg:
    p0: XY
    p1: XY


@dataclass(frozen=True)
class QuadSeg:
    p0: XY
    p1: XY
    p2: XY


@dataclass(frozen=True)
class CubicSeg:
    p0: XY
    p1: XY
    p2: XY
    p3: XY


PathSeg = Union[LineSeg, QuadSeg, CubicSeg]


def _xy(v) -> XY:
    return float(v[0]), float(v[1])


def path_segments(path: Path) -> Iterator[PathSeg]:
    """Yield the drawable segments of a path, skipping pen moves."""
    current = _xy(path.start)
    for cmd in path.commands():
        end = _xy(cmd.end)
        if cmd.type == Command.LINE_TO:
            yield LineSeg(current, end)
        elif cmd.type == Command.CURVE3_TO:
            yield QuadSeg(current, _xy(cmd.ctrl), end)
        elif cmd.type == Command.CURVE4_TO:
            yield CubicSeg(current, _xy(cmd.ctrl1), _xy(cmd.ctrl2), end)
        current = end


def control_points(seg: PathSeg) -> List[XY]:
    if isinstance(seg, LineSeg):
        return [seg.p0, seg.p1]
    if isinstance(seg, QuadSeg):
        return [seg.p0, seg.p1, seg.p2]
    return [seg.p0, seg.p1, seg.p2, seg.p3]


def transform_segment(seg: PathSeg, matrix: np.ndarray) -> PathSeg:
    """Apply an affine transform; Bezier segments map through their control points."""
    points = transform_points(matrix, control_points(seg))
    return type(seg)(*(_xy(p) for p in points))


# =============================================================================
# Evaluation
# =============================================================================

def _line_eval(seg: LineSeg, t: np.ndarray) -> np.ndarray:
    p0, p1 = np.array(seg.p0), np.array(seg.p1)
    t = t[:, None]
    return (1 - t) * p0 + t * p1


def _quad_eval(seg: QuadSeg, t: np.ndarray) -> np.ndarray:
    p0, p1, p2 = np.array(seg.p0), np.array(seg.p1), np.array(seg.p2)
    t = t[:, None]
    mt = 1 - t
    return mt * mt * p0 + 2 * mt * t * p1 + t * t * p2


def _cubic_eval(seg: CubicSeg, t: np.ndarray) -> np.ndarray:
    p0, p1, p2, p3 = (np.array(p) for p in (seg.p0, seg.p1, seg.p2, seg.p3))
    t = t[:, None]
    mt = 1 - t
    return (mt ** 3) * p0 + 3 * mt * mt * t * p1 + 3 * mt * t * t * p2 + (t ** 3) * p3


_EVAL = {
    LineSeg: _line_eval,
    QuadSeg: _quad_eval,
    CubicSeg: _cubic_eval,
}


def segment_points(seg: PathSeg, t) -> np.ndarray:
    """Evaluate a segment at parameter values ``t`` (array of floats in [0, 1])."""
    return _EVAL[type(seg)](seg, np.atleast_1d(np.asarray(t, dtype=float)))


def segment_point(seg: PathSeg, t: float) -> XY:
    return _xy(segment_points(seg, t)[0])


# =============================================================================
# Bounding boxes
# =============================================================================

def _bbox_of(points) -> BBox:
    pts = np.asarray(points, dtype=float)
    mins = pts.min(axis=0)
    maxs = pts.max(axis=0)
    return float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1])


def _line_bbox(seg: LineSeg) -> BBox:
    return _bbox_of([seg.p0, seg.p1])


def _quad_extrema(a: float, b: float, c: float) -> List[float]:
    # Derivative of a quadratic Bezier is linear in t
    denom = a - 2 * b + c
    if abs(denom) < 1e-12:
        return []
    t = (a - b) / denom
    return [t] if 0.0 < t < 1.0 else []


def _quad_bbox(seg: QuadSeg) -> BBox:
    ts = [0.0, 1.0]
    for axis in (0, 1):
        ts.extend(_quad_extrema(seg.p0[axis], seg.p1[axis], seg.p2[axis]))
    return _bbox_of(_quad_eval(seg, np.array(ts)))


def _cubic_extrema(p0: float, p1: float, p2: float, p3: float) -> List[float]:
    a = 3 * (-p0 + 3 * p1 - 3 * p2 + p3)
    b = 6 * (p0 - 2 * p1 + p2)
    c = 3 * (p1 - p0)
    roots = []
    if abs(a) < 1e-12:
        if abs(b) > 1e-12:
            roots.append(-c / b)
    else:
        disc = b * b - 4 * a * c
        if disc >= 0:
            sq = math.sqrt(disc)
            roots.extend([(-b + sq) / (2 * a), (-b - sq) / (2 * a)])
    return [t for t in roots if 0.0 < t < 1.0]


def _cubic_bbox(seg: CubicSeg) -> BBox:
    ts = [0.0, 1.0]
    for axis in (0, 1):
        ts.extend(_cubic_extrema(seg.p0[axis], seg.p1[axis], seg.p2[axis], seg.p3[axis]))
    return _bbox_of(_cubic_eval(seg, np.array(ts)))


_BBOX = {
    LineSeg: _line_bbox,
    QuadSeg: _quad_bbox,
    CubicSeg: _cubic_bbox,
}


def segment_bbox(seg: PathSeg) -> BBox:
    """Exact axis aligned bounding box (min_x, min_y, max_x, max_y)."""
    return _BBOX[type(seg)](seg)


def union_bbox(a: Optional[BBox], b: BBox) -> BBox:
    if a is None:
        return b
    return min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3])


def path_bbox(path: Path) -> Optional[BBox]:
    """
    Bounding box of all segments of a path.

    Returns None for a path without any drawable segment.
    """
    bbox = None
    for seg in path_segments(path):
        bbox = union_bbox(bbox, segment_bbox(seg))
    return bbox


# =============================================================================
# Distance
# =============================================================================

def _line_distance_sq(seg: LineSeg, point: XY, tolerance: float) -> float:
    (x0, y0), (x1, y1) = seg.p0, seg.p1
    px, py = point
    dx, dy = x1 - x0, y1 - y0
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return (px - x0) ** 2 + (py - y0) ** 2
    t = ((px - x0) * dx + (py - y0) * dy) / length_sq
    t = min(1.0, max(0.0, t))
    cx, cy = x0 + t * dx, y0 + t * dy
    return (px - cx) ** 2 + (py - cy) ** 2


def _curve_distance_sq(seg: PathSeg, point: XY, tolerance: float) -> float:
    target = np.array(point, dtype=float)

    def dist_sq(t):
        d = segment_points(seg, t)[0] - target
        return float(d @ d)

    ts = np.linspace(0.0, 1.0, CURVE_SAMPLES + 1)
    d = segment_points(seg, ts) - target
    samples = np.einsum("ij,ij->i", d, d)
    best = int(np.argmin(samples))
    lo = ts[max(best - 1, 0)]
    hi = ts[min(best + 1, CURVE_SAMPLES)]
    result = minimize_scalar(
        dist_sq, bounds=(lo, hi), method="bounded", options={"xatol": tolerance}
    )
    return min(float(samples[best]), float(result.fun))


_DISTANCE = {
    LineSeg: _line_distance_sq,
    QuadSeg: _curve_distance_sq,
    CubicSeg: _curve_distance_sq,
}


def segment_distance_sq(seg: PathSeg, point: XY, tolerance: float = 1e-6) -> float:
    """
    Squared distance from ``point`` to the nearest point on a segment.

    Args:
        seg: Segment to measure against
        point: Query point in the segment's coordinate frame
        tolerance: Parameter tolerance for the curve refinement

    Returns:
        Squared euclidean distance
    """
    return _DISTANCE[type(seg)](seg, point, tolerance)
