"""
Geometry Codec

Converts single DXF entities into ezdxf ``Path`` objects in the model
frame used by the scene: DXF coordinates with the y axis flipped (y-down),
so counter-clockwise DXF sweeps become negative sweeps here.

Supported entities: LINE, CIRCLE, ARC, LWPOLYLINE, POLYLINE (2D and 3D,
not meshes) and SPLINE up to degree 3. Everything else yields None.
"""

import bisect
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ezdxf.entities import DXFGraphic
from ezdxf.math import Vec2
from ezdxf.path import Path

logger = logging.getLogger(__name__)

# Maximum deviation of the cubic approximation of an arc, in model units
DEFAULT_ACCURACY = 1e-3

# Points closer than this are treated as coincident
EPSILON = 1e-9

# Vertex flag of spline frame control points in a POLYLINE
VTX_SPLINE_FRAME_CONTROL_POINT = 16


def point_from_dxf_point(point) -> Vec2:
    """Map a DXF point (y-up) into the model frame (y-down)."""
    return Vec2(point[0], -point[1])


def has_plus_z_extrusion(entity: DXFGraphic) -> bool:
    """Only entities lying in the WCS xy-plane facing +Z are converted."""
    extrusion = entity.dxf.get("extrusion", None)
    if extrusion is None:
        return True
    return (
        abs(extrusion[0]) < EPSILON
        and abs(extrusion[1]) < EPSILON
        and extrusion[2] > 0
    )


# =============================================================================
# Arcs
# =============================================================================

def _arc_segment_count(radius: float, sweep: float, accuracy: float) -> int:
    """Cubic segments needed so the arc approximation stays within accuracy."""
    n = max(1, math.ceil(abs(sweep) / (math.pi / 2)))
    while n < 64:
        quarter = abs(sweep) / n / 4.0
        # Upper bound of the radial error of the kappa approximation
        error = radius * 4.0 / 27.0 * math.sin(quarter) ** 6 / math.cos(quarter) ** 2
        if error <= accuracy:
            break
        n += 1
    return n


def add_arc(path: Path, center: Vec2, radius: float, start_angle: float,
            sweep: float, accuracy: float = DEFAULT_ACCURACY):
    """
    Append a circular arc as cubic Bezier segments.

    The path's current end point is expected to be the arc's start point.

    Args:
        path: Path to extend
        center: Arc center in the model frame
        radius: Arc radius
        start_angle: Start angle in radians
        sweep: Signed sweep in radians (positive turns +x towards +y)
        accuracy: Maximum allowed deviation
    """
    n = _arc_segment_count(radius, sweep, accuracy)
    step = sweep / n
    kappa = 4.0 / 3.0 * math.tan(step / 4.0)
    angle = start_angle
    for _ in range(n):
        next_angle = angle + step
        p0 = center + Vec2.from_angle(angle, radius)
        p3 = center + Vec2.from_angle(next_angle, radius)
        d0 = Vec2(-math.sin(angle), math.cos(angle)) * (radius * kappa)
        d3 = Vec2(-math.sin(next_angle), math.cos(next_angle)) * (radius * kappa)
        path.curve4_to(p3, p0 + d0, p3 - d3)
        angle = next_angle


def arc_path(center: Vec2, radius: float, start_angle: float, sweep: float,
             accuracy: float = DEFAULT_ACCURACY) -> Path:
    path = Path(center + Vec2.from_angle(start_angle, radius))
    add_arc(path, center, radius, start_angle, sweep, accuracy)
    return path


def add_bulge_segment(path: Path, start: Vec2, end: Vec2, bulge: float,
                      accuracy: float = DEFAULT_ACCURACY):
    """
    Append the segment from ``start`` to ``end`` encoded by ``bulge``.

    The bulge is taken in the frame of the points: a positive bulge sweeps
    from +x towards +y. A zero bulge or coincident points give a straight
    segment.
    """
    chord = end - start
    length = chord.magnitude
    if abs(bulge) < EPSILON or length < EPSILON:
        path.line_to(end)
        return

    # Included angle is 4 * atan(bulge), the sagitta is |bulge| * chord / 2
    sweep = 4.0 * math.atan(bulge)
    radius = length * (1.0 + bulge * bulge) / (4.0 * abs(bulge))
    midpoint = start.lerp(end, 0.5)
    # Signed distance from the chord midpoint to the center, negative past a half circle
    offset = radius - abs(bulge) * length / 2.0
    left = Vec2(-chord.y, chord.x).normalize()
    if bulge < 0:
        left = -left
    center = midpoint + left * offset
    add_arc(path, center, radius, (start - center).angle, sweep, accuracy)


# =============================================================================
# B-splines
# =============================================================================

def knot_span(degree: int, n_points: int, knots: Sequence[float], u: float) -> int:
    """Index ``k`` of the knot span with ``knots[k] <= u < knots[k + 1]``, clamped to the valid range."""
    k = bisect.bisect_right(knots, u) - 1
    return min(max(k, degree), n_points - 1)


def eval_spline(degree: int, points: Sequence[Vec2], knots: Sequence[float],
                u: float, span: Optional[int] = None) -> Vec2:
    """
    Evaluate a B-spline at parameter ``u`` with de Boor's algorithm.

    ``u`` must lie inside the valid knot span
    ``knots[degree] .. knots[len(knots) - degree - 1]``. Passing ``span``
    evaluates the polynomial piece of that span, which gives the left limit
    at a span's end knot.
    """
    k = knot_span(degree, len(points), knots, u) if span is None else span
    d = [points[j + k - degree] for j in range(degree + 1)]
    for r in range(1, degree + 1):
        for j in range(degree, r - 1, -1):
            i = j + k - degree
            denom = knots[i + degree + 1 - r] - knots[i]
            alpha = 0.0 if denom == 0 else (u - knots[i]) / denom
            d[j] = d[j - 1] * (1.0 - alpha) + d[j] * alpha
    return d[degree]


def derivative_spline(degree: int, points: Sequence[Vec2],
                      knots: Sequence[float]) -> Tuple[int, List[Vec2], List[float]]:
    """Control points and knots of the derivative of a B-spline."""
    derived = []
    for i in range(len(points) - 1):
        denom = knots[i + degree + 1] - knots[i + 1]
        factor = 0.0 if denom == 0 else degree / denom
        derived.append((points[i + 1] - points[i]) * factor)
    return degree - 1, derived, list(knots[1:-1])


def line_intersection(p0: Vec2, d0: Vec2, p1: Vec2, d1: Vec2) -> Optional[Vec2]:
    """Intersection of two lines given as point and direction, None if parallel."""
    cross = d0.x * d1.y - d0.y * d1.x
    if abs(cross) < EPSILON:
        return None
    t = ((p1.x - p0.x) * d1.y - (p1.y - p0.y) * d1.x) / cross
    return p0 + d0 * t


def spline_path(degree: int, points: Sequence[Vec2], knots: Sequence[float],
                closed: bool = False) -> Optional[Path]:
    """
    Convert a B-spline of degree 1 to 3 into lines, quadratics or cubics.

    Each span between unique interior knots becomes one segment. Degree 2
    spans are rebuilt from end tangents intersection, degree 3 spans from
    Hermite data.

    Returns:
        Path, or None for an unsupported degree or malformed knots
    """
    if not 1 <= degree <= 3:
        return None
    if len(points) < degree + 1 or len(knots) != len(points) + degree + 1:
        return None
    knots = list(knots)
    if any(b < a for a, b in zip(knots, knots[1:])):
        return None

    valid = knots[degree:len(knots) - degree]
    breaks = sorted(set(valid))
    if len(breaks) < 2:
        return None

    if degree > 1:
        d_degree, d_points, d_knots = derivative_spline(degree, points, knots)
    start = eval_spline(degree, points, knots, breaks[0])
    path = Path(start)

    for u0, u1 in zip(breaks, breaks[1:]):
        k = knot_span(degree, len(points), knots, u0)
        end = eval_spline(degree, points, knots, u1, span=k)
        if degree == 1:
            path.line_to(end)
        elif degree == 2:
            # Derivative knots drop the first knot, shifting span indices by one
            t0 = eval_spline(d_degree, d_points, d_knots, u0, span=k - 1)
            t1 = eval_spline(d_degree, d_points, d_knots, u1, span=k - 1)
            ctrl = line_intersection(start, t0, end, t1)
            if ctrl is None:
                path.line_to(end)
            else:
                path.curve3_to(end, ctrl)
        else:
            scale = (u1 - u0) / 3.0
            t0 = eval_spline(d_degree, d_points, d_knots, u0, span=k - 1) * scale
            t1 = eval_spline(d_degree, d_points, d_knots, u1, span=k - 1) * scale
            path.curve4_to(end, start + t0, end - t1)
        start = end

    if closed:
        path.close()
    return path


# =============================================================================
# Entity converters
# =============================================================================

def _line(entity, accuracy: float) -> Optional[Path]:
    path = Path(point_from_dxf_point(entity.dxf.start))
    path.line_to(point_from_dxf_point(entity.dxf.end))
    return path


def _circle(entity, accuracy: float) -> Optional[Path]:
    path = arc_path(point_from_dxf_point(entity.dxf.center), entity.dxf.radius,
                    0.0, -math.tau, accuracy)
    path.close()
    return path


def _arc(entity, accuracy: float) -> Optional[Path]:
    start = math.radians(entity.dxf.start_angle)
    end = math.radians(entity.dxf.end_angle)
    sweep = (end - start) % math.tau
    if sweep == 0.0:
        sweep = math.tau
    # Angles and sweep are mirrored by the y flip
    return arc_path(point_from_dxf_point(entity.dxf.center), entity.dxf.radius,
                    -start, -sweep, accuracy)


def _bulge_polyline(vertices: List[Tuple[Vec2, float]], closed: bool,
                    accuracy: float) -> Optional[Path]:
    if not vertices:
        return None
    first = vertices[0][0]
    path = Path(first)
    for (start, bulge), (end, _) in zip(vertices, vertices[1:]):
        add_bulge_segment(path, start, end, -bulge, accuracy)
    if closed and len(vertices) > 1:
        last, bulge = vertices[-1]
        add_bulge_segment(path, last, first, -bulge, accuracy)
    return path


def _lwpolyline(entity, accuracy: float) -> Optional[Path]:
    vertices = [
        (point_from_dxf_point((x, y)), b) for x, y, b in entity.get_points("xyb")
    ]
    return _bulge_polyline(vertices, entity.closed, accuracy)


def _polyline(entity, accuracy: float) -> Optional[Path]:
    if entity.is_polygon_mesh or entity.is_poly_face_mesh:
        return None
    vertices = [
        (point_from_dxf_point(v.dxf.location), v.dxf.get("bulge", 0.0))
        for v in entity.vertices
        if not v.dxf.get("flags", 0) & VTX_SPLINE_FRAME_CONTROL_POINT
    ]
    return _bulge_polyline(vertices, entity.is_closed, accuracy)


def _spline(entity, accuracy: float) -> Optional[Path]:
    points = [point_from_dxf_point(p) for p in entity.control_points]
    return spline_path(entity.dxf.degree, points, list(entity.knots), entity.closed)


_CONVERTERS: Dict[str, Callable[[DXFGraphic, float], Optional[Path]]] = {
    "LINE": _line,
    "CIRCLE": _circle,
    "ARC": _arc,
    "LWPOLYLINE": _lwpolyline,
    "POLYLINE": _polyline,
    "SPLINE": _spline,
}

SUPPORTED_TYPES = frozenset(_CONVERTERS)


def path_from_entity(entity: DXFGraphic,
                     accuracy: float = DEFAULT_ACCURACY) -> Optional[Path]:
    """
    Convert one DXF entity to a path in the model frame.

    Args:
        entity: DXF entity
        accuracy: Maximum deviation of curve approximations

    Returns:
        Path, or None if the entity is unsupported or malformed
    """
    dxftype = entity.dxftype()
    converter = _CONVERTERS.get(dxftype)
    if converter is None:
        logger.debug("unsupported entity %s #%s", dxftype, entity.dxf.handle)
        return None
    if not has_plus_z_extrusion(entity):
        logger.debug("skipping %s #%s: extrusion is not +Z", dxftype, entity.dxf.handle)
        return None
    path = converter(entity, accuracy)
    if path is None:
        logger.debug("skipping malformed %s #%s", dxftype, entity.dxf.handle)
    return path


def join_paths(paths: Sequence[Path]) -> Path:
    """Combine paths into one multi-path without connecting lines."""
    joined = Path()
    for path in paths:
        if len(path) == 0:
            continue
        joined.move_to(path.start)
        joined.append_path(path)
    return joined
