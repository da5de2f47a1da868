"""
Affine transform helpers

All transforms are 3x3 numpy matrices acting on column vectors
(x, y, 1). Composition follows matrix multiplication, so
``outer @ inner`` applies ``inner`` first.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


def identity() -> np.ndarray:
    return np.eye(3)


def translate(dx: float, dy: float) -> np.ndarray:
    return np.array([
        [1.0, 0.0, dx],
        [0.0, 1.0, dy],
        [0.0, 0.0, 1.0],
    ])


def scale(sx: float, sy: float = None) -> np.ndarray:
    if sy is None:
        sy = sx
    return np.array([
        [sx, 0.0, 0.0],
        [0.0, sy, 0.0],
        [0.0, 0.0, 1.0],
    ])


def rotate(angle: float) -> np.ndarray:
    """Rotation by ``angle`` radians, turning +x towards +y."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([
        [c, -s, 0.0],
        [s, c, 0.0],
        [0.0, 0.0, 1.0],
    ])


def invert(matrix: np.ndarray) -> np.ndarray:
    return np.linalg.inv(matrix)


def transform_point(matrix: np.ndarray, x: float, y: float) -> Tuple[float, float]:
    """Apply an affine transform to a single point."""
    px = matrix[0, 0] * x + matrix[0, 1] * y + matrix[0, 2]
    py = matrix[1, 0] * x + matrix[1, 1] * y + matrix[1, 2]
    return float(px), float(py)


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply an affine transform to an (N, 2) array of points."""
    points = np.asarray(points, dtype=float)
    return points @ matrix[:2, :2].T + matrix[:2, 2]


def transform_rect(matrix: np.ndarray, x0: float, y0: float,
                   x1: float, y1: float) -> Tuple[float, float, float, float]:
    """
    Axis aligned bounding box of a transformed rectangle.

    Returns:
        (min_x, min_y, max_x, max_y)
    """
    corners = transform_points(matrix, [(x0, y0), (x1, y0), (x1, y1), (x0, y1)])
    mins = corners.min(axis=0)
    maxs = corners.max(axis=0)
    return float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1])


def uniform_scale(matrix: np.ndarray) -> float:
    """Scale factor of a similarity transform."""
    return math.sqrt(abs(np.linalg.det(matrix[:2, :2])))


@dataclass(frozen=True)
class DirectIsometry:
    """Rotation followed by a displacement (no scaling, no reflection)."""
    angle: float = 0.0
    displacement: Tuple[float, float] = (0.0, 0.0)

    def to_affine(self) -> np.ndarray:
        dx, dy = self.displacement
        return translate(dx, dy) @ rotate(self.angle)
