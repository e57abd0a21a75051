"""Angle and vector primitives shared by the beam engine.

All helpers work on plain ``(x, y)`` float tuples and degrees.  Angles follow
the workspace convention: 0° points along +x and angles grow towards +y, so
with a y-down canvas 90° points "down" the screen.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

Point = Tuple[float, float]
Vector = Tuple[float, float]

_EPS = 1e-12


def as_point(pt: Sequence[float]) -> Point:
    return (float(pt[0]), float(pt[1]))


def add(a: Sequence[float], b: Sequence[float]) -> Point:
    return (float(a[0]) + float(b[0]), float(a[1]) + float(b[1]))


def sub(a: Sequence[float], b: Sequence[float]) -> Vector:
    return (float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


def scale(vec: Sequence[float], factor: float) -> Vector:
    return (float(vec[0]) * factor, float(vec[1]) * factor)


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return float(a[0]) * float(b[0]) + float(a[1]) * float(b[1])


def cross(a: Sequence[float], b: Sequence[float]) -> float:
    return float(a[0]) * float(b[1]) - float(a[1]) * float(b[0])


def norm(vec: Sequence[float]) -> float:
    return math.hypot(float(vec[0]), float(vec[1]))


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return norm(sub(b, a))


def normalize_angle(angle: float) -> float:
    """Return ``angle`` wrapped into ``[0, 360)``."""

    wrapped = math.fmod(float(angle), 360.0)
    if wrapped < 0.0:
        wrapped += 360.0
    # fmod of a tiny negative value can round up to exactly 360
    if wrapped >= 360.0:
        wrapped = 0.0
    return wrapped


def normalize_angle_diff(angle: float) -> float:
    """Return the signed shortest rotation equivalent to ``angle`` in ``[-180, 180]``."""

    wrapped = math.fmod(float(angle), 360.0)
    if wrapped > 180.0:
        wrapped -= 360.0
    if wrapped < -180.0:
        wrapped += 360.0
    return wrapped


def angular_distance(a: float, b: float) -> float:
    """Return the unsigned circular distance between two angles, in ``[0, 180]``."""

    diff = abs(normalize_angle(a) - normalize_angle(b))
    return min(diff, 360.0 - diff)


def deg_to_rad(degrees: float) -> float:
    return degrees * math.pi / 180.0


def rad_to_deg(radians: float) -> float:
    return radians * 180.0 / math.pi


def normalize_vector(vec: Sequence[float]) -> Vector:
    length = norm(vec)
    if length <= _EPS:
        return (0.0, 0.0)
    return (float(vec[0]) / length, float(vec[1]) / length)


def vector_to_angle(vec: Sequence[float]) -> float:
    return normalize_angle(rad_to_deg(math.atan2(float(vec[1]), float(vec[0]))))


def angle_to_vector(angle: float) -> Vector:
    rad = deg_to_rad(angle)
    return (math.cos(rad), math.sin(rad))


def angle_between_vectors(v1: Sequence[float], v2: Sequence[float]) -> float:
    """Return the unsigned angle between two vectors in degrees."""

    n1 = normalize_vector(v1)
    n2 = normalize_vector(v2)
    cos_theta = max(-1.0, min(1.0, dot(n1, n2)))
    return rad_to_deg(math.acos(cos_theta))


def perpendicular(vec: Sequence[float]) -> Vector:
    """Rotate ``vec`` by +90°."""

    return (-float(vec[1]), float(vec[0]))


def rotate_about(point: Sequence[float], pivot: Sequence[float], angle: float) -> Point:
    rad = deg_to_rad(angle)
    cos_t = math.cos(rad)
    sin_t = math.sin(rad)
    dx, dy = sub(point, pivot)
    return (
        cos_t * dx - sin_t * dy + float(pivot[0]),
        sin_t * dx + cos_t * dy + float(pivot[1]),
    )


def snap_to_grid(position: Sequence[float], grid_size: float = 25.0) -> Point:
    return (
        round(float(position[0]) / grid_size) * grid_size,
        round(float(position[1]) / grid_size) * grid_size,
    )


def is_on_grid(position: Sequence[float], grid_size: float = 25.0, tolerance: float = 0.5) -> bool:
    snapped = snap_to_grid(position, grid_size)
    return (
        abs(float(position[0]) - snapped[0]) <= tolerance
        and abs(float(position[1]) - snapped[1]) <= tolerance
    )


def segment_intersection(
    p1: Sequence[float],
    p2: Sequence[float],
    p3: Sequence[float],
    p4: Sequence[float],
) -> Optional[Point]:
    """Return the intersection of segments ``p1p2`` and ``p3p4`` if they cross."""

    x1, y1 = as_point(p1)
    x2, y2 = as_point(p2)
    x3, y3 = as_point(p3)
    x4, y4 = as_point(p4)
    denom = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(denom) < 1e-10:
        return None
    t = ((x1 - x3) * (y3 - y4) - (y1 - y3) * (x3 - x4)) / denom
    u = -((x1 - x2) * (y1 - y3) - (y1 - y2) * (x1 - x3)) / denom
    if 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0:
        return (x1 + t * (x2 - x1), y1 + t * (y2 - y1))
    return None


__all__ = [
    "Point",
    "Vector",
    "add",
    "angle_between_vectors",
    "angle_to_vector",
    "angular_distance",
    "as_point",
    "cross",
    "deg_to_rad",
    "distance",
    "dot",
    "is_on_grid",
    "norm",
    "normalize_angle",
    "normalize_angle_diff",
    "normalize_vector",
    "perpendicular",
    "rad_to_deg",
    "rotate_about",
    "scale",
    "segment_intersection",
    "snap_to_grid",
    "sub",
    "vector_to_angle",
]
