"""Closed-form fold solver for path-length constrained component pairs.

Endpoint 1 emits along its angle.  Endpoint 2 receives along its angle, so
the ray walked backward from it points along ``angle2 + 180``.  Depending on
how the two orientations relate the beam needs 0 (straight), 1 (L-shape) or
2 (U/Z-shape) intermediate mirrors.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .config import get_engine_config
from .errors import ErrorKind
from .geometry import Point, angular_distance, as_point, normalize_angle
from .logging_utils import apply_debug_logging
from .physics import mirror_angle_for_fold

logger = logging.getLogger(__name__)

Coord = np.ndarray


class Endpoint(Protocol):
    position: Point
    angle: float


@dataclass(frozen=True)
class FoldEndpoint:
    position: Point
    angle: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", as_point(self.position))
        object.__setattr__(self, "angle", normalize_angle(self.angle))


@dataclass(frozen=True)
class FoldSegment:
    start: Point
    end: Point
    length: float

    def to_dict(self) -> dict:
        return {
            "start": {"x": self.start[0], "y": self.start[1]},
            "end": {"x": self.end[0], "y": self.end[1]},
            "length": self.length,
        }


@dataclass(frozen=True)
class FoldGeometry:
    """Outcome of one fold solve.  Never persisted, recomputed per request."""

    valid: bool
    fold_count: int
    folds: Tuple[Point, ...] = ()
    segments: Tuple[FoldSegment, ...] = ()
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def total_length(self) -> float:
        return sum(segment.length for segment in self.segments)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "foldCount": self.fold_count,
            "folds": [{"x": x, "y": y} for x, y in self.folds],
            "segments": [segment.to_dict() for segment in self.segments],
            "error": self.error,
        }


def _failure(fold_count: int, message: str, kind: ErrorKind, folds: Sequence[Coord] = ()) -> FoldGeometry:
    return FoldGeometry(
        valid=False,
        fold_count=fold_count,
        folds=tuple(_point(f) for f in folds),
        error=message,
        error_kind=kind,
    )


def _point(vec: Coord) -> Point:
    return (float(vec[0]), float(vec[1]))


def _direction(angle: float) -> Coord:
    rad = math.radians(angle)
    return np.array([math.cos(rad), math.sin(rad)], dtype=float)


def _segment(start: Coord, end: Coord, length: float) -> FoldSegment:
    return FoldSegment(_point(start), _point(end), float(length))


def determine_fold_count(angle1: float, angle2: float) -> int:
    """Bucket the circular difference of two orientations into 0, 1 or 2 folds."""

    diff = angular_distance(angle1, angle2)
    if diff < 45.0:
        return 0
    if diff < 135.0:
        return 1
    return 2


def calculate_zero_fold(first: Endpoint, second: Endpoint, target_length: float) -> FoldGeometry:
    cfg = get_engine_config()
    start = np.asarray(first.position, dtype=float)
    end = np.asarray(second.position, dtype=float)
    span = float(np.linalg.norm(end - start))
    tolerance = max(target_length * cfg.zero_fold_rel_tolerance, cfg.zero_fold_abs_tolerance)
    if abs(span - target_length) > tolerance:
        return _failure(
            0,
            f"Distance {span:.1f}mm ≠ target {target_length:.1f}mm",
            ErrorKind.LENGTH_MISMATCH,
        )
    return FoldGeometry(True, 0, (), (_segment(start, end, span),))


def calculate_one_fold(first: Endpoint, second: Endpoint, target_length: float) -> FoldGeometry:
    """Place a single fold where the emitted ray meets the backward ray of the receiver."""

    cfg = get_engine_config()
    start = np.asarray(first.position, dtype=float)
    end = np.asarray(second.position, dtype=float)
    d1 = _direction(first.angle)
    d2 = _direction(second.angle + 180.0)

    if abs(float(np.dot(d1, d2))) > cfg.one_fold_perpendicular_tolerance:
        return _failure(1, "Endpoints not perpendicular for single fold", ErrorKind.GEOMETRY_INFEASIBLE)

    # F = start + t1*d1 = end + s*d2
    system = np.column_stack((d1, -d2))
    if abs(float(np.linalg.det(system))) < cfg.parallel_determinant_epsilon:
        return _failure(1, "Rays are parallel (degenerate geometry)", ErrorKind.GEOMETRY_INFEASIBLE)
    t1 = float(np.linalg.solve(system, end - start)[0])
    t2 = target_length - t1
    if t1 < 0 or t2 < 0:
        return _failure(
            1,
            f"Invalid fold position: t1={t1:.1f}, t2={t2:.1f}",
            ErrorKind.GEOMETRY_INFEASIBLE,
        )

    fold = start + t1 * d1
    fold_check = end + t2 * d2
    mismatch = float(np.linalg.norm(fold - fold_check))
    if mismatch > cfg.one_fold_match_tolerance:
        return _failure(1, f"Fold position mismatch: {mismatch:.2f}mm", ErrorKind.LENGTH_MISMATCH, [fold])

    return FoldGeometry(
        True,
        1,
        (_point(fold),),
        (_segment(start, fold, t1), _segment(fold, end, t2)),
    )


def calculate_two_folds(first: Endpoint, second: Endpoint, target_length: float) -> FoldGeometry:
    """U/Z route: equal side legs along the emission axis joined by a perpendicular leg."""

    cfg = get_engine_config()
    start = np.asarray(first.position, dtype=float)
    end = np.asarray(second.position, dtype=float)
    d1 = _direction(first.angle)
    d2 = _direction(second.angle + 180.0)

    facing = float(np.dot(d1, _direction(second.angle)))
    if facing >= cfg.two_fold_opposite_dot:
        return _failure(2, "Endpoints not opposite-facing for double fold", ErrorKind.GEOMETRY_INFEASIBLE)

    perp = np.array([-d1[1], d1[0]], dtype=float)
    offset = float(np.dot(end - start, perp))
    middle = abs(offset)
    side = (target_length - middle) / 2.0
    if side < 0:
        return _failure(
            2,
            f"Path too short: need {middle:.1f}mm middle + positive sides",
            ErrorKind.LENGTH_MISMATCH,
        )

    walk = perp if offset >= 0 else -perp
    fold1 = start + side * d1
    fold2 = fold1 + middle * walk
    expected = end + side * d2
    mismatch = float(np.linalg.norm(fold2 - expected))
    if mismatch > cfg.two_fold_match_tolerance:
        return _failure(
            2,
            f"Fold positions don't align: {mismatch:.2f}mm error",
            ErrorKind.GEOMETRY_INFEASIBLE,
            [fold1, fold2],
        )

    return FoldGeometry(
        True,
        2,
        (_point(fold1), _point(fold2)),
        (
            _segment(start, fold1, side),
            _segment(fold1, fold2, middle),
            _segment(fold2, end, side),
        ),
    )


_SOLVERS = {
    0: calculate_zero_fold,
    1: calculate_one_fold,
    2: calculate_two_folds,
}


def calculate(first: Optional[Endpoint], second: Optional[Endpoint], target_length: Optional[float]) -> FoldGeometry:
    """Classify the pair and run the matching solver."""

    if first is None or second is None or not target_length or target_length <= 0:
        return _failure(0, "Invalid input parameters", ErrorKind.GEOMETRY_INFEASIBLE)
    fold_count = determine_fold_count(first.angle, second.angle)
    result = _SOLVERS[fold_count](first, second, float(target_length))
    if result.valid:
        logger.info("Solved %s-fold route of %.1fmm", fold_count, result.total_length)
    else:
        logger.info("Fold solve failed (%s folds): %s", fold_count, result.error)
    return result


def is_geometry_solvable(first: Endpoint, second: Endpoint, fold_count: int, target_length: float) -> bool:
    """Cheap feasibility screen used before a full solve."""

    delta = np.asarray(second.position, dtype=float) - np.asarray(first.position, dtype=float)
    straight = float(np.linalg.norm(delta))
    if fold_count == 0:
        return abs(straight - target_length) < target_length * 0.05
    if fold_count == 1:
        manhattan = float(np.abs(delta).sum())
        return target_length >= manhattan * 0.95
    if fold_count == 2:
        return target_length >= straight * 1.1
    return False


def fold_mirror_angles(geometry: FoldGeometry) -> List[Optional[float]]:
    """Mirror orientation at each fold point, in fold order."""

    angles: List[Optional[float]] = []
    for incoming, outgoing in zip(geometry.segments, geometry.segments[1:]):
        d_in = np.subtract(incoming.end, incoming.start)
        d_out = np.subtract(outgoing.end, outgoing.start)
        angles.append(mirror_angle_for_fold(tuple(d_in), tuple(d_out)))
    return angles


__all__ = [
    "Endpoint",
    "FoldEndpoint",
    "FoldGeometry",
    "FoldSegment",
    "calculate",
    "calculate_one_fold",
    "calculate_two_folds",
    "calculate_zero_fold",
    "determine_fold_count",
    "fold_mirror_angles",
    "is_geometry_solvable",
]

apply_debug_logging(globals(), logger=logger)
