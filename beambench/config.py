"""Tolerances and constants used across the beam engine."""

from __future__ import annotations

import copy
from dataclasses import dataclass


@dataclass
class EngineConfig:
    """Numeric knobs of the physics, fold solver and propagation stages.

    Lengths are in millimetres, angles in degrees.
    """

    angle_tolerance: float = 5.0
    relaxed_angle_tolerance: float = 30.0
    max_trace_depth: int = 50
    coincident_epsilon: float = 1e-3

    zero_fold_rel_tolerance: float = 0.05
    zero_fold_abs_tolerance: float = 5.0
    one_fold_perpendicular_tolerance: float = 0.2
    one_fold_match_tolerance: float = 1.0
    two_fold_opposite_dot: float = -0.7
    two_fold_match_tolerance: float = 2.0
    parallel_determinant_epsilon: float = 1e-3

    default_constraint_tolerance: float = 5.0
    mirror_angle_tolerance: float = 0.5

    boundary_min_distance: float = 1.0
    boundary_fallback_distance: float = 1000.0
    boundary_ray_length: float = 10000.0

    grid_size: float = 25.0


_ENGINE_CONFIG = EngineConfig()


def get_engine_config() -> EngineConfig:
    return copy.deepcopy(_ENGINE_CONFIG)


def set_engine_config(config: EngineConfig) -> None:
    global _ENGINE_CONFIG
    _ENGINE_CONFIG = copy.deepcopy(config)


__all__ = ["EngineConfig", "get_engine_config", "set_engine_config"]
