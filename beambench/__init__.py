from .geometry import normalize_angle, normalize_angle_diff, angular_distance, snap_to_grid, is_on_grid
from .components import (
    Component,
    ComponentType,
    ComponentPatch,
    ConstraintMode,
    IdSequence,
    MountZone,
    PathConstraint,
    Port,
    apply_patch,
    create_component,
)
from .beampath import BRANCH_COLORS, BeamPath, BeamSegment, BranchCounter
from .physics import (
    ConnectionResult,
    TraceStep,
    TracedPath,
    output_direction,
    snap_angle_to_valid,
    trace_beam_path,
    validate_connection,
)
from .folds import FoldGeometry, FoldSegment, FoldEndpoint, calculate, determine_fold_count, fold_mirror_angles
from .workspace import KeepOutZone, MountingZone, Rect, Workspace, find_boundary_intersection, center_of_mass
from .layout import Layout
from .propagation import (
    MoveOutcome,
    PairState,
    connect_components,
    move_component,
    remove_component,
    rotate_component,
    update_component,
)
from .violations import Violation, check_constraint_violations, check_path_constraints, summarize
from .errors import ErrorKind, LayoutError
from .config import EngineConfig, get_engine_config, set_engine_config

__all__ = [
    'normalize_angle',
    'normalize_angle_diff',
    'angular_distance',
    'snap_to_grid',
    'is_on_grid',
    'Component',
    'ComponentType',
    'ComponentPatch',
    'ConstraintMode',
    'IdSequence',
    'MountZone',
    'PathConstraint',
    'Port',
    'apply_patch',
    'create_component',
    'BRANCH_COLORS',
    'BeamPath',
    'BeamSegment',
    'BranchCounter',
    'ConnectionResult',
    'TraceStep',
    'TracedPath',
    'output_direction',
    'snap_angle_to_valid',
    'trace_beam_path',
    'validate_connection',
    'FoldGeometry',
    'FoldSegment',
    'FoldEndpoint',
    'calculate',
    'determine_fold_count',
    'fold_mirror_angles',
    'KeepOutZone',
    'MountingZone',
    'Rect',
    'Workspace',
    'find_boundary_intersection',
    'center_of_mass',
    'Layout',
    'MoveOutcome',
    'PairState',
    'connect_components',
    'move_component',
    'remove_component',
    'rotate_component',
    'update_component',
    'Violation',
    'check_constraint_violations',
    'check_path_constraints',
    'summarize',
    'ErrorKind',
    'LayoutError',
    'EngineConfig',
    'get_engine_config',
    'set_engine_config',
]
