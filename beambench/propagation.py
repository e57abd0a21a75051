"""Editing pipeline: moves, rotations, connections and removals.

Every request runs as validate -> resolve -> apply.  The first two stages
only read the prior :class:`Layout`; the apply stage builds a fresh layout
and beam graph in one go.  A rejected request hands back the very same
layout object together with an error message and :class:`ErrorKind`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .beampath import BeamPath, BeamSegment
from .components import (
    Component,
    ComponentPatch,
    ConstraintMode,
    IdSequence,
    PathConstraint,
    Port,
    apply_patch,
)
from .config import get_engine_config
from .errors import ErrorKind
from .folds import FoldGeometry, calculate, determine_fold_count, fold_mirror_angles
from .geometry import Point, add, angle_to_vector, angular_distance, as_point, distance, normalize_angle, rotate_about, sub
from .layout import ConstrainedPair, Layout
from .logging_utils import apply_debug_logging
from .physics import default_output_port, incoming_angle, outgoing_angle, output_direction, validate_connection
from .workspace import find_boundary_intersection

logger = logging.getLogger(__name__)


class PairState(str, Enum):
    BOTH_FIXED = "both_fixed"
    SYNCHRONIZED = "synchronized"
    DYNAMIC_FOLD = "dynamic_fold"


def pair_state(dragged: Component, partner: Component) -> PairState:
    if dragged.is_fixed:
        return PairState.BOTH_FIXED if partner.is_fixed else PairState.DYNAMIC_FOLD
    if partner.is_fixed:
        return PairState.DYNAMIC_FOLD
    return PairState.SYNCHRONIZED


@dataclass(frozen=True)
class MoveOutcome:
    """Result of an editing request.

    ``layout`` is the new layout when ``ok`` and the untouched prior layout
    otherwise.
    """

    layout: Layout
    ok: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    changed_ids: Tuple[str, ...] = ()


class _Rejected(Exception):
    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


def _reject(layout: Layout, message: str, kind: ErrorKind) -> MoveOutcome:
    logger.info("Edit rejected: %s", message)
    return MoveOutcome(layout, False, message, kind)


@dataclass
class _Writes:
    """Pending position/angle updates keyed by component id."""

    layout: Layout
    positions: Dict[str, Point] = field(default_factory=dict)
    angles: Dict[str, float] = field(default_factory=dict)

    def position_of(self, component_id: str) -> Point:
        if component_id in self.positions:
            return self.positions[component_id]
        return self.layout.components[component_id].position

    def angle_of(self, component_id: str) -> float:
        if component_id in self.angles:
            return self.angles[component_id]
        return self.layout.components[component_id].angle

    def set_position(self, component_id: str, position: Point) -> None:
        position = as_point(position)
        previous = self.positions.get(component_id)
        if previous is not None and distance(previous, position) > get_engine_config().coincident_epsilon:
            name = self.layout.components[component_id].name
            raise _Rejected(f"Conflicting position updates for {name}", ErrorKind.CONSTRAINT_BLOCKED)
        self.positions[component_id] = position

    def set_angle(self, component_id: str, angle: float) -> None:
        angle = normalize_angle(angle)
        previous = self.angles.get(component_id)
        if previous is not None and angular_distance(previous, angle) > get_engine_config().mirror_angle_tolerance:
            name = self.layout.components[component_id].name
            raise _Rejected(f"Conflicting angle updates for {name}", ErrorKind.CONSTRAINT_BLOCKED)
        self.angles[component_id] = angle

    def changed_ids(self) -> Tuple[str, ...]:
        ordered: List[str] = []
        for component_id in list(self.positions) + list(self.angles):
            if component_id not in ordered:
                ordered.append(component_id)
        return tuple(ordered)

    def patched_components(self) -> List[Component]:
        updated = []
        for component_id in self.changed_ids():
            patch = ComponentPatch(
                position=self.positions.get(component_id),
                angle=self.angles.get(component_id),
            )
            updated.append(apply_patch(self.layout.components[component_id], patch))
        return updated


# -- graph refresh ---------------------------------------------------------------


def _recast_boundary_segments(layout: Layout, component_ids: Iterable[str]) -> BeamPath:
    graph = layout.beam_path
    for component_id in component_ids:
        component = layout.component(component_id)
        if component is None:
            continue
        for segment in graph.outgoing_of(component_id):
            if segment.target_id is not None:
                continue
            angle = outgoing_angle(component, segment, graph, layout.components)
            if angle is None:
                continue
            end = find_boundary_intersection(component.position, angle, layout.workspace)
            graph = graph.replace_segment(
                replace(segment, end_point=end, direction=angle_to_vector(angle), direction_angle=angle)
            )
    return graph


def _validate_segments(graph: BeamPath, layout: Layout) -> BeamPath:
    components = layout.components

    def _check(segment: BeamSegment) -> BeamSegment:
        if segment.target_id is None:
            return segment
        source = components.get(segment.source_id)
        target = components.get(segment.target_id)
        if source is None or target is None:
            return segment.with_validation(False, f"Segment {segment.id} references a missing component")
        arriving = incoming_angle(graph, components, source.id)
        result = validate_connection(source, target, segment.source_port, arriving, components)
        return segment.with_validation(result.valid, result.error)

    return graph.map_segments(_check)


def refresh_beam_path(layout: Layout, moved_ids: Sequence[str] = ()) -> Layout:
    """Recompute boundary end points, directions, lengths and validity.

    Boundary segments are re-cast for every moved component and for the
    components directly fed by one.
    """

    affected: List[str] = list(moved_ids)
    for component_id in moved_ids:
        for segment in layout.beam_path.outgoing_of(component_id):
            if segment.target_id is not None and segment.target_id not in affected:
                affected.append(segment.target_id)
    graph = _recast_boundary_segments(layout, affected)
    graph = graph.update_all_directions(layout.components)
    graph = graph.recalculate_path_lengths(layout.components)
    graph = _validate_segments(graph, layout)
    return layout.with_beam_path(graph)


def _commit(layout: Layout, writes: _Writes) -> MoveOutcome:
    changed = writes.changed_ids()
    updated = layout.with_components(writes.patched_components())
    updated = refresh_beam_path(updated, changed)
    return MoveOutcome(updated, True, None, None, changed)


# -- move ------------------------------------------------------------------------


def _group_pairs(pairs: Iterable[ConstrainedPair]) -> List[List[ConstrainedPair]]:
    groups: Dict[frozenset, List[ConstrainedPair]] = {}
    for pair in pairs:
        groups.setdefault(frozenset((pair.owner_id, pair.partner_id)), []).append(pair)
    resolved: List[List[ConstrainedPair]] = []
    for members in groups.values():
        foldable = [p for p in members if p.constraint.mode is ConstraintMode.FOLDABLE]
        # foldable constraints own moves when both kinds link the same pair
        resolved.append(foldable or members)
    return resolved


def _mirror_matches(current: float, wanted: float, tolerance: float) -> bool:
    return min(angular_distance(current, wanted), angular_distance(current, wanted + 180.0)) <= tolerance


def _resolve_synchronized(writes: _Writes, dragged: Component, partner: Component, constraint: PathConstraint, delta: Point) -> None:
    writes.set_position(partner.id, add(partner.position, delta))
    for mirror_id in constraint.mirror_ids:
        mirror = writes.layout.component(mirror_id)
        if mirror is None:
            raise _Rejected(f"Constraint mirror {mirror_id} does not exist", ErrorKind.CONSTRAINT_BLOCKED)
        if mirror.is_fixed:
            raise _Rejected(
                f"Cannot move {dragged.name}: mirror {mirror.name} is fixed",
                ErrorKind.CONSTRAINT_BLOCKED,
            )
        writes.set_position(mirror.id, add(mirror.position, delta))


def _solve_pair(writes: _Writes, pair: ConstrainedPair) -> FoldGeometry:
    layout = writes.layout
    owner = layout.components[pair.owner_id]
    partner = layout.components[pair.partner_id]
    constraint = pair.constraint
    first = replace(owner, position=writes.position_of(owner.id), angle=writes.angle_of(owner.id))
    second = replace(partner, position=writes.position_of(partner.id), angle=writes.angle_of(partner.id))

    required = determine_fold_count(first.angle, second.angle)
    if required != constraint.fold_count:
        raise _Rejected(
            f"Constraint {owner.name}-{partner.name} expects {constraint.fold_count} folds "
            f"but the orientations need {required}",
            ErrorKind.GEOMETRY_INFEASIBLE,
        )
    geometry = calculate(first, second, constraint.target_path_length)
    if not geometry.valid:
        raise _Rejected(
            f"Fold recompute for {owner.name}-{partner.name} failed: {geometry.error}",
            ErrorKind.CONSTRAINT_BLOCKED,
        )
    realised = geometry.total_length
    if abs(realised - constraint.target_path_length) > constraint.tolerance:
        raise _Rejected(
            f"Path {owner.name}-{partner.name} would be {realised:.1f}mm, "
            f"target {constraint.target_path_length:.1f}mm ± {constraint.tolerance:.1f}mm",
            ErrorKind.LENGTH_MISMATCH,
        )
    return geometry


def _write_fold_mirrors(writes: _Writes, pair: ConstrainedPair, geometry: FoldGeometry) -> None:
    layout = writes.layout
    cfg = get_engine_config()
    mirror_ids = pair.constraint.mirror_ids
    if len(mirror_ids) < geometry.fold_count:
        raise _Rejected(
            f"Constraint needs {geometry.fold_count} fold mirrors but lists {len(mirror_ids)}",
            ErrorKind.CONSTRAINT_BLOCKED,
        )
    for mirror_id, fold, angle in zip(mirror_ids, geometry.folds, fold_mirror_angles(geometry)):
        mirror = layout.component(mirror_id)
        if mirror is None:
            raise _Rejected(f"Constraint mirror {mirror_id} does not exist", ErrorKind.CONSTRAINT_BLOCKED)
        if mirror.is_fixed and distance(mirror.position, fold) > cfg.coincident_epsilon:
            raise _Rejected(f"Mirror {mirror.name} is fixed and cannot follow the fold", ErrorKind.CONSTRAINT_BLOCKED)
        writes.set_position(mirror.id, fold)
        if angle is None:
            continue
        if mirror.is_angle_fixed:
            if not _mirror_matches(mirror.angle, angle, cfg.mirror_angle_tolerance):
                raise _Rejected(
                    f"Mirror {mirror.name} has a fixed angle of {mirror.angle:.1f}°, fold needs {angle:.1f}°",
                    ErrorKind.CONSTRAINT_BLOCKED,
                )
            continue
        writes.set_angle(mirror.id, angle)


def _validate_move(layout: Layout, component_id: str) -> Optional[MoveOutcome]:
    dragged = layout.component(component_id)
    if dragged is None:
        return _reject(layout, f"Unknown component {component_id}", ErrorKind.CONSTRAINT_BLOCKED)
    if not dragged.is_fixed:
        return None
    for pair in layout.constraints_touching(component_id):
        other_id = pair.partner_id if pair.owner_id == component_id else pair.owner_id
        other = layout.component(other_id)
        if other is not None and pair_state(dragged, other) is PairState.BOTH_FIXED:
            return _reject(
                layout,
                f"Cannot move {dragged.name}: both {dragged.name} and {other.name} are fixed",
                ErrorKind.CONSTRAINT_BLOCKED,
            )
    return _reject(layout, f"Cannot move {dragged.name}: component is fixed", ErrorKind.CONSTRAINT_BLOCKED)


def _resolve_move(layout: Layout, dragged: Component, position: Point) -> _Writes:
    writes = _Writes(layout)
    writes.set_position(dragged.id, position)
    delta = sub(position, dragged.position)
    for group in _group_pairs(layout.constraints_touching(dragged.id)):
        for pair in group:
            other_id = pair.partner_id if pair.owner_id == dragged.id else pair.owner_id
            other = layout.component(other_id)
            if other is None:
                raise _Rejected(f"Constraint partner {other_id} does not exist", ErrorKind.CONSTRAINT_BLOCKED)
            state = pair_state(dragged, other)
            logger.debug("Pair %s/%s resolved as %s", dragged.id, other.id, state.value)
            if state is PairState.SYNCHRONIZED:
                _resolve_synchronized(writes, dragged, other, pair.constraint, delta)
                continue
            geometry = _solve_pair(writes, pair)
            if pair.constraint.mode is ConstraintMode.FOLDABLE:
                _write_fold_mirrors(writes, pair, geometry)
    return writes


def move_component(layout: Layout, component_id: str, position: Point) -> MoveOutcome:
    """Move ``component_id`` to ``position`` and carry every constrained partner along."""

    rejected = _validate_move(layout, component_id)
    if rejected is not None:
        return rejected
    dragged = layout.components[component_id]
    try:
        writes = _resolve_move(layout, dragged, as_point(position))
    except _Rejected as exc:
        return _reject(layout, exc.message, exc.kind)
    outcome = _commit(layout, writes)
    logger.info("Moved %s; %s component(s) changed", component_id, len(outcome.changed_ids))
    return outcome


# -- rotate ----------------------------------------------------------------------


def _rotate_rigidly(writes: _Writes, component_id: str, pivot: Point, angle_delta: float) -> None:
    component = writes.layout.component(component_id)
    if component is None:
        raise _Rejected(f"Constraint component {component_id} does not exist", ErrorKind.CONSTRAINT_BLOCKED)
    if not component.is_fixed:
        writes.set_position(component.id, rotate_about(component.position, pivot, angle_delta))
    if not component.is_angle_fixed:
        writes.set_angle(component.id, component.angle + angle_delta)


def _resolve_rotation(layout: Layout, component: Component, angle_delta: float) -> _Writes:
    writes = _Writes(layout)
    writes.set_angle(component.id, component.angle + angle_delta)
    auto_pairs = [
        pair
        for pair in layout.constraints_touching(component.id)
        if pair.constraint.mode is ConstraintMode.AUTO
    ]
    # auto pairs turn as one rigid body about the rotated component
    for pair in auto_pairs:
        other_id = pair.partner_id if pair.owner_id == component.id else pair.owner_id
        _rotate_rigidly(writes, other_id, component.position, angle_delta)
        for mirror_id in pair.constraint.mirror_ids:
            _rotate_rigidly(writes, mirror_id, component.position, angle_delta)
    for pair in auto_pairs:
        _solve_pair(writes, pair)
    return writes


def rotate_component(layout: Layout, component_id: str, angle_delta: float) -> MoveOutcome:
    """Rotate ``component_id`` by ``angle_delta`` degrees, turning auto-constrained partners with it."""

    component = layout.component(component_id)
    if component is None:
        return _reject(layout, f"Unknown component {component_id}", ErrorKind.CONSTRAINT_BLOCKED)
    if component.is_angle_fixed:
        return _reject(layout, f"Cannot rotate {component.name}: angle is fixed", ErrorKind.CONSTRAINT_BLOCKED)
    try:
        writes = _resolve_rotation(layout, component, float(angle_delta))
    except _Rejected as exc:
        return _reject(layout, exc.message, exc.kind)
    outcome = _commit(layout, writes)
    logger.info("Rotated %s by %.1f°", component_id, angle_delta)
    return outcome


# -- generic update --------------------------------------------------------------


def update_component(layout: Layout, component_id: str, patch: ComponentPatch) -> MoveOutcome:
    """Apply ``patch``; position and angle changes run through the move and rotate pipelines."""

    component = layout.component(component_id)
    if component is None:
        return _reject(layout, f"Unknown component {component_id}", ErrorKind.CONSTRAINT_BLOCKED)
    current = layout
    changed: List[str] = []
    if patch.position is not None and distance(patch.position, component.position) > 0.0:
        moved = move_component(current, component_id, patch.position)
        if not moved.ok:
            return MoveOutcome(layout, False, moved.error, moved.error_kind)
        current = moved.layout
        changed.extend(moved.changed_ids)
    if patch.angle is not None and angular_distance(patch.angle, component.angle) > 0.0:
        delta = normalize_angle(patch.angle) - current.components[component_id].angle
        rotated = rotate_component(current, component_id, delta)
        if not rotated.ok:
            return MoveOutcome(layout, False, rotated.error, rotated.error_kind)
        current = rotated.layout
        changed.extend(c for c in rotated.changed_ids if c not in changed)

    rest = replace(patch, position=None, angle=None)
    if rest.changes():
        updated = apply_patch(current.components[component_id], rest)
        current = current.with_components([updated])
        if component_id not in changed:
            changed.append(component_id)
    current = refresh_beam_path(current, tuple(changed))
    return MoveOutcome(current, True, None, None, tuple(changed))


# -- connect / remove ------------------------------------------------------------


def connect_components(
    layout: Layout,
    source_id: str,
    target_id: Optional[str],
    ids: IdSequence,
    source_port: Optional[Port] = None,
    fixed_length: Optional[float] = None,
) -> MoveOutcome:
    """Add a beam segment after :func:`validate_connection` accepts it.

    ``target_id=None`` sends the beam to the workspace boundary.
    """

    source = layout.component(source_id)
    if source is None:
        return _reject(layout, f"Unknown component {source_id}", ErrorKind.CONNECTION_INVALID)
    port = Port(source_port) if source_port is not None else default_output_port(source)
    if layout.beam_path.connection_exists(source_id, target_id, port):
        return _reject(layout, f"{source.name} already feeds that target from its {port.value} port", ErrorKind.CONNECTION_INVALID)

    graph = layout.beam_path
    arriving = incoming_angle(graph, layout.components, source_id)
    feeding = graph.incoming_of(source_id)
    inherited = {}
    if feeding:
        inherited = {"wavelength": feeding[0].wavelength, "wavelength_ids": feeding[0].wavelength_ids}

    if target_id is None:
        if port not in source.ports:
            return _reject(layout, f"{source.name} has no '{port.value}' port", ErrorKind.CONNECTION_INVALID)
        angle = output_direction(source, arriving, port)
        if angle is None:
            return _reject(layout, f"{source.name} cannot output a beam toward the boundary", ErrorKind.CONNECTION_INVALID)
        end = find_boundary_intersection(source.position, angle, layout.workspace)
        segment = BeamSegment(
            id=ids.next_id("seg"),
            source_id=source_id,
            target_id=None,
            source_port=port,
            end_point=end,
            path_length=distance(source.position, end),
            direction=sub(end, source.position),
            direction_angle=angle,
            **inherited,
        )
    else:
        target = layout.component(target_id)
        if target is None:
            return _reject(layout, f"Unknown component {target_id}", ErrorKind.CONNECTION_INVALID)
        result = validate_connection(source, target, port, arriving, layout.components)
        if not result.valid:
            return _reject(layout, result.error or "Invalid connection", result.error_kind or ErrorKind.CONNECTION_INVALID)
        segment = BeamSegment(
            id=ids.next_id("seg"),
            source_id=source_id,
            target_id=target_id,
            source_port=port,
            path_length=distance(source.position, target.position),
            direction=result.beam_direction,
            direction_angle=result.beam_angle,
            is_fixed_length=fixed_length is not None,
            fixed_length=fixed_length,
            **inherited,
        )

    graph = graph.add_segment(segment)
    graph = graph.assign_branch_colors([c.id for c in layout.sources()])
    updated = refresh_beam_path(layout.with_beam_path(graph))
    logger.info("Connected %s -> %s (%s)", source_id, target_id or "boundary", segment.id)
    return MoveOutcome(updated, True, None, None, ())


def remove_component(layout: Layout, component_id: str) -> MoveOutcome:
    """Drop a component, every segment touching it and every constraint naming it."""

    component = layout.component(component_id)
    if component is None:
        return _reject(layout, f"Unknown component {component_id}", ErrorKind.CONSTRAINT_BLOCKED)
    updated = layout.without_component(component_id)
    touched: List[Component] = []
    for other in updated.components.values():
        kept = tuple(
            replace(c, mirror_ids=tuple(m for m in c.mirror_ids if m != component_id))
            for c in other.path_constraints
            if c.partner_id != component_id
        )
        if kept != other.path_constraints:
            touched.append(apply_patch(other, ComponentPatch(path_constraints=kept)))
    updated = updated.with_components(touched)
    updated = updated.with_beam_path(layout.beam_path.remove_all_for_component(component_id))
    updated = refresh_beam_path(updated)
    logger.info("Removed %s", component_id)
    return MoveOutcome(updated, True, None, None, tuple(c.id for c in touched))


__all__ = [
    "MoveOutcome",
    "PairState",
    "connect_components",
    "move_component",
    "pair_state",
    "refresh_beam_path",
    "remove_component",
    "rotate_component",
    "update_component",
]

apply_debug_logging(globals(), logger=logger)
