"""Ray directions, the mirror law and connection validation.

Angles are degrees in ``[0, 360)``.  A reflective surface runs along the
component angle, so its normal points at ``angle + 90``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .beampath import BeamPath, BeamSegment, ComponentLookup, component_map
from .components import Component, ComponentType, Port, TRANSMISSIVE_TYPES
from .config import get_engine_config
from .errors import ErrorKind
from .geometry import (
    Point,
    Vector,
    angle_to_vector,
    angular_distance,
    dot,
    normalize_angle,
    normalize_vector,
    sub,
    vector_to_angle,
)

logger = logging.getLogger(__name__)

CARDINAL_ANGLES: Tuple[float, ...] = (0.0, 90.0, 180.0, 270.0)
ANY_ANGLES: Tuple[float, ...] = tuple(float(a) for a in range(0, 360, 15))

VALID_ANGLES_BY_TYPE: Dict[ComponentType, Tuple[float, ...]] = {
    ComponentType.SOURCE: CARDINAL_ANGLES,
    ComponentType.MIRROR: (45.0, 135.0),
    ComponentType.BEAM_SPLITTER: (45.0, 135.0),
    ComponentType.LENS: CARDINAL_ANGLES,
    ComponentType.WAVEPLATE: CARDINAL_ANGLES,
    ComponentType.FILTER: CARDINAL_ANGLES,
    ComponentType.DETECTOR: tuple(float(a) for a in range(0, 360, 45)),
}


def valid_angles_for(
    kind: Union[Component, ComponentType, str],
    *,
    is_shallow_angle: bool = False,
    shallow_angle: float = 5.0,
    allow_any_angle: bool = False,
) -> Tuple[float, ...]:
    if isinstance(kind, Component):
        return valid_angles_for(
            kind.type,
            is_shallow_angle=kind.is_shallow_angle,
            shallow_angle=kind.shallow_angle,
            allow_any_angle=kind.allow_any_angle,
        )
    kind = ComponentType.parse(kind)
    if allow_any_angle:
        return ANY_ANGLES
    if kind is ComponentType.BEAM_SPLITTER and is_shallow_angle:
        s = float(shallow_angle)
        return tuple(normalize_angle(a) for a in (s, 180.0 - s, 180.0 + s, 360.0 - s))
    return VALID_ANGLES_BY_TYPE[kind]


def snap_angle_to_valid(angle: float, kind: Union[Component, ComponentType, str], **options: object) -> float:
    """Return the legal orientation nearest to ``angle`` by circular distance."""

    candidates = valid_angles_for(kind, **options)  # type: ignore[arg-type]
    return min(candidates, key=lambda candidate: angular_distance(angle, candidate))


def is_valid_angle_for_component(angle: float, kind: Union[Component, ComponentType, str], **options: object) -> bool:
    tolerance = get_engine_config().angle_tolerance
    candidates = valid_angles_for(kind, **options)  # type: ignore[arg-type]
    return any(angular_distance(angle, candidate) <= tolerance for candidate in candidates)


def surface_normal(component_angle: float) -> Vector:
    return angle_to_vector(normalize_angle(component_angle + 90.0))


def reflection_direction(incoming: Sequence[float], normal: Sequence[float]) -> Vector:
    """Mirror ``incoming`` about the surface with unit ``normal``: R = D - 2(D.N)N."""

    d = normalize_vector(incoming)
    n = normalize_vector(normal)
    proj = dot(d, n)
    return normalize_vector((d[0] - 2.0 * proj * n[0], d[1] - 2.0 * proj * n[1]))


def mirror_reflection(incoming_angle: float, mirror_angle: float) -> float:
    reflected = reflection_direction(angle_to_vector(incoming_angle), surface_normal(mirror_angle))
    return vector_to_angle(reflected)


def mirror_angle_for_fold(incoming: Sequence[float], outgoing: Sequence[float]) -> Optional[float]:
    """Return the mirror orientation that turns ``incoming`` into ``outgoing``.

    ``None`` when both directions coincide, as any orientation along the beam
    would do.
    """

    d_in = normalize_vector(incoming)
    d_out = normalize_vector(outgoing)
    normal = normalize_vector(sub(d_out, d_in))
    if normal == (0.0, 0.0):
        return None
    return normalize_angle(vector_to_angle(normal) - 90.0)


def default_output_port(component: Component) -> Port:
    if component.type is ComponentType.SOURCE:
        return Port.OUTPUT
    if Port.REFLECTED in component.ports:
        return Port.REFLECTED
    if Port.TRANSMITTED in component.ports:
        return Port.TRANSMITTED
    return Port.OUTPUT


def output_direction(component: Component, input_angle: Optional[float], port: Port = Port.REFLECTED) -> Optional[float]:
    """Beam angle leaving ``component`` through ``port`` for a beam arriving at ``input_angle``."""

    kind = component.type
    if kind is ComponentType.SOURCE:
        return component.effective_emission_angle
    if kind is ComponentType.DETECTOR:
        return None
    if input_angle is None:
        return None
    if kind is ComponentType.MIRROR:
        return mirror_reflection(input_angle, component.angle)
    if kind is ComponentType.BEAM_SPLITTER:
        if Port(port) is Port.TRANSMITTED:
            return normalize_angle(input_angle)
        surface = component.shallow_angle if component.is_shallow_angle else component.angle
        return mirror_reflection(input_angle, surface)
    if kind in TRANSMISSIVE_TYPES:
        return normalize_angle(input_angle)
    raise ValueError(f"Unhandled component type {kind!r}")


def beam_direction(source_pos: Point, target_pos: Point) -> Optional[Vector]:
    delta = sub(target_pos, source_pos)
    eps = get_engine_config().coincident_epsilon
    if abs(delta[0]) < eps and abs(delta[1]) < eps:
        return None
    return normalize_vector(delta)


def beam_angle(source_pos: Point, target_pos: Point) -> Optional[float]:
    direction = beam_direction(source_pos, target_pos)
    if direction is None:
        return None
    return vector_to_angle(direction)


def is_target_on_beam_path(
    source_pos: Point,
    target_pos: Point,
    expected_angle: float,
    tolerance: Optional[float] = None,
) -> bool:
    if tolerance is None:
        tolerance = get_engine_config().angle_tolerance
    actual = beam_angle(source_pos, target_pos)
    if actual is None:
        return False
    return angular_distance(actual, expected_angle) <= tolerance


def transmission_accepts(component_angle: float, beam: float, tolerance: Optional[float] = None) -> bool:
    """True when ``beam`` runs along the optical axis, in either sense."""

    if tolerance is None:
        tolerance = get_engine_config().angle_tolerance
    axis = normalize_angle(component_angle)
    return angular_distance(beam, axis) <= tolerance or angular_distance(beam, axis + 180.0) <= tolerance


@dataclass(frozen=True)
class ConnectionResult:
    valid: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    beam_angle: Optional[float] = None
    beam_direction: Optional[Vector] = None
    expected_angle: Optional[float] = None

    @classmethod
    def reject(cls, message: str, expected_angle: Optional[float] = None) -> "ConnectionResult":
        return cls(False, message, ErrorKind.CONNECTION_INVALID, expected_angle=expected_angle)


def validate_connection(
    source: Component,
    target: Component,
    source_port: Optional[Port] = None,
    incoming_angle: Optional[float] = None,
    components: Optional[ComponentLookup] = None,
) -> ConnectionResult:
    """Decide whether a beam may run from ``source`` to ``target``.

    ``components`` is accepted for symmetry with the graph helpers; obstacle
    detection between the two components is not performed.
    """

    cfg = get_engine_config()
    port = Port(source_port) if source_port is not None else default_output_port(source)
    source_relaxed = source.allow_any_angle
    target_relaxed = target.allow_any_angle
    tolerance = cfg.relaxed_angle_tolerance if (source_relaxed or target_relaxed) else cfg.angle_tolerance

    if not source.can_output_beam():
        return ConnectionResult.reject(f"{source.name} cannot output a beam (terminal component)")
    if port not in source.ports:
        return ConnectionResult.reject(f"{source.name} has no '{port.value}' port")
    if not target.can_receive_beam():
        return ConnectionResult.reject(f"{target.name} cannot receive a beam")
    if source.id == target.id:
        return ConnectionResult.reject(f"{source.name} cannot feed itself")

    actual = beam_angle(source.position, target.position)
    if actual is None:
        return ConnectionResult.reject(f"{source.name} and {target.name} occupy the same position")

    if source.type is ComponentType.SOURCE:
        expected: Optional[float] = source.effective_emission_angle
    elif incoming_angle is not None:
        expected = output_direction(source, incoming_angle, port)
    elif source_relaxed:
        expected = actual
    else:
        return ConnectionResult.reject("Cannot determine beam direction: no incoming beam angle specified")

    if expected is None:
        return ConnectionResult.reject(f"{source.name} cannot output a beam (terminal component)")

    if not source_relaxed and not is_target_on_beam_path(source.position, target.position, expected, tolerance):
        return ConnectionResult.reject(
            f"Target {target.name} is not in beam path. "
            f"Expected angle: {expected:.1f}°, actual: {actual:.1f}°",
            expected_angle=expected,
        )

    if not target_relaxed and target.is_transmissive:
        if not transmission_accepts(target.angle, actual, tolerance):
            return ConnectionResult.reject(
                f"Beam must pass through {target.name} along its optical axis",
                expected_angle=expected,
            )

    return ConnectionResult(
        True,
        beam_angle=actual,
        beam_direction=angle_to_vector(actual),
        expected_angle=expected,
    )


def incoming_angle(beam_path: BeamPath, components: ComponentLookup, component_id: str) -> Optional[float]:
    """Angle of the first beam arriving at ``component_id``."""

    lookup = component_map(components)
    target = lookup.get(component_id)
    if target is None:
        return None
    for segment in beam_path.incoming_of(component_id):
        source = lookup.get(segment.source_id)
        if source is None:
            continue
        angle = beam_angle(source.position, target.position)
        if angle is None:
            angle = segment.direction_angle
        if angle is not None:
            return angle
    return None


@dataclass(frozen=True)
class TraceStep:
    segment_id: str
    beam_angle: Optional[float]
    expected_angle: float
    is_valid: bool


@dataclass(frozen=True)
class TracedPath:
    steps: Tuple[TraceStep, ...]
    terminal_id: Optional[str]

    @property
    def is_valid(self) -> bool:
        return all(step.is_valid for step in self.steps)


def _segment_end(segment: BeamSegment, lookup: Dict[str, Component]) -> Optional[Point]:
    if segment.target_id is None:
        return segment.end_point
    target = lookup.get(segment.target_id)
    return None if target is None else target.position


@dataclass
class _WalkFrame:
    component: Component
    arriving: Optional[float]
    depth: int
    outgoing: List[BeamSegment]
    next_index: int = 0


def trace_beam_path(
    source: Component,
    beam_path: BeamPath,
    components: ComponentLookup,
    max_depth: Optional[int] = None,
) -> List[TracedPath]:
    """Follow the beam from ``source`` and compare actual with expected angles hop by hop."""

    if max_depth is None:
        max_depth = get_engine_config().max_trace_depth
    lookup = component_map(components)
    tolerance = get_engine_config().angle_tolerance
    paths: List[TracedPath] = []
    steps: List[TraceStep] = []
    on_path = set()

    def _enter(component: Component, arriving: Optional[float], depth: int) -> Optional[_WalkFrame]:
        if depth > max_depth or component.id in on_path:
            return None
        outgoing = beam_path.outgoing_of(component.id)
        if not outgoing:
            if steps:
                paths.append(TracedPath(tuple(steps), component.id))
            return None
        on_path.add(component.id)
        return _WalkFrame(component, arriving, depth, outgoing)

    stack: List[_WalkFrame] = []
    root = _enter(source, None, 0)
    if root is not None:
        stack.append(root)
    while stack:
        frame = stack[-1]
        if frame.next_index >= len(frame.outgoing):
            stack.pop()
            on_path.discard(frame.component.id)
            # drop the hop that led into the finished frame
            if stack:
                steps.pop()
            continue
        segment = frame.outgoing[frame.next_index]
        frame.next_index += 1
        end = _segment_end(segment, lookup)
        if end is None:
            continue
        expected = output_direction(frame.component, frame.arriving, segment.source_port)
        if expected is None:
            continue
        actual = beam_angle(frame.component.position, end)
        valid = actual is not None and angular_distance(actual, expected) <= tolerance
        steps.append(TraceStep(segment.id, actual, expected, valid))
        if segment.target_id is None:
            paths.append(TracedPath(tuple(steps), None))
            steps.pop()
            continue
        child = _enter(lookup[segment.target_id], actual, frame.depth + 1)
        if child is None:
            steps.pop()
        else:
            stack.append(child)
    return paths


def segment_angle_deviation(
    segment: BeamSegment,
    components: ComponentLookup,
    incoming: Optional[float],
) -> float:
    """Deviation between actual and expected angle of ``segment``; 180 when undetermined."""

    lookup = component_map(components)
    source = lookup.get(segment.source_id)
    end = _segment_end(segment, lookup)
    if source is None or end is None:
        return 180.0
    if source.type is ComponentType.SOURCE:
        expected = source.effective_emission_angle
    elif incoming is not None:
        expected = output_direction(source, incoming, segment.source_port)
    else:
        return 180.0
    if expected is None:
        return 180.0
    actual = beam_angle(source.position, end)
    if actual is None:
        return 180.0
    return angular_distance(actual, expected)


def outgoing_angle(
    component: Component,
    segment: BeamSegment,
    beam_path: BeamPath,
    components: ComponentLookup,
) -> Optional[float]:
    """Output angle of ``segment`` given whatever currently feeds ``component``."""

    arriving = incoming_angle(beam_path, components, component.id)
    return output_direction(component, arriving, segment.source_port)


__all__ = [
    "ANY_ANGLES",
    "CARDINAL_ANGLES",
    "ConnectionResult",
    "TraceStep",
    "TracedPath",
    "VALID_ANGLES_BY_TYPE",
    "beam_angle",
    "beam_direction",
    "default_output_port",
    "incoming_angle",
    "is_target_on_beam_path",
    "is_valid_angle_for_component",
    "mirror_angle_for_fold",
    "mirror_reflection",
    "outgoing_angle",
    "output_direction",
    "reflection_direction",
    "segment_angle_deviation",
    "snap_angle_to_valid",
    "surface_normal",
    "trace_beam_path",
    "transmission_accepts",
    "valid_angles_for",
]
