"""Beam segments and the directed beam-path graph.

The graph is copy-on-write: every editing method returns a new
:class:`BeamPath` and leaves the receiver untouched, so a rejected edit can
simply keep the previous instance.  Segments live in an integer-indexed arena
and the outgoing/incoming adjacency lists store arena indices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .components import Component, Port
from .config import get_engine_config
from .geometry import Point, Vector, as_point, distance, normalize_angle, normalize_vector, sub, vector_to_angle

logger = logging.getLogger(__name__)

BRANCH_COLORS: Tuple[str, ...] = (
    "#ff0000",
    "#ff8800",
    "#ffcc00",
    "#00cc00",
    "#00cccc",
    "#0088ff",
)

DEFAULT_WAVELENGTH = 632.8

ComponentLookup = Union[Mapping[str, Component], Iterable[Component]]


def component_map(components: ComponentLookup) -> Dict[str, Component]:
    if isinstance(components, Mapping):
        return dict(components)
    return {component.id: component for component in components}


@dataclass(frozen=True)
class BeamSegment:
    """A single directed beam hop between two components.

    ``target_id`` of ``None`` means the beam leaves the bench and ends at
    ``end_point`` on the workspace boundary.
    """

    id: str
    source_id: str
    target_id: Optional[str] = None
    source_port: Port = Port.OUTPUT
    target_port: Port = Port.INPUT
    end_point: Optional[Point] = None
    wavelength: float = DEFAULT_WAVELENGTH
    power: float = 1.0
    path_length: float = 0.0
    color: str = BRANCH_COLORS[0]
    branch_index: int = 0
    wavelength_ids: Tuple[str, ...] = ()
    direction: Optional[Vector] = None
    direction_angle: Optional[float] = None
    is_valid: bool = True
    validation_error: Optional[str] = None
    is_fixed_length: bool = False
    fixed_length: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_port", Port(self.source_port))
        object.__setattr__(self, "target_port", Port(self.target_port))
        object.__setattr__(self, "wavelength_ids", tuple(self.wavelength_ids))
        if self.end_point is not None:
            object.__setattr__(self, "end_point", as_point(self.end_point))
        if self.direction is not None:
            unit = normalize_vector(self.direction)
            object.__setattr__(self, "direction", None if unit == (0.0, 0.0) else unit)
        if self.direction_angle is not None:
            object.__setattr__(self, "direction_angle", normalize_angle(self.direction_angle))
        if self.fixed_length is not None and self.fixed_length < 0:
            raise ValueError(f"segment {self.id}: fixed_length must be non-negative")
        if self.is_fixed_length and self.fixed_length is not None:
            object.__setattr__(self, "path_length", float(self.fixed_length))
        if self.path_length < 0:
            raise ValueError(f"segment {self.id}: path_length must be non-negative")

    @property
    def terminates_at_boundary(self) -> bool:
        return self.target_id is None

    def touches(self, component_id: str) -> bool:
        return self.source_id == component_id or self.target_id == component_id

    def with_direction(self, start: Point, end: Point) -> "BeamSegment":
        delta = sub(end, start)
        if distance(start, end) <= 0.0:
            return replace(self, direction=None, direction_angle=None)
        return replace(self, direction=normalize_vector(delta), direction_angle=vector_to_angle(delta))

    def with_validation(self, valid: bool, error: Optional[str] = None) -> "BeamSegment":
        return replace(self, is_valid=valid, validation_error=None if valid else error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "sourcePort": self.source_port.value,
            "targetPort": self.target_port.value,
            "endPoint": None if self.end_point is None else {"x": self.end_point[0], "y": self.end_point[1]},
            "wavelength": self.wavelength,
            "power": self.power,
            "pathLength": self.path_length,
            "color": self.color,
            "branchIndex": self.branch_index,
            "wavelengthIds": list(self.wavelength_ids),
            "direction": None if self.direction is None else {"x": self.direction[0], "y": self.direction[1]},
            "directionAngle": self.direction_angle,
            "isValid": self.is_valid,
            "validationError": self.validation_error,
            "isFixedLength": self.is_fixed_length,
            "fixedLength": self.fixed_length,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BeamSegment":
        if not data.get("id") or not data.get("sourceId"):
            raise ValueError("segment record requires 'id' and 'sourceId'")
        end_point = data.get("endPoint")
        direction = data.get("direction")
        return cls(
            id=str(data["id"]),
            source_id=str(data["sourceId"]),
            target_id=data.get("targetId") or None,
            source_port=Port(data.get("sourcePort") or Port.OUTPUT.value),
            target_port=Port(data.get("targetPort") or Port.INPUT.value),
            end_point=None if end_point is None else (float(end_point["x"]), float(end_point["y"])),
            wavelength=float(_value(data, "wavelength", DEFAULT_WAVELENGTH)),
            power=float(_value(data, "power", 1.0)),
            path_length=float(_value(data, "pathLength", 0.0)),
            color=str(data.get("color") or BRANCH_COLORS[0]),
            branch_index=int(_value(data, "branchIndex", 0)),
            wavelength_ids=tuple(data.get("wavelengthIds") or ()),
            direction=None if direction is None else (float(direction["x"]), float(direction["y"])),
            direction_angle=_optional_float(data.get("directionAngle")),
            is_valid=bool(data.get("isValid", True)),
            validation_error=data.get("validationError"),
            is_fixed_length=bool(data.get("isFixedLength", False)),
            fixed_length=_optional_float(data.get("fixedLength")),
        )


def _value(data: Mapping[str, Any], key: str, default: Any) -> Any:
    value = data.get(key)
    return default if value is None else value


def _optional_float(value: object) -> Optional[float]:
    return None if value is None else float(value)  # type: ignore[arg-type]


@dataclass
class BranchCounter:
    """Branch-index counter shared across the roots of one colouring pass."""

    value: int = 0

    def take(self) -> int:
        current = self.value
        self.value += 1
        return current

    def advance(self) -> int:
        self.value += 1
        return self.value


@dataclass(frozen=True)
class ValidationSummary:
    valid: int
    invalid: int
    total: int


@dataclass(frozen=True)
class GraphCheck:
    valid: bool
    errors: Tuple[str, ...] = ()


@dataclass
class _TraceFrame:
    node: Optional[str]
    depth: int
    children: Optional[Tuple[int, ...]] = None
    pos: int = 0


@dataclass
class _BranchFrame:
    node: str
    branch: int
    children: Tuple[int, ...] = field(default_factory=tuple)
    pos: int = 0


class BeamPath:
    """Immutable directed multigraph of :class:`BeamSegment` objects."""

    __slots__ = ("_arena", "_index", "_outgoing", "_incoming")

    def __init__(self, segments: Iterable[BeamSegment] = ()) -> None:
        arena: List[BeamSegment] = []
        index: Dict[str, int] = {}
        for segment in segments:
            slot = index.get(segment.id)
            if slot is None:
                index[segment.id] = len(arena)
                arena.append(segment)
            else:
                arena[slot] = segment
        outgoing: Dict[str, List[int]] = {}
        incoming: Dict[str, List[int]] = {}
        for slot, segment in enumerate(arena):
            outgoing.setdefault(segment.source_id, []).append(slot)
            if segment.target_id is not None:
                incoming.setdefault(segment.target_id, []).append(slot)
        self._arena: Tuple[BeamSegment, ...] = tuple(arena)
        self._index = index
        self._outgoing: Dict[str, Tuple[int, ...]] = {k: tuple(v) for k, v in outgoing.items()}
        self._incoming: Dict[str, Tuple[int, ...]] = {k: tuple(v) for k, v in incoming.items()}

    # -- container protocol -------------------------------------------------

    def __len__(self) -> int:
        return len(self._arena)

    def __iter__(self) -> Iterator[BeamSegment]:
        return iter(self._arena)

    def __contains__(self, segment_id: object) -> bool:
        return segment_id in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BeamPath):
            return NotImplemented
        return self._arena == other._arena

    def __hash__(self) -> int:
        return hash(self._arena)

    def __repr__(self) -> str:
        return f"BeamPath(segments={len(self._arena)})"

    # -- queries --------------------------------------------------------------

    def segments(self) -> List[BeamSegment]:
        return list(self._arena)

    def get_segment(self, segment_id: str) -> Optional[BeamSegment]:
        slot = self._index.get(segment_id)
        return None if slot is None else self._arena[slot]

    def outgoing_of(self, component_id: str) -> List[BeamSegment]:
        return [self._arena[slot] for slot in self._outgoing.get(component_id, ())]

    def incoming_of(self, component_id: str) -> List[BeamSegment]:
        return [self._arena[slot] for slot in self._incoming.get(component_id, ())]

    def connection_exists(self, source_id: str, target_id: Optional[str], source_port: Optional[Port] = None) -> bool:
        return any(
            segment.target_id == target_id and (source_port is None or segment.source_port == source_port)
            for segment in self.outgoing_of(source_id)
        )

    def total_path_length(self) -> float:
        return sum(segment.path_length for segment in self._arena)

    def trace_from_source(self, source_id: str, max_depth: Optional[int] = None) -> List[List[str]]:
        """Enumerate every segment-id path leaving ``source_id``.

        A path ends at a node without outgoing segments.  Only nodes on the
        current path are excluded, so two branches of a split may still end
        at the same downstream component.  Paths that would revisit a node on
        the current path, or exceed ``max_depth``, are dropped.
        """

        if max_depth is None:
            max_depth = get_engine_config().max_trace_depth
        paths: List[List[str]] = []
        path: List[int] = []
        on_path: Set[str] = set()
        stack: List[_TraceFrame] = [_TraceFrame(source_id, 0)]
        while stack:
            frame = stack[-1]
            if frame.children is None:
                if frame.depth > max_depth or (frame.node is not None and frame.node in on_path):
                    stack.pop()
                    continue
                children = self._outgoing.get(frame.node, ()) if frame.node is not None else ()
                if not children:
                    if path:
                        paths.append([self._arena[slot].id for slot in path])
                    stack.pop()
                    continue
                frame.children = children
                on_path.add(frame.node)  # type: ignore[arg-type]
            elif frame.pos > 0:
                path.pop()

            if frame.pos < len(frame.children):
                slot = frame.children[frame.pos]
                frame.pos += 1
                path.append(slot)
                stack.append(_TraceFrame(self._arena[slot].target_id, frame.depth + 1))
            else:
                on_path.discard(frame.node)  # type: ignore[arg-type]
                stack.pop()
        return paths

    def calculate_path_length_between(self, source_id: Optional[str], target_id: Optional[str]) -> Optional[float]:
        """Sum the segment lengths of the first traced path ending at ``target_id``."""

        if not source_id or not target_id:
            return None
        if source_id == target_id:
            return 0.0
        for path in self.trace_from_source(source_id):
            last = self.get_segment(path[-1])
            if last is not None and last.target_id == target_id:
                return sum(self._arena[self._index[segment_id]].path_length for segment_id in path)
        return None

    def path_exists_between(self, source_id: Optional[str], target_id: Optional[str]) -> bool:
        return self.calculate_path_length_between(source_id, target_id) is not None

    def validation_summary(self) -> ValidationSummary:
        invalid = sum(1 for segment in self._arena if not segment.is_valid)
        return ValidationSummary(len(self._arena) - invalid, invalid, len(self._arena))

    def invalid_segments(self) -> List[BeamSegment]:
        return [segment for segment in self._arena if not segment.is_valid]

    def fixed_length_segments(self) -> List[BeamSegment]:
        return [segment for segment in self._arena if segment.is_fixed_length]

    def boundary_segments(self) -> List[BeamSegment]:
        return [segment for segment in self._arena if segment.target_id is None]

    def validate(self, components: Optional[ComponentLookup] = None) -> GraphCheck:
        """Structural check of the store, the adjacency index and component references."""

        errors: List[str] = []
        for component_id, slots in list(self._outgoing.items()) + list(self._incoming.items()):
            for slot in slots:
                if slot >= len(self._arena):
                    errors.append(f"Adjacency of {component_id} references missing segment #{slot}")
        for segment_id, slot in self._index.items():
            if self._arena[slot].id != segment_id:
                errors.append(f"Segment index entry {segment_id} points at {self._arena[slot].id}")
        if components is not None:
            known = component_map(components)
            for segment in self._arena:
                if segment.source_id not in known:
                    errors.append(f"Segment {segment.id} has orphaned source: {segment.source_id}")
                if segment.target_id is not None and segment.target_id not in known:
                    errors.append(f"Segment {segment.id} has orphaned target: {segment.target_id}")
                if segment.target_id is None and segment.end_point is None:
                    errors.append(f"Segment {segment.id} ends at the boundary without an end point")
        return GraphCheck(not errors, tuple(errors))

    # -- copy-on-write edits -----------------------------------------------------

    def add_segment(self, segment: BeamSegment) -> "BeamPath":
        return BeamPath(self._arena + (segment,))

    def replace_segment(self, segment: BeamSegment) -> "BeamPath":
        if segment.id not in self._index:
            raise KeyError(segment.id)
        return BeamPath(segment if s.id == segment.id else s for s in self._arena)

    def remove_segment(self, segment_id: str) -> "BeamPath":
        if segment_id not in self._index:
            return self
        return BeamPath(segment for segment in self._arena if segment.id != segment_id)

    def remove_all_for_component(self, component_id: str) -> "BeamPath":
        kept = [segment for segment in self._arena if not segment.touches(component_id)]
        removed = len(self._arena) - len(kept)
        if removed:
            logger.debug("Removed %s segments touching %s", removed, component_id)
        return BeamPath(kept)

    def map_segments(self, func) -> "BeamPath":
        return BeamPath(func(segment) for segment in self._arena)

    def recalculate_path_lengths(self, components: ComponentLookup) -> "BeamPath":
        lookup = component_map(components)

        def _update(segment: BeamSegment) -> BeamSegment:
            if segment.is_fixed_length and segment.fixed_length is not None:
                return segment
            source = lookup.get(segment.source_id)
            if source is None:
                return segment
            if segment.target_id is not None:
                target = lookup.get(segment.target_id)
                if target is None:
                    return segment
                end = target.position
            elif segment.end_point is not None:
                end = segment.end_point
            else:
                return segment
            return replace(segment, path_length=distance(source.position, end))

        return self.map_segments(_update)

    def update_all_directions(self, components: ComponentLookup) -> "BeamPath":
        lookup = component_map(components)

        def _update(segment: BeamSegment) -> BeamSegment:
            source = lookup.get(segment.source_id)
            target = lookup.get(segment.target_id) if segment.target_id is not None else None
            if source is None or target is None:
                return segment
            return segment.with_direction(source.position, target.position)

        return self.map_segments(_update)

    def assign_branch_colors(self, source_ids: Sequence[str], counter: Optional[BranchCounter] = None) -> "BeamPath":
        """Tag every reachable segment with a branch index and palette colour.

        The first outgoing segment of a node continues the current branch,
        each further one opens a new branch from ``counter``.
        """

        counter = counter if counter is not None else BranchCounter()
        assigned: Dict[int, int] = {}
        for source_id in source_ids:
            root = counter.take()
            stack = [_BranchFrame(source_id, root, self._outgoing.get(source_id, ()))]
            on_path = {source_id}
            while stack:
                frame = stack[-1]
                if frame.pos >= len(frame.children):
                    on_path.discard(frame.node)
                    stack.pop()
                    continue
                slot = frame.children[frame.pos]
                branch = frame.branch if frame.pos == 0 else counter.advance()
                frame.pos += 1
                assigned[slot] = branch
                target = self._arena[slot].target_id
                if target is not None and target not in on_path:
                    on_path.add(target)
                    stack.append(_BranchFrame(target, branch, self._outgoing.get(target, ())))
        return BeamPath(
            replace(segment, branch_index=assigned[slot], color=BRANCH_COLORS[assigned[slot] % len(BRANCH_COLORS)])
            if slot in assigned
            else segment
            for slot, segment in enumerate(self._arena)
        )

    # -- serialisation ----------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {"segments": [segment.to_dict() for segment in self._arena]}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "BeamPath":
        if not data:
            return cls()
        return cls(BeamSegment.from_dict(item) for item in data.get("segments") or ())


__all__ = [
    "BRANCH_COLORS",
    "BeamPath",
    "BeamSegment",
    "BranchCounter",
    "ComponentLookup",
    "DEFAULT_WAVELENGTH",
    "GraphCheck",
    "ValidationSummary",
    "component_map",
]
