"""Optical component value types."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

import numpy as np

from .geometry import Point, angle_to_vector, as_point, deg_to_rad, normalize_angle


class ComponentType(str, Enum):
    SOURCE = "source"
    MIRROR = "mirror"
    BEAM_SPLITTER = "beam_splitter"
    LENS = "lens"
    WAVEPLATE = "waveplate"
    FILTER = "filter"
    DETECTOR = "detector"

    @staticmethod
    def parse(value: object) -> "ComponentType":
        if isinstance(value, ComponentType):
            return value
        try:
            return ComponentType(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown component type '{value}'") from None


class Port(str, Enum):
    OUTPUT = "output"
    INPUT = "input"
    REFLECTED = "reflected"
    TRANSMITTED = "transmitted"


class ConstraintMode(str, Enum):
    """How a path-length constraint reacts to edits.

    ``foldable`` constraints carry an explicit ordered mirror list that the
    fold solver writes back to; ``auto`` constraints have no mirror list and
    additionally rotate the pair together.
    """

    FOLDABLE = "foldable"
    AUTO = "auto"


TRANSMISSIVE_TYPES: FrozenSet[ComponentType] = frozenset(
    {ComponentType.LENS, ComponentType.WAVEPLATE, ComponentType.FILTER}
)
REFLECTIVE_TYPES: FrozenSet[ComponentType] = frozenset(
    {ComponentType.MIRROR, ComponentType.BEAM_SPLITTER}
)

_PORTS: Dict[ComponentType, FrozenSet[Port]] = {
    ComponentType.SOURCE: frozenset({Port.OUTPUT}),
    ComponentType.MIRROR: frozenset({Port.INPUT, Port.REFLECTED}),
    ComponentType.BEAM_SPLITTER: frozenset({Port.INPUT, Port.REFLECTED, Port.TRANSMITTED}),
    ComponentType.LENS: frozenset({Port.INPUT, Port.TRANSMITTED}),
    ComponentType.WAVEPLATE: frozenset({Port.INPUT, Port.TRANSMITTED}),
    ComponentType.FILTER: frozenset({Port.INPUT, Port.TRANSMITTED}),
    ComponentType.DETECTOR: frozenset({Port.INPUT}),
}


@dataclass(frozen=True)
class MountZone:
    """Keep-out padding around a component's physical mount."""

    enabled: bool = False
    padding_x: float = 10.0
    padding_y: float = 10.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "paddingX": self.padding_x,
            "paddingY": self.padding_y,
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], default: Optional["MountZone"] = None) -> "MountZone":
        base = default or cls()
        if not data:
            return base
        # legacy documents carry a single symmetric ``padding``
        legacy = data.get("padding")
        return cls(
            enabled=bool(data.get("enabled", base.enabled)),
            padding_x=float(data.get("paddingX", legacy if legacy is not None else base.padding_x)),
            padding_y=float(data.get("paddingY", legacy if legacy is not None else base.padding_y)),
            offset_x=float(data.get("offsetX", base.offset_x)),
            offset_y=float(data.get("offsetY", base.offset_y)),
        )


@dataclass(frozen=True)
class ComponentDefaults:
    size: Tuple[float, float]
    mass: float
    reflectance: float
    transmittance: float
    name_prefix: str
    mount_zone: MountZone


COMPONENT_DEFAULTS: Dict[ComponentType, ComponentDefaults] = {
    ComponentType.SOURCE: ComponentDefaults((40.0, 20.0), 200.0, 0.0, 0.0, "S", MountZone(False, 15.0, 15.0)),
    ComponentType.MIRROR: ComponentDefaults((25.0, 5.0), 120.0, 1.0, 0.0, "M", MountZone(False, 10.0, 10.0)),
    ComponentType.BEAM_SPLITTER: ComponentDefaults((25.0, 25.0), 85.0, 0.5, 0.5, "BS", MountZone(False, 12.0, 12.0)),
    ComponentType.LENS: ComponentDefaults((8.0, 30.0), 60.0, 0.02, 0.98, "L", MountZone(False, 8.0, 8.0)),
    ComponentType.WAVEPLATE: ComponentDefaults((20.0, 20.0), 40.0, 0.01, 0.99, "WP", MountZone(False, 10.0, 10.0)),
    ComponentType.FILTER: ComponentDefaults((20.0, 20.0), 30.0, 0.1, 0.9, "F", MountZone(False, 8.0, 8.0)),
    ComponentType.DETECTOR: ComponentDefaults((20.0, 20.0), 150.0, 0.0, 0.0, "D", MountZone(False, 12.0, 12.0)),
}


@dataclass(frozen=True)
class PathConstraint:
    """Fixed optical path length between a component and its partner."""

    partner_id: str
    fold_count: int
    target_path_length: float
    tolerance: float = 5.0
    mirror_ids: Tuple[str, ...] = ()
    mode: ConstraintMode = ConstraintMode.FOLDABLE

    def __post_init__(self) -> None:
        if self.fold_count not in (0, 1, 2):
            raise ValueError(f"fold_count must be 0, 1 or 2 (got {self.fold_count})")
        if self.target_path_length < 0:
            raise ValueError("target_path_length must be non-negative")
        if self.tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        object.__setattr__(self, "mirror_ids", tuple(self.mirror_ids))
        object.__setattr__(self, "mode", ConstraintMode(self.mode))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "partnerId": self.partner_id,
            "foldCount": self.fold_count,
            "targetPathLength": self.target_path_length,
            "tolerance": self.tolerance,
            "mirrorIds": list(self.mirror_ids),
            "mode": self.mode.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PathConstraint":
        mode = data.get("mode") or data.get("foldMode") or ConstraintMode.FOLDABLE.value
        return cls(
            partner_id=str(data["partnerId"]),
            fold_count=int(data.get("foldCount", 0)),
            target_path_length=float(data["targetPathLength"]),
            tolerance=float(data.get("tolerance", 5.0)),
            mirror_ids=tuple(str(m) for m in data.get("mirrorIds", ())),
            mode=ConstraintMode(mode),
        )


@dataclass(frozen=True)
class BoundingBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    corners: Tuple[Point, ...] = ()

    def overlaps(self, other: "BoundingBox") -> bool:
        return not (
            self.max_x < other.min_x
            or self.min_x > other.max_x
            or self.max_y < other.min_y
            or self.min_y > other.max_y
        )

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class Component:
    """An optical element placed on the bench.

    Instances are immutable; edits go through :func:`apply_patch`.
    """

    id: str
    type: ComponentType
    name: str = ""
    position: Point = (0.0, 0.0)
    angle: float = 0.0
    size: Optional[Tuple[float, float]] = None
    mass: Optional[float] = None
    reflectance: Optional[float] = None
    transmittance: Optional[float] = None
    is_fixed: bool = False
    is_angle_fixed: bool = False
    allow_any_angle: bool = False
    emission_angle: Optional[float] = None
    is_shallow_angle: bool = False
    shallow_angle: float = 5.0
    mount_zone: Optional[MountZone] = None
    path_constraints: Tuple[PathConstraint, ...] = ()
    notes: str = ""

    def __post_init__(self) -> None:
        kind = ComponentType.parse(self.type)
        defaults = COMPONENT_DEFAULTS[kind]
        object.__setattr__(self, "type", kind)
        object.__setattr__(self, "position", as_point(self.position))
        object.__setattr__(self, "angle", normalize_angle(self.angle))
        if self.emission_angle is not None:
            object.__setattr__(self, "emission_angle", normalize_angle(self.emission_angle))
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if self.size is None:
            object.__setattr__(self, "size", defaults.size)
        else:
            object.__setattr__(self, "size", (float(self.size[0]), float(self.size[1])))
        if self.mass is None:
            object.__setattr__(self, "mass", defaults.mass)
        if self.reflectance is None:
            object.__setattr__(self, "reflectance", defaults.reflectance)
        if self.transmittance is None:
            object.__setattr__(self, "transmittance", defaults.transmittance)
        if self.mount_zone is None:
            object.__setattr__(self, "mount_zone", defaults.mount_zone)
        object.__setattr__(self, "path_constraints", tuple(self.path_constraints))

    @property
    def ports(self) -> FrozenSet[Port]:
        return _PORTS[self.type]

    def can_receive_beam(self) -> bool:
        return Port.INPUT in self.ports

    def can_output_beam(self) -> bool:
        return bool(self.ports & {Port.OUTPUT, Port.REFLECTED, Port.TRANSMITTED})

    def splits_beam(self) -> bool:
        return {Port.REFLECTED, Port.TRANSMITTED} <= self.ports

    @property
    def is_transmissive(self) -> bool:
        return self.type in TRANSMISSIVE_TYPES

    @property
    def effective_emission_angle(self) -> float:
        return self.emission_angle if self.emission_angle is not None else self.angle

    def emission_direction(self) -> Tuple[float, float]:
        return angle_to_vector(self.effective_emission_angle)

    def _corners(self) -> np.ndarray:
        half_w = self.size[0] / 2.0
        half_h = self.size[1] / 2.0
        rad = deg_to_rad(self.angle)
        rotation = np.array(
            [[np.cos(rad), -np.sin(rad)], [np.sin(rad), np.cos(rad)]],
            dtype=float,
        )
        local = np.array(
            [[-half_w, -half_h], [half_w, -half_h], [half_w, half_h], [-half_w, half_h]],
            dtype=float,
        )
        return local @ rotation.T + np.asarray(self.position, dtype=float)

    def bounding_box(self) -> BoundingBox:
        corners = self._corners()
        mins = corners.min(axis=0)
        maxs = corners.max(axis=0)
        return BoundingBox(
            float(mins[0]),
            float(mins[1]),
            float(maxs[0]),
            float(maxs[1]),
            tuple((float(x), float(y)) for x, y in corners),
        )

    def mount_zone_bounds(self) -> Optional[BoundingBox]:
        zone = self.mount_zone
        if zone is None or not zone.enabled:
            return None
        bbox = self.bounding_box()
        center_x = (bbox.min_x + bbox.max_x) / 2.0 + zone.offset_x
        center_y = (bbox.min_y + bbox.max_y) / 2.0 + zone.offset_y
        half_w = bbox.width / 2.0 + zone.padding_x
        half_h = bbox.height / 2.0 + zone.padding_y
        return BoundingBox(center_x - half_w, center_y - half_h, center_x + half_w, center_y + half_h)

    def contains_point(self, x: float, y: float) -> bool:
        rad = deg_to_rad(-self.angle)
        dx = x - self.position[0]
        dy = y - self.position[1]
        local_x = dx * np.cos(rad) - dy * np.sin(rad)
        local_y = dx * np.sin(rad) + dy * np.cos(rad)
        return abs(local_x) <= self.size[0] / 2.0 and abs(local_y) <= self.size[1] / 2.0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "position": {"x": self.position[0], "y": self.position[1]},
            "angle": self.angle,
            "size": {"width": self.size[0], "height": self.size[1]},
            "mass": self.mass,
            "reflectance": self.reflectance,
            "transmittance": self.transmittance,
            "isFixed": self.is_fixed,
            "isAngleFixed": self.is_angle_fixed,
            "allowAnyAngle": self.allow_any_angle,
            "isShallowAngle": self.is_shallow_angle,
            "shallowAngle": self.shallow_angle,
            "mountZone": self.mount_zone.to_dict(),
            "pathConstraints": [c.to_dict() for c in self.path_constraints],
            "notes": self.notes,
        }
        if self.emission_angle is not None:
            data["emissionAngle"] = self.emission_angle
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Component":
        if "id" not in data or "type" not in data:
            raise ValueError("component record requires 'id' and 'type'")
        kind = ComponentType.parse(data["type"])
        defaults = COMPONENT_DEFAULTS[kind]
        position = data.get("position") or {}
        size = data.get("size")
        constraints = data.get("pathConstraints") or []
        if isinstance(constraints, Mapping):
            # per-component distance settings are not pair constraints
            constraints = []
        return cls(
            id=str(data["id"]),
            type=kind,
            name=str(data.get("name") or ""),
            position=(float(position.get("x", 0.0)), float(position.get("y", 0.0))),
            angle=float(data.get("angle", _default_angle(kind))),
            size=(float(size["width"]), float(size["height"])) if size else None,
            mass=_optional_float(data.get("mass")),
            reflectance=_optional_float(data.get("reflectance")),
            transmittance=_optional_float(data.get("transmittance")),
            is_fixed=bool(data.get("isFixed", False)),
            is_angle_fixed=bool(data.get("isAngleFixed", False)),
            allow_any_angle=bool(data.get("allowAnyAngle", False)),
            emission_angle=_optional_float(data.get("emissionAngle")),
            is_shallow_angle=bool(data.get("isShallowAngle", False)),
            shallow_angle=float(data.get("shallowAngle", 5.0)),
            mount_zone=MountZone.from_dict(data.get("mountZone"), defaults.mount_zone),
            path_constraints=tuple(PathConstraint.from_dict(c) for c in constraints),
            notes=str(data.get("notes") or ""),
        )


def _optional_float(value: object) -> Optional[float]:
    if value is None:
        return None
    return float(value)  # type: ignore[arg-type]


def _default_angle(kind: ComponentType) -> float:
    return 45.0 if kind in REFLECTIVE_TYPES else 0.0


@dataclass(frozen=True)
class ComponentPatch:
    """Field-level update for a component; ``None`` leaves a field untouched."""

    name: Optional[str] = None
    position: Optional[Point] = None
    angle: Optional[float] = None
    size: Optional[Tuple[float, float]] = None
    mass: Optional[float] = None
    reflectance: Optional[float] = None
    transmittance: Optional[float] = None
    is_fixed: Optional[bool] = None
    is_angle_fixed: Optional[bool] = None
    allow_any_angle: Optional[bool] = None
    emission_angle: Optional[float] = None
    is_shallow_angle: Optional[bool] = None
    shallow_angle: Optional[float] = None
    mount_zone: Optional[MountZone] = None
    path_constraints: Optional[Tuple[PathConstraint, ...]] = None
    notes: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def apply_patch(component: Component, patch: ComponentPatch) -> Component:
    """Return a copy of ``component`` with ``patch`` applied."""

    changes = patch.changes()
    if not changes:
        return component
    updated = replace(component, **changes)
    # reflectance + transmittance never exceed unity
    if patch.reflectance is not None:
        updated = replace(updated, transmittance=min(updated.transmittance, 1.0 - updated.reflectance))
    if patch.transmittance is not None:
        updated = replace(updated, reflectance=min(updated.reflectance, 1.0 - updated.transmittance))
    return updated


@dataclass
class IdSequence:
    """Explicit id/name counter threaded through editing calls."""

    counter: int = 0
    names: Dict[str, int] = field(default_factory=dict)

    def next_id(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}_{self.counter}"

    def next_name(self, kind: ComponentType) -> str:
        prefix = COMPONENT_DEFAULTS[kind].name_prefix
        count = self.names.get(prefix, 0) + 1
        self.names[prefix] = count
        return f"{prefix}{count}"


def create_component(
    kind: ComponentType,
    position: Point,
    ids: IdSequence,
    **props: Any,
) -> Component:
    """Create a component of ``kind`` at ``position`` with fresh id and name."""

    kind = ComponentType.parse(kind)
    props.setdefault("angle", _default_angle(kind))
    component_id = props.pop("id", None) or ids.next_id(kind.value)
    name = props.pop("name", None) or ids.next_name(kind)
    return Component(id=component_id, type=kind, name=name, position=position, **props)


__all__ = [
    "BoundingBox",
    "COMPONENT_DEFAULTS",
    "Component",
    "ComponentDefaults",
    "ComponentPatch",
    "ComponentType",
    "ConstraintMode",
    "IdSequence",
    "MountZone",
    "PathConstraint",
    "Port",
    "REFLECTIVE_TYPES",
    "TRANSMISSIVE_TYPES",
    "apply_patch",
    "create_component",
]
