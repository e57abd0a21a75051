"""Immutable snapshot of a bench: components, beams and placement constraints."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .beampath import BeamPath
from .components import Component, ComponentType, PathConstraint
from .errors import LayoutError
from .workspace import KeepOutZone, MountingZone, Workspace


@dataclass(frozen=True)
class ConstrainedPair:
    owner_id: str
    constraint: PathConstraint

    @property
    def partner_id(self) -> str:
        return self.constraint.partner_id


@dataclass(frozen=True)
class Layout:
    components: Mapping[str, Component] = field(default_factory=dict)
    beam_path: BeamPath = field(default_factory=BeamPath)
    workspace: Workspace = field(default_factory=Workspace.default)
    keep_out_zones: Tuple[KeepOutZone, ...] = ()
    mounting_zone: Optional[MountingZone] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "components", dict(self.components))
        object.__setattr__(self, "keep_out_zones", tuple(self.keep_out_zones))

    def component(self, component_id: str) -> Optional[Component]:
        return self.components.get(component_id)

    def component_list(self) -> List[Component]:
        return list(self.components.values())

    def sources(self) -> List[Component]:
        return [c for c in self.components.values() if c.type is ComponentType.SOURCE]

    def with_components(self, updates: Union[Mapping[str, Component], Iterable[Component]]) -> "Layout":
        merged = dict(self.components)
        items = updates.values() if isinstance(updates, Mapping) else updates
        for component in items:
            merged[component.id] = component
        return replace(self, components=merged)

    def without_component(self, component_id: str) -> "Layout":
        remaining = {cid: c for cid, c in self.components.items() if cid != component_id}
        return replace(self, components=remaining)

    def with_beam_path(self, beam_path: BeamPath) -> "Layout":
        return replace(self, beam_path=beam_path)

    def constrained_pairs(self) -> List[ConstrainedPair]:
        """Every path constraint, keyed by the component that declares it."""

        pairs: List[ConstrainedPair] = []
        for component in self.components.values():
            for constraint in component.path_constraints:
                pairs.append(ConstrainedPair(component.id, constraint))
        return pairs

    def constraints_touching(self, component_id: str) -> List[ConstrainedPair]:
        return [
            pair
            for pair in self.constrained_pairs()
            if pair.owner_id == component_id or pair.partner_id == component_id
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "components": [component.to_dict() for component in self.components.values()],
            "beamPath": self.beam_path.to_dict(),
            "constraints": {
                "workspace": self.workspace.to_dict(),
                "keepOutZones": [zone.to_dict() for zone in self.keep_out_zones],
                "mountingZone": None if self.mounting_zone is None else self.mounting_zone.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Layout":
        if not isinstance(data, Mapping):
            raise LayoutError("layout document must be a JSON object")
        try:
            records = data.get("components") or []
            if isinstance(records, Mapping):
                records = list(records.values())
            components = [Component.from_dict(record) for record in records]
            beam_path = BeamPath.from_dict(data.get("beamPath"))
            constraints = data.get("constraints") or {}
            workspace_data = constraints.get("workspace")
            workspace = Workspace.from_dict(workspace_data) if workspace_data else Workspace.default()
            zones = tuple(KeepOutZone.from_dict(zone) for zone in constraints.get("keepOutZones") or [])
            mounting = MountingZone.from_dict(constraints.get("mountingZone"))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise LayoutError(f"malformed layout document: {exc}") from exc

        ids = [component.id for component in components]
        if len(ids) != len(set(ids)):
            raise LayoutError("duplicate component ids in layout document")
        check = beam_path.validate(components)
        if not check.valid:
            raise LayoutError("; ".join(check.errors))
        return cls({c.id: c for c in components}, beam_path, workspace, zones, mounting)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "Layout":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LayoutError(f"invalid JSON: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Layout":
        return cls.from_json(Path(path).read_text(encoding="utf-8"))


__all__ = ["ConstrainedPair", "Layout"]
