"""Aggregate checks read by the external layout optimizer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .components import BoundingBox, Component
from .folds import calculate, determine_fold_count
from .geometry import Point
from .layout import Layout
from .workspace import KeepOutZone, Rect, center_of_mass, component_overlaps_zone, is_point_in_zone

logger = logging.getLogger(__name__)


class ViolationType(str, Enum):
    KEEPOUT = "keepout"
    BOUNDARY = "boundary"
    MOUNT_ZONE = "mountZone"
    FOLD_COUNT = "foldCount"
    PATH_LENGTH = "pathLength"


@dataclass(frozen=True)
class Violation:
    type: ViolationType
    component_id: str
    message: str
    zone_id: Optional[str] = None
    other_component_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "componentId": self.component_id,
            "message": self.message,
        }
        if self.zone_id is not None:
            data["zoneId"] = self.zone_id
        if self.other_component_id is not None:
            data["otherComponentId"] = self.other_component_id
        return data


def _zone_box(zone: Rect) -> BoundingBox:
    return BoundingBox(zone.x, zone.y, zone.max_x, zone.max_y)


def _mount_zone_violations(
    component: Component,
    others: Sequence[Component],
    workspace: Rect,
    zones: Sequence[KeepOutZone],
    found: List[Violation],
) -> None:
    bounds = component.mount_zone_bounds()
    if bounds is None:
        return
    for zone in zones:
        if zone.is_active and bounds.overlaps(_zone_box(zone.bounds)):
            found.append(
                Violation(
                    ViolationType.MOUNT_ZONE,
                    component.id,
                    f'{component.name}\'s mount zone overlaps keep-out zone "{zone.name}"',
                    zone_id=zone.id,
                )
            )

    def _reported_from_other_side(other_id: str) -> bool:
        return any(
            v.type is ViolationType.MOUNT_ZONE
            and v.component_id == other_id
            and v.other_component_id == component.id
            for v in found
        )

    for other in others:
        if other.id == component.id:
            continue
        if bounds.overlaps(other.bounding_box()) and not _reported_from_other_side(other.id):
            found.append(
                Violation(
                    ViolationType.MOUNT_ZONE,
                    component.id,
                    f"{component.name}'s mount zone overlaps {other.name}",
                    other_component_id=other.id,
                )
            )
        other_bounds = other.mount_zone_bounds()
        if other_bounds is not None and bounds.overlaps(other_bounds) and not _reported_from_other_side(other.id):
            found.append(
                Violation(
                    ViolationType.MOUNT_ZONE,
                    component.id,
                    f"{component.name}'s mount zone overlaps {other.name}'s mount zone",
                    other_component_id=other.id,
                )
            )

    if not workspace.encloses(bounds):
        found.append(
            Violation(
                ViolationType.MOUNT_ZONE,
                component.id,
                f"{component.name}'s mount zone is outside workspace boundaries",
            )
        )


def check_constraint_violations(
    components: Iterable[Component],
    workspace: Rect,
    keep_out_zones: Sequence[KeepOutZone] = (),
) -> List[Violation]:
    """Keep-out overlaps, out-of-bounds bodies and mount-zone clashes."""

    items = list(components)
    found: List[Violation] = []
    for component in items:
        for zone in keep_out_zones:
            if zone.is_active and component_overlaps_zone(component, zone.bounds):
                found.append(
                    Violation(
                        ViolationType.KEEPOUT,
                        component.id,
                        f'{component.name} overlaps keep-out zone "{zone.name}"',
                        zone_id=zone.id,
                    )
                )
        if not workspace.encloses(component.bounding_box()):
            found.append(
                Violation(
                    ViolationType.BOUNDARY,
                    component.id,
                    f"{component.name} is outside workspace boundaries",
                )
            )
        _mount_zone_violations(component, items, workspace, keep_out_zones, found)
    return found


def check_path_constraints(layout: Layout) -> List[Violation]:
    """Fold-count drift and realised path length per constrained pair.

    The realised length is read from the beam graph when a path exists,
    otherwise from a fresh fold solve.
    """

    found: List[Violation] = []
    for pair in layout.constrained_pairs():
        owner = layout.component(pair.owner_id)
        partner = layout.component(pair.partner_id)
        if owner is None or partner is None:
            continue
        constraint = pair.constraint
        required = determine_fold_count(owner.angle, partner.angle)
        if required != constraint.fold_count:
            found.append(
                Violation(
                    ViolationType.FOLD_COUNT,
                    owner.id,
                    f"{owner.name}-{partner.name} constraint expects {constraint.fold_count} folds "
                    f"but the orientations need {required}",
                    other_component_id=partner.id,
                )
            )
        realised = layout.beam_path.calculate_path_length_between(owner.id, partner.id)
        if realised is None:
            geometry = calculate(owner, partner, constraint.target_path_length)
            if not geometry.valid:
                found.append(
                    Violation(
                        ViolationType.PATH_LENGTH,
                        owner.id,
                        f"{owner.name}-{partner.name}: {geometry.error}",
                        other_component_id=partner.id,
                    )
                )
                continue
            realised = geometry.total_length
        if abs(realised - constraint.target_path_length) > constraint.tolerance:
            found.append(
                Violation(
                    ViolationType.PATH_LENGTH,
                    owner.id,
                    f"{owner.name}-{partner.name} path is {realised:.1f}mm, "
                    f"target {constraint.target_path_length:.1f}mm",
                    other_component_id=partner.id,
                )
            )
    return found


def segment_validity(layout: Layout) -> Dict[str, bool]:
    return {segment.id: segment.is_valid for segment in layout.beam_path}


@dataclass(frozen=True)
class LayoutSummary:
    total_path_length: float
    center_of_mass: Optional[Point]
    total_mass: float
    is_com_in_mounting_zone: bool
    violations: Tuple[Violation, ...]
    invalid_segment_ids: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPathLength": self.total_path_length,
            "centerOfMass": None
            if self.center_of_mass is None
            else {"x": self.center_of_mass[0], "y": self.center_of_mass[1]},
            "totalMass": self.total_mass,
            "isCoMInMountingZone": self.is_com_in_mounting_zone,
            "violations": [v.to_dict() for v in self.violations],
            "invalidSegmentIds": list(self.invalid_segment_ids),
        }


def summarize(layout: Layout) -> LayoutSummary:
    components = layout.component_list()
    mass = center_of_mass(components)
    zone = layout.mounting_zone.bounds if layout.mounting_zone is not None else None
    violations = check_constraint_violations(components, layout.workspace, layout.keep_out_zones)
    violations += check_path_constraints(layout)
    if violations:
        logger.info("%s violation(s) found", len(violations))
    return LayoutSummary(
        total_path_length=layout.beam_path.total_path_length(),
        center_of_mass=mass.position,
        total_mass=mass.total_mass,
        is_com_in_mounting_zone=is_point_in_zone(mass.position, zone),
        violations=tuple(violations),
        invalid_segment_ids=tuple(s.id for s in layout.beam_path.invalid_segments()),
    )


__all__ = [
    "LayoutSummary",
    "Violation",
    "ViolationType",
    "check_constraint_violations",
    "check_path_constraints",
    "segment_validity",
    "summarize",
]
