"""Workspace rectangle, keep-out and mounting zones, boundary ray-casting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .components import BoundingBox, Component
from .config import get_engine_config
from .geometry import Point, add, angle_to_vector, distance, scale, segment_intersection


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("rectangle width and height must be non-negative")

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    def contains(self, point: Point) -> bool:
        return self.x <= point[0] <= self.max_x and self.y <= point[1] <= self.max_y

    def overlaps(self, box: BoundingBox) -> bool:
        return not (box.max_x < self.x or box.min_x > self.max_x or box.max_y < self.y or box.min_y > self.max_y)

    def encloses(self, box: BoundingBox) -> bool:
        return box.min_x >= self.x and box.min_y >= self.y and box.max_x <= self.max_x and box.max_y <= self.max_y

    def edges(self) -> List[Tuple[Point, Point]]:
        top_left = (self.x, self.y)
        top_right = (self.max_x, self.y)
        bottom_right = (self.max_x, self.max_y)
        bottom_left = (self.x, self.max_y)
        return [
            (top_left, top_right),
            (top_right, bottom_right),
            (bottom_right, bottom_left),
            (bottom_left, top_left),
        ]

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rect":
        return cls(
            float(data.get("x", 0.0)),
            float(data.get("y", 0.0)),
            float(data["width"]),
            float(data["height"]),
        )


class Workspace(Rect):
    """The bench area; beams without a downstream component stop at its edge."""

    @classmethod
    def default(cls) -> "Workspace":
        return cls(0.0, 0.0, 600.0, 600.0)


@dataclass(frozen=True)
class KeepOutZone:
    id: str
    bounds: Rect
    name: str = ""
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "bounds": self.bounds.to_dict(), "isActive": self.is_active}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KeepOutZone":
        return cls(
            id=str(data["id"]),
            bounds=Rect.from_dict(data["bounds"]),
            name=str(data.get("name") or data["id"]),
            is_active=bool(data.get("isActive", True)),
        )


@dataclass(frozen=True)
class MountingZone:
    bounds: Rect

    def to_dict(self) -> Dict[str, Any]:
        return {"bounds": self.bounds.to_dict()}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["MountingZone"]:
        if not data:
            return None
        return cls(Rect.from_dict(data["bounds"]))


def find_boundary_intersection(start: Point, angle: float, workspace: Rect) -> Point:
    """Closest point where a ray from ``start`` along ``angle`` crosses the workspace edge.

    Hits closer than the configured minimum distance are ignored so a beam
    starting on the edge does not stop immediately.  When nothing is hit the
    beam is cut at a fixed fallback distance.
    """

    cfg = get_engine_config()
    direction = angle_to_vector(angle)
    far = add(start, scale(direction, cfg.boundary_ray_length))
    closest: Optional[Point] = None
    closest_dist = float("inf")
    for edge_start, edge_end in workspace.edges():
        hit = segment_intersection(start, far, edge_start, edge_end)
        if hit is None:
            continue
        dist = distance(start, hit)
        if cfg.boundary_min_distance < dist < closest_dist:
            closest = hit
            closest_dist = dist
    if closest is None:
        return add(start, scale(direction, cfg.boundary_fallback_distance))
    return closest


@dataclass(frozen=True)
class MassSummary:
    position: Optional[Point]
    total_mass: float


def center_of_mass(components: Iterable[Component]) -> MassSummary:
    items = list(components)
    if not items:
        return MassSummary(None, 0.0)
    masses = np.asarray([c.mass for c in items], dtype=float)
    total = float(masses.sum())
    if total <= 0.0:
        return MassSummary(None, total)
    positions = np.asarray([c.position for c in items], dtype=float)
    com = np.average(positions, axis=0, weights=masses)
    return MassSummary((float(com[0]), float(com[1])), total)


def is_point_in_zone(point: Optional[Point], zone: Optional[Rect]) -> bool:
    if point is None or zone is None:
        return False
    return zone.contains(point)


def component_overlaps_zone(component: Component, zone: Rect) -> bool:
    return zone.overlaps(component.bounding_box())


__all__ = [
    "KeepOutZone",
    "MassSummary",
    "MountingZone",
    "Rect",
    "Workspace",
    "center_of_mass",
    "component_overlaps_zone",
    "find_boundary_intersection",
    "is_point_in_zone",
]
