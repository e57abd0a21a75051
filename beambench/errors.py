from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category attached to every rejected engine result."""

    CONNECTION_INVALID = "connection_invalid"
    GEOMETRY_INFEASIBLE = "geometry_infeasible"
    LENGTH_MISMATCH = "length_mismatch"
    CONSTRAINT_BLOCKED = "constraint_blocked"


class LayoutError(ValueError):
    """Raised when a layout document cannot be turned into a layout."""


__all__ = ["ErrorKind", "LayoutError"]
