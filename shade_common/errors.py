"""Exception hierarchy shared by the shading toolchain."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from .coordinates import Coordinate

__all__ = [
    "ArtifactNotFoundError",
    "DependencyResolutionError",
    "RelocationError",
    "ShadeError",
]


class ShadeError(RuntimeError):
    """Raised when the shading pipeline cannot continue."""


class DependencyResolutionError(ShadeError):
    """Raised when a declared or transitive dependency cannot be resolved."""


class ArtifactNotFoundError(DependencyResolutionError):
    """Raised when no repository provides a file for ``coordinate``."""

    def __init__(self, message: str, coordinate: Coordinate) -> None:
        super().__init__(message)
        self.coordinate = coordinate


class RelocationError(ShadeError):
    """Raised when a class file cannot be relocated."""
