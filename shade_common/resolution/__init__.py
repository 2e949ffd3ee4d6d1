"""Dependency resolution for the to-be-shaded bucket."""

from .pom import Pom, PomDependency, parse_pom, render_pom
from .resolver import DependencyResolver, ResolvedArtifact

__all__ = [
    "DependencyResolver",
    "Pom",
    "PomDependency",
    "ResolvedArtifact",
    "parse_pom",
    "render_pom",
]
