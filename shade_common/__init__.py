"""Public interface for the shading helper package."""

from ._version import __version__
from .config import (
    PluginDeclaration,
    RelocationRule,
    ShadeConfig,
    load_config,
)
from .coordinates import Coordinate
from .environment import require_env_path
from .github_output import write_github_output
from .errors import DependencyResolutionError, RelocationError, ShadeError
from .publishing import (
    Publication,
    plan_publications,
    publish_artifactory,
    publish_local,
)
from .resolution import DependencyResolver, ResolvedArtifact
from .shading import ShadeResult, build_shaded_artifact

__all__ = [
    "__version__",
    "build_shaded_artifact",
    "Coordinate",
    "DependencyResolutionError",
    "DependencyResolver",
    "load_config",
    "plan_publications",
    "PluginDeclaration",
    "Publication",
    "publish_artifactory",
    "publish_local",
    "RelocationError",
    "RelocationRule",
    "require_env_path",
    "ResolvedArtifact",
    "ShadeConfig",
    "ShadeError",
    "ShadeResult",
    "write_github_output",
]
