"""Configuration models and loader for the shading helper.

This module provides frozen dataclasses and a loader function for parsing the
TOML document that describes the project output, the to-be-shaded dependency
bucket, the relocated packages and the publishing target.

Usage
-----
Load the configuration that sits next to the project::

    from pathlib import Path
    from shade_common.config import load_config

    config = load_config(Path("shade.toml"))
    for rule in config.relocation_rules():
        print(f"{rule.pattern} -> {rule.shaded_pattern}")
"""

from __future__ import annotations

import dataclasses
import re
import typing as typ
from pathlib import Path

import tomllib

from .coordinates import Coordinate
from .environment import optional_env_path
from .errors import ShadeError

__all__ = [
    "DEFAULT_REPOSITORY",
    "DependencySet",
    "PluginDeclaration",
    "ProjectConfig",
    "PublishingConfig",
    "RelocationRule",
    "RepositoryConfig",
    "ShadeConfig",
    "load_config",
]

DEFAULT_REPOSITORY = "https://repo.maven.apache.org/maven2"

_PACKAGE_NAME = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")
_PLUGIN_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.\-_]*$")


@dataclasses.dataclass(frozen=True, slots=True)
class RelocationRule:
    """Move every class under ``pattern`` beneath ``shaded_pattern``.

    Parameters
    ----------
    pattern : str
        Dotted source package prefix, e.g. ``"org.apache"``.
    shaded_pattern : str
        Dotted destination prefix, always ``pattern`` nested under the
        project's shading namespace.
    excludes : tuple[str, ...], optional
        Dotted class or package prefixes under ``pattern`` that stay put.

    Examples
    --------
    >>> rule = RelocationRule("org.apache", "acme.shaded.org.apache")
    >>> rule.path_pattern, rule.shaded_path_pattern
    ('org/apache', 'acme/shaded/org/apache')
    """

    pattern: str
    shaded_pattern: str
    excludes: tuple[str, ...] = ()

    @property
    def path_pattern(self) -> str:
        """Source prefix in internal (``/`` separated) form."""
        return self.pattern.replace(".", "/")

    @property
    def shaded_path_pattern(self) -> str:
        """Destination prefix in internal (``/`` separated) form."""
        return self.shaded_pattern.replace(".", "/")

    @property
    def path_excludes(self) -> tuple[str, ...]:
        """Excluded prefixes in internal form."""
        return tuple(exclude.replace(".", "/") for exclude in self.excludes)


@dataclasses.dataclass(frozen=True, slots=True)
class ProjectConfig:
    """Identity and compiled output of the project being packaged."""

    group: str
    name: str
    version: str
    workspace: Path
    outputs: tuple[Path, ...]
    libs_dir: Path


@dataclasses.dataclass(frozen=True, slots=True)
class DependencySet:
    """Dependency buckets declared by the project.

    ``shaded`` members are merged into the archive and relocated;
    ``implementation`` members are only recorded in the published POM.
    """

    shaded: tuple[Coordinate, ...]
    implementation: tuple[Coordinate, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryConfig:
    """Repositories consulted when fetching the shaded dependency set."""

    urls: tuple[str, ...] = (DEFAULT_REPOSITORY,)
    cache_dir: Path = Path(".shade/cache")
    offline: bool = False
    timeout: float = 30.0


@dataclasses.dataclass(frozen=True, slots=True)
class PluginDeclaration:
    """Gradle plugin bundled in the archive and announced by a descriptor."""

    id: str
    implementation_class: str
    display_name: str | None = None
    description: str | None = None

    @property
    def descriptor_path(self) -> str:
        """Archive entry that maps the plugin id to its implementation."""
        return f"META-INF/gradle-plugins/{self.id}.properties"


@dataclasses.dataclass(frozen=True, slots=True)
class PublishingConfig:
    """Where the shaded archive is handed off after a build."""

    publication: str = "pluginMaven"
    local_repository: Path = Path("build/repo")
    artifactory_repository: str | None = None
    artifactory_server: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ShadeConfig:
    """Concrete configuration produced by :func:`load_config`.

    Parameters
    ----------
    project : ProjectConfig
        Coordinates and compiled output directories of the project.
    namespace : str
        Dotted shading namespace owned by the project.
    packages : tuple[str, ...]
        Ordered package prefixes to relocate beneath ``namespace``.
    dependencies : DependencySet
        The to-be-shaded bucket and the ordinary dependencies.
    repositories : RepositoryConfig
        Repository locations and download cache.
    publishing : PublishingConfig
        Publication name and repositories for the handoff.
    plugins : tuple[PluginDeclaration, ...], optional
        Gradle plugins whose descriptors are written into the archive.
    excludes : dict[str, tuple[str, ...]], optional
        Per-package exclusions from relocation.
    manifest : dict[str, str], optional
        Extra manifest attributes.
    merge_service_files : bool, default=True
        Merge ``META-INF/services`` entries instead of keeping the first.
    reproducible : bool, default=True
        Stamp every archive entry with a fixed timestamp.

    Examples
    --------
    >>> from pathlib import Path  # doctest: +SKIP
    >>> config = load_config(Path("shade.toml"))  # doctest: +SKIP
    >>> config.archive_name  # doctest: +SKIP
    'gradle-docker-plugin-9.0.1-pega.jar'
    """

    project: ProjectConfig
    namespace: str
    packages: tuple[str, ...]
    dependencies: DependencySet
    repositories: RepositoryConfig
    publishing: PublishingConfig
    plugins: tuple[PluginDeclaration, ...] = ()
    excludes: dict[str, tuple[str, ...]] = dataclasses.field(default_factory=dict)
    manifest: dict[str, str] = dataclasses.field(default_factory=dict)
    merge_service_files: bool = True
    reproducible: bool = True

    @property
    def archive_name(self) -> str:
        """File name of the shaded archive; no classifier is applied."""
        return f"{self.project.name}-{self.project.version}.jar"

    @property
    def archive_path(self) -> Path:
        """Absolute path of the shaded archive."""
        return self.project.libs_dir / self.archive_name

    def relocation_rules(self) -> tuple[RelocationRule, ...]:
        """Return the relocation rules in declaration order."""
        return tuple(
            RelocationRule(
                pattern=package,
                shaded_pattern=f"{self.namespace}.{package}",
                excludes=self.excludes.get(package, ()),
            )
            for package in self.packages
        )


def load_config(config_file: Path, workspace: Path | None = None) -> ShadeConfig:
    """Load shading configuration from ``config_file``.

    Parameters
    ----------
    config_file : Path
        Path to the TOML configuration file.
    workspace : Path | None, optional
        Root that relative paths resolve against. Defaults to
        ``SHADE_WORKSPACE`` and then the directory holding ``config_file``.

    Returns
    -------
    ShadeConfig
        Fully validated, immutable configuration.

    Raises
    ------
    FileNotFoundError
        Raised when the configuration file is absent at ``config_file``.
    ShadeError
        Raised when required keys are missing or values are invalid.
    """
    config_file = Path(config_file)
    if not config_file.is_file():
        message = f"Configuration file not found at {config_file}"
        raise FileNotFoundError(message)

    data = _load_toml(config_file)
    root = (
        workspace
        or optional_env_path("SHADE_WORKSPACE")
        or config_file.resolve().parent
    )
    project_section = _section(data, "project", config_file)
    shading_section = _section(data, "shading", config_file)
    _require_keys(project_section, {"group", "name", "version"}, "project", config_file)
    _require_keys(shading_section, {"namespace", "packages"}, "shading", config_file)

    namespace = _validate_package(shading_section["namespace"], "shading.namespace")
    packages = _make_packages(shading_section["packages"], namespace, config_file)
    excludes = _make_excludes(shading_section.get("excludes", {}), packages)

    return ShadeConfig(
        project=_make_project(project_section, root),
        namespace=namespace,
        packages=packages,
        dependencies=_make_dependencies(data.get("dependencies", {}), config_file),
        repositories=_make_repositories(data.get("repositories", {}), root),
        publishing=_make_publishing(data.get("publishing", {}), root),
        plugins=_make_plugins(data.get("plugins", []), config_file),
        excludes=excludes,
        manifest={str(key): str(value) for key, value in data.get("manifest", {}).items()},
        merge_service_files=bool(shading_section.get("merge_service_files", True)),
        reproducible=bool(shading_section.get("reproducible", True)),
    )


def _load_toml(path: Path) -> dict[str, typ.Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        message = f"Invalid TOML in {path}: {exc}"
        raise ShadeError(message) from exc


def _section(
    data: dict[str, typ.Any], name: str, config_path: Path
) -> dict[str, typ.Any]:
    try:
        section = data[name]
    except KeyError as exc:
        message = f"Missing configuration key in {config_path}: {exc}"
        raise ShadeError(message) from exc
    if not isinstance(section, dict):
        message = f"[{name}] must be a table in {config_path}"
        raise ShadeError(message)
    return section


def _require_keys(
    section: dict[str, typ.Any], keys: set[str], label: str, config_path: Path
) -> None:
    """Ensure ``section`` defines ``keys``."""
    if missing := sorted(key for key in keys if key not in section):
        joined = ", ".join(missing)
        message = (
            "Missing required key(s) "
            f"{joined} in [{label}] section of {config_path}"
        )
        raise ShadeError(message)


def _validate_package(value: object, label: str) -> str:
    if not isinstance(value, str) or not _PACKAGE_NAME.match(value):
        message = f"Invalid package name for {label}: {value!r}"
        raise ShadeError(message)
    return value


def _covers(prefix: str, name: str) -> bool:
    return name == prefix or name.startswith(f"{prefix}.")


def _make_packages(
    value: object, namespace: str, config_path: Path
) -> tuple[str, ...]:
    if not isinstance(value, list) or not value:
        message = f"shading.packages must be a non-empty list in {config_path}"
        raise ShadeError(message)
    packages: list[str] = []
    for index, entry in enumerate(value, start=1):
        package = _validate_package(entry, f"shading.packages entry #{index}")
        if package in packages:
            message = f"Duplicate relocation package '{package}' in {config_path}"
            raise ShadeError(message)
        if _covers(package, namespace):
            message = (
                f"Shading namespace '{namespace}' lies under relocated package "
                f"'{package}'; relocated classes would be relocated again"
            )
            raise ShadeError(message)
        packages.append(package)
    return tuple(packages)


def _make_excludes(
    value: object, packages: tuple[str, ...]
) -> dict[str, tuple[str, ...]]:
    if not isinstance(value, dict):
        message = "shading.excludes must be a table of package = [prefixes]"
        raise ShadeError(message)
    excludes: dict[str, tuple[str, ...]] = {}
    for package, entries in value.items():
        if package not in packages:
            message = f"shading.excludes names unknown package '{package}'"
            raise ShadeError(message)
        if isinstance(entries, str):
            entries = [entries]
        prefixes = tuple(
            _validate_package(entry, f"shading.excludes.{package}")
            for entry in entries
        )
        if stray := [prefix for prefix in prefixes if not _covers(package, prefix)]:
            message = (
                f"shading.excludes.{package} entries must lie under "
                f"'{package}': {', '.join(stray)}"
            )
            raise ShadeError(message)
        excludes[package] = prefixes
    return excludes


def _make_project(section: dict[str, typ.Any], root: Path) -> ProjectConfig:
    outputs = section.get("outputs", ["build/classes/java/main", "build/resources/main"])
    if isinstance(outputs, str):
        outputs = [outputs]
    return ProjectConfig(
        group=str(section["group"]),
        name=str(section["name"]),
        version=str(section["version"]),
        workspace=root,
        outputs=tuple(root / output for output in outputs),
        libs_dir=root / section.get("libs_dir", "build/libs"),
    )


def _make_coordinates(
    value: object, label: str, config_path: Path
) -> tuple[Coordinate, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        message = f"dependencies.{label} must be a list of coordinates in {config_path}"
        raise ShadeError(message)
    coordinates: list[Coordinate] = []
    for entry in value:
        if not isinstance(entry, str):
            message = f"dependencies.{label} entries must be strings in {config_path}"
            raise ShadeError(message)
        coordinate = Coordinate.parse(entry)
        if coordinate not in coordinates:
            coordinates.append(coordinate)
    return tuple(coordinates)


def _make_dependencies(
    section: dict[str, typ.Any], config_path: Path
) -> DependencySet:
    return DependencySet(
        shaded=_make_coordinates(section.get("shaded", []), "shaded", config_path),
        implementation=_make_coordinates(
            section.get("implementation", []), "implementation", config_path
        ),
    )


def _make_repositories(section: dict[str, typ.Any], root: Path) -> RepositoryConfig:
    urls = section.get("urls", [DEFAULT_REPOSITORY])
    if isinstance(urls, str):
        urls = [urls]
    return RepositoryConfig(
        urls=tuple(_normalise_repository(str(url), root) for url in urls),
        cache_dir=(root / section.get("cache_dir", ".shade/cache")).expanduser(),
        offline=bool(section.get("offline", False)),
        timeout=float(section.get("timeout", 30.0)),
    )


def _normalise_repository(url: str, root: Path) -> str:
    """Return ``url`` unchanged or a local directory resolved against ``root``."""
    if "://" in url:
        return url.rstrip("/")
    return (root / url).expanduser().as_posix()


def _make_publishing(section: dict[str, typ.Any], root: Path) -> PublishingConfig:
    return PublishingConfig(
        publication=section.get("publication", "pluginMaven"),
        local_repository=root / section.get("local_repository", "build/repo"),
        artifactory_repository=section.get("artifactory_repository"),
        artifactory_server=section.get("artifactory_server"),
    )


def _make_plugins(
    value: object, config_path: Path
) -> tuple[PluginDeclaration, ...]:
    if not isinstance(value, list):
        message = f"[[plugins]] must be an array of tables in {config_path}"
        raise ShadeError(message)
    plugins: list[PluginDeclaration] = []
    for index, entry in enumerate(value, start=1):
        if not isinstance(entry, dict):
            message = (
                "Plugin entries must be tables of key/value pairs "
                f"(entry #{index} in {config_path})"
            )
            raise ShadeError(message)
        _require_keys(
            entry, {"id", "implementation_class"}, f"plugins #{index}", config_path
        )
        plugin_id = entry["id"]
        if not isinstance(plugin_id, str) or not _PLUGIN_ID.match(plugin_id):
            message = f"Invalid plugin id {plugin_id!r} in {config_path}"
            raise ShadeError(message)
        if any(plugin.id == plugin_id for plugin in plugins):
            message = f"Duplicate plugin id '{plugin_id}' in {config_path}"
            raise ShadeError(message)
        plugins.append(
            PluginDeclaration(
                id=plugin_id,
                implementation_class=_validate_package(
                    entry["implementation_class"], f"plugins.{plugin_id}"
                ),
                display_name=entry.get("display_name"),
                description=entry.get("description"),
            )
        )
    return tuple(plugins)
