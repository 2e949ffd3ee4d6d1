"""Transitive resolution of the to-be-shaded dependency set.

Artefacts are looked up in a local cache laid out like a Maven repository and
fetched from the configured repositories on a miss. Repositories are either
HTTP(S) URLs, fetched with :mod:`httpx`, or local directories.

Version conflicts follow Gradle's rule: the highest requested version of a
module wins, and the graph is walked again with that version pinned until no
further upgrade is requested.
"""

from __future__ import annotations

import collections
import dataclasses
import hashlib
import os
import sys
import tempfile
import typing as typ
from pathlib import Path

import httpx

from ..coordinates import Coordinate, version_key
from ..errors import ArtifactNotFoundError, DependencyResolutionError
from .pom import Pom, PomDependency, interpolate, parse_pom

if typ.TYPE_CHECKING:
    from ..config import RepositoryConfig

__all__ = ["DependencyResolver", "ResolvedArtifact"]

_TRANSITIVE_SCOPES = {"compile", "runtime"}
_NO_ARCHIVE_PACKAGING = {"pom"}
_MAX_PARENT_DEPTH = 32


@dataclasses.dataclass(slots=True)
class _FetchAttempt:
    location: str
    outcome: str


@dataclasses.dataclass(frozen=True, slots=True)
class ResolvedArtifact:
    """A member of the resolved dependency set.

    Attributes
    ----------
    coordinate : Coordinate
        Selected coordinate after conflict resolution.
    path : Path | None
        Cached archive, or ``None`` for POM-only modules.
    depth : int
        Distance from the declared dependency set (``0`` for declared entries).
    requested_by : Coordinate | None
        Module that pulled this artefact in, ``None`` when declared directly.
    """

    coordinate: Coordinate
    path: Path | None
    depth: int
    requested_by: Coordinate | None = None


@dataclasses.dataclass(slots=True)
class _EffectivePom:
    coordinate: Coordinate
    packaging: str
    dependencies: list[PomDependency]


@dataclasses.dataclass(slots=True)
class _Node:
    coordinate: Coordinate
    exclusions: frozenset[tuple[str, str]]
    depth: int
    requested_by: Coordinate | None


class DependencyResolver:
    """Fetch and resolve Maven coordinates.

    Parameters
    ----------
    repositories : Sequence[str]
        Repository URLs or local directories, consulted in order.
    cache_dir : Path
        Local cache that mirrors the Maven repository layout.
    client : httpx.Client | None, optional
        HTTP client to use; one is created lazily when omitted.
    offline : bool, default=False
        Skip remote repositories and rely on the cache and local directories.
    timeout : float, default=30.0
        Timeout in seconds for the lazily created client.

    Examples
    --------
    >>> with DependencyResolver(["/srv/m2"], Path(".shade/cache")) as resolver:  # doctest: +SKIP
    ...     artifacts = resolver.resolve([Coordinate.parse("org.ow2.asm:asm:9.4")])
    """

    def __init__(
        self,
        repositories: typ.Sequence[str],
        cache_dir: Path,
        *,
        client: httpx.Client | None = None,
        offline: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.repositories = tuple(repositories)
        self.cache_dir = Path(cache_dir)
        self.offline = offline
        self.timeout = timeout
        self._client = client
        self._owns_client = False
        self._poms: dict[Coordinate, Pom] = {}
        self._effective: dict[Coordinate, _EffectivePom] = {}

    @classmethod
    def from_config(
        cls,
        config: RepositoryConfig,
        *,
        client: httpx.Client | None = None,
        offline: bool | None = None,
    ) -> DependencyResolver:
        """Build a resolver from the ``[repositories]`` configuration."""
        return cls(
            config.urls,
            config.cache_dir,
            client=client,
            offline=config.offline if offline is None else offline,
            timeout=config.timeout,
        )

    def __enter__(self) -> DependencyResolver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client when this resolver created it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            self._owns_client = False

    @property
    def client(self) -> httpx.Client:
        """HTTP client used for remote repositories."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self._client

    def fetch(self, coordinate: Coordinate) -> Path:
        """Return the cached file for ``coordinate``, downloading it if needed.

        Raises
        ------
        DependencyResolutionError
            Raised when no repository provides the artefact; the message lists
            every location attempted.
        """
        relative = coordinate.repository_path()
        cached = self.cache_dir / relative
        if cached.is_file():
            return cached

        attempts: list[_FetchAttempt] = []
        for repository in self.repositories:
            if _is_remote(repository):
                attempt = self._fetch_remote(repository, relative, cached)
            else:
                attempt = self._fetch_local(repository, relative, cached)
            if attempt is None:
                return cached
            attempts.append(attempt)

        attempt_lines = ", ".join(
            f"{attempt.location!r} -> {attempt.outcome}" for attempt in attempts
        )
        message = (
            f"Could not resolve {coordinate}. "
            f"Attempts=[{attempt_lines or 'no repositories configured'}]"
        )
        raise ArtifactNotFoundError(message, coordinate)

    def _fetch_local(
        self, repository: str, relative: str, cached: Path
    ) -> _FetchAttempt | None:
        root = Path(repository.removeprefix("file://"))
        source = root / relative
        if not source.is_file():
            return _FetchAttempt(source.as_posix(), "not found")
        _store(cached, source.read_bytes())
        return None

    def _fetch_remote(
        self, repository: str, relative: str, cached: Path
    ) -> _FetchAttempt | None:
        url = f"{repository}/{relative}"
        if self.offline:
            return _FetchAttempt(url, "skipped (offline)")
        try:
            response = self.client.get(url)
            if response.status_code == httpx.codes.NOT_FOUND:
                return _FetchAttempt(url, "not found")
            response.raise_for_status()
            payload = response.content
            self._verify_sha1(url, payload)
        except httpx.HTTPError as exc:
            return _FetchAttempt(url, f"failed ({exc})")
        _store(cached, payload)
        print(f"Downloaded {url}")
        return None

    def _verify_sha1(self, url: str, payload: bytes) -> None:
        response = self.client.get(f"{url}.sha1")
        if response.status_code != httpx.codes.OK:
            return
        text = response.text.strip()
        expected = text.split()[0].lower() if text else ""
        actual = hashlib.sha1(payload).hexdigest()  # noqa: S324 - repository checksum format
        if expected and expected != actual:
            message = f"Checksum mismatch for {url}: expected {expected}, got {actual}"
            raise DependencyResolutionError(message)

    def _load_pom(self, coordinate: Coordinate) -> Pom:
        pom_coordinate = coordinate.pom()
        if (pom := self._poms.get(pom_coordinate)) is None:
            path = self.fetch(pom_coordinate)
            pom = parse_pom(path.read_bytes(), str(pom_coordinate))
            self._poms[pom_coordinate] = pom
        return pom

    def effective_pom(self, coordinate: Coordinate) -> _EffectivePom:
        """Return ``coordinate``'s POM with parents, properties and management applied."""
        key = coordinate.pom()
        if (effective := self._effective.get(key)) is not None:
            return effective

        chain = self._pom_chain(coordinate)
        pom = chain[0]
        properties = _merged_properties(chain, coordinate)
        dependencies = _merge_declarations(pom.dependencies for pom in chain)
        managed = _merge_declarations(pom.managed for pom in chain)
        managed = [_interpolated(entry, properties) for entry in managed]
        managed = self._expand_imports(managed, (coordinate.pom(),))
        management = {(entry.group, entry.artifact): entry for entry in reversed(managed)}

        effective = _EffectivePom(
            coordinate=coordinate,
            packaging=pom.packaging,
            dependencies=[
                _managed(_interpolated(entry, properties), management)
                for entry in dependencies
            ],
        )
        self._effective[key] = effective
        return effective

    def _pom_chain(self, coordinate: Coordinate) -> list[Pom]:
        """Return ``coordinate``'s POM followed by its ancestors, nearest first."""
        pom = self._load_pom(coordinate)
        chain = [pom]
        parent = pom.parent
        while parent is not None:
            if len(chain) > _MAX_PARENT_DEPTH:
                message = f"Parent POM chain of {coordinate} is too deep"
                raise DependencyResolutionError(message)
            parent_pom = self._load_pom(parent)
            chain.append(parent_pom)
            parent = parent_pom.parent
        return chain

    def _expand_imports(
        self, managed: list[PomDependency], path: tuple[Coordinate, ...]
    ) -> list[PomDependency]:
        """Replace ``import`` entries with the management of the named BOMs.

        ``path`` holds the POMs whose imports are being expanded, outermost
        first; importing any of them again is a cycle.
        """
        expanded: list[PomDependency] = []
        imported: list[PomDependency] = []
        for entry in managed:
            if entry.scope == "import" and entry.type == "pom":
                bom = entry.coordinate().pom()
                if bom == path[-1]:
                    continue
                if bom in path:
                    cycle = " -> ".join(str(item) for item in (*path, bom))
                    message = f"Cyclic BOM import: {cycle}"
                    raise DependencyResolutionError(message)
                imported.extend(self._bom_entries(bom, path))
            else:
                expanded.append(entry)
        # Locally managed versions take precedence over imported BOMs.
        return expanded + imported

    def _bom_entries(
        self, bom: Coordinate, path: tuple[Coordinate, ...]
    ) -> list[PomDependency]:
        chain = self._pom_chain(bom)
        properties = _merged_properties(chain, bom)
        managed = _merge_declarations(pom.managed for pom in chain)
        return self._expand_imports(
            [_interpolated(entry, properties) for entry in managed], (*path, bom)
        )

    def resolve(self, coordinates: typ.Iterable[Coordinate]) -> list[ResolvedArtifact]:
        """Resolve ``coordinates`` and their transitive runtime dependencies.

        Parameters
        ----------
        coordinates : Iterable[Coordinate]
            The declared dependency set, in declaration order.

        Returns
        -------
        list[ResolvedArtifact]
            Every selected module in breadth-first discovery order, with its
            archive already present in the cache.

        Raises
        ------
        DependencyResolutionError
            Raised when any POM or archive in the graph cannot be fetched. No
            partial result is returned.
        """
        declared = list(coordinates)
        pins: dict[tuple[str, str], str] = {}
        while True:
            selected, requested = self._walk(declared, pins)
            upgrades = {
                module: highest
                for module, versions in requested.items()
                if version_key(highest := max(versions, key=version_key))
                > version_key(selected[module].coordinate.version)
            }
            if not upgrades:
                break
            pins.update(upgrades)

        resolved: list[ResolvedArtifact] = []
        for node in selected.values():
            path = self._archive_for(node.coordinate)
            resolved.append(
                ResolvedArtifact(node.coordinate, path, node.depth, node.requested_by)
            )
        return resolved

    def _walk(
        self,
        declared: list[Coordinate],
        pins: dict[tuple[str, str], str],
    ) -> tuple[dict[tuple[str, str], _Node], dict[tuple[str, str], set[str]]]:
        selected: dict[tuple[str, str], _Node] = {}
        requested: dict[tuple[str, str], set[str]] = collections.defaultdict(set)
        queue = collections.deque(
            _Node(coordinate, frozenset(), 0, None) for coordinate in declared
        )
        while queue:
            node = queue.popleft()
            module = node.coordinate.module
            requested[module].add(node.coordinate.version)
            if module in selected:
                continue
            if (pinned := pins.get(module)) is not None:
                node = dataclasses.replace(
                    node, coordinate=node.coordinate.with_version(pinned)
                )
            selected[module] = node
            for dependency in self._dependencies_of(node.coordinate):
                if (dependency.scope or "compile") not in _TRANSITIVE_SCOPES:
                    continue
                if dependency.optional:
                    continue
                if _excluded(dependency, node.exclusions):
                    continue
                queue.append(
                    _Node(
                        dependency.coordinate(),
                        node.exclusions | dependency.exclusions,
                        node.depth + 1,
                        node.coordinate,
                    )
                )
        return selected, requested

    def _dependencies_of(self, coordinate: Coordinate) -> list[PomDependency]:
        try:
            return self.effective_pom(coordinate).dependencies
        except ArtifactNotFoundError as exc:
            # A module published without a POM is usable when its archive exists.
            if exc.coordinate != coordinate.pom() or coordinate.extension == "pom":
                raise
            self.fetch(coordinate)
            print(
                "::warning title=Missing POM::"
                f"No POM found for {coordinate}; assuming no dependencies",
                file=sys.stderr,
            )
            return []

    def _archive_for(self, coordinate: Coordinate) -> Path | None:
        if coordinate.extension == "pom":
            return None
        packaging = self._packaging_of(coordinate)
        if packaging in _NO_ARCHIVE_PACKAGING and coordinate.classifier is None:
            return None
        return self.fetch(coordinate)

    def _packaging_of(self, coordinate: Coordinate) -> str:
        effective = self._effective.get(coordinate.pom())
        return effective.packaging if effective is not None else "jar"


def _is_remote(repository: str) -> bool:
    return "://" in repository and not repository.startswith("file://")


def _excluded(
    dependency: PomDependency, exclusions: frozenset[tuple[str, str]]
) -> bool:
    for group, artifact in exclusions:
        if group in {"*", dependency.group} and artifact in {"*", dependency.artifact}:
            return True
    return False


def _merged_properties(chain: list[Pom], coordinate: Coordinate) -> dict[str, str]:
    properties: dict[str, str] = {}
    for pom in reversed(chain):
        properties.update(pom.properties)
    child = chain[0]
    group = child.effective_group or coordinate.group
    version = child.effective_version or coordinate.version
    builtins = {
        "project.groupId": group,
        "project.artifactId": child.artifact,
        "project.version": version,
        "pom.groupId": group,
        "pom.artifactId": child.artifact,
        "pom.version": version,
        "groupId": group,
        "artifactId": child.artifact,
        "version": version,
    }
    if child.parent is not None:
        builtins |= {
            "project.parent.groupId": child.parent.group,
            "project.parent.artifactId": child.parent.artifact,
            "project.parent.version": child.parent.version,
            "parent.version": child.parent.version,
        }
    return properties | builtins


def _merge_declarations(
    groups: typ.Iterable[list[PomDependency]],
) -> list[PomDependency]:
    """Combine child-first declaration lists; the child's entry wins."""
    merged: dict[tuple[str, str, str, str | None], PomDependency] = {}
    for declarations in groups:
        for declaration in declarations:
            merged.setdefault(declaration.key, declaration)
    return list(merged.values())


def _interpolated(
    dependency: PomDependency, properties: dict[str, str]
) -> PomDependency:
    return dataclasses.replace(
        dependency,
        group=interpolate(dependency.group, properties) or dependency.group,
        artifact=interpolate(dependency.artifact, properties) or dependency.artifact,
        version=interpolate(dependency.version, properties),
        scope=interpolate(dependency.scope, properties),
        classifier=interpolate(dependency.classifier, properties),
    )


def _managed(
    dependency: PomDependency,
    management: dict[tuple[str, str], PomDependency],
) -> PomDependency:
    managed = management.get((dependency.group, dependency.artifact))
    if managed is None:
        return dependency
    return dataclasses.replace(
        dependency,
        version=dependency.version or managed.version,
        scope=dependency.scope or managed.scope,
        exclusions=dependency.exclusions | managed.exclusions,
    )


def _store(destination: Path, payload: bytes) -> None:
    """Write ``payload`` to ``destination`` atomically."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    handle, temporary = tempfile.mkstemp(
        dir=destination.parent, prefix=f".{destination.name}."
    )
    try:
        with os.fdopen(handle, "wb") as stream:
            stream.write(payload)
        os.replace(temporary, destination)
    except BaseException:
        Path(temporary).unlink(missing_ok=True)
        raise

