"""Hand the shaded archive to a Maven repository.

The build registers exactly one archive with the main publication; the plain
project archive is never built, so it can never be published. Every Gradle
plugin declared in the configuration also gets a POM-only marker publication
so ``plugins { id("…") }`` blocks can locate the archive.

Examples
--------
Publish into a directory laid out as a Maven repository::

    publications = plan_publications(config, result)
    publish_local(publications, config.publishing.local_repository)

Inspect the planned Artifactory uploads without publishing anything::

    publish_artifactory(publications, "libs-release-local", dry_run=True)
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import shutil
import typing as typ
import xml.etree.ElementTree as ET
from pathlib import Path

from plumbum import local

from .checksum_utils import write_checksum
from .coordinates import Coordinate, version_key
from .errors import ShadeError
from .resolution import render_pom

if typ.TYPE_CHECKING:
    from plumbum.commands.base import BoundCommand

    from .config import ShadeConfig
    from .shading import ShadeResult

__all__ = [
    "Publication",
    "PublicationFile",
    "publish_artifactory",
    "publish_local",
    "plan_publications",
]

_CHECKSUM_ALGORITHMS = ("sha1", "md5")
_METADATA_NAME = "maven-metadata.xml"


@dc.dataclass(frozen=True, slots=True)
class PublicationFile:
    """A file on disk and the coordinate it is published under."""

    source: Path
    coordinate: Coordinate

    @property
    def remote_path(self) -> str:
        """Destination relative to the repository root."""
        return self.coordinate.repository_path()


@dc.dataclass(frozen=True, slots=True)
class Publication:
    """A named set of files published under one module coordinate."""

    name: str
    coordinate: Coordinate
    files: tuple[PublicationFile, ...]

    @property
    def archives(self) -> tuple[PublicationFile, ...]:
        """Published files other than the POM."""
        return tuple(item for item in self.files if item.coordinate.extension != "pom")


def plan_publications(
    config: ShadeConfig, result: ShadeResult
) -> list[Publication]:
    """Register the shaded archive and write the POMs of every publication.

    Parameters
    ----------
    config : ShadeConfig
        Configuration naming the publication and the plugin declarations.
    result : ShadeResult
        Outcome of the build; its archive is the only one published.

    Returns
    -------
    list[Publication]
        The main publication followed by one marker per plugin.

    Raises
    ------
    ShadeError
        Raised when the shaded archive is missing on disk.
    """
    if not result.archive.is_file():
        message = f"Shaded archive {result.archive} does not exist"
        raise ShadeError(message)

    project = config.project
    module = Coordinate(project.group, project.name, project.version)
    publications_dir = project.libs_dir.parent / "publications"
    main_pom = _write_pom(
        publications_dir / config.publishing.publication,
        render_pom(
            module,
            name=project.name,
            dependencies=[
                (dependency, "runtime")
                for dependency in config.dependencies.implementation
            ],
        ),
    )
    publications = [
        Publication(
            name=config.publishing.publication,
            coordinate=module,
            files=(
                PublicationFile(result.archive, module),
                PublicationFile(main_pom, module.pom()),
            ),
        )
    ]
    for plugin in config.plugins:
        marker = Coordinate(
            plugin.id, f"{plugin.id}.gradle.plugin", project.version, None, "pom"
        )
        name = f"{plugin.id}PluginMarkerMaven"
        marker_pom = _write_pom(
            publications_dir / name,
            render_pom(
                marker,
                packaging="pom",
                name=plugin.display_name,
                description=plugin.description,
                dependencies=[(module, "compile")],
            ),
        )
        publications.append(
            Publication(name, marker, (PublicationFile(marker_pom, marker),))
        )
    return publications


def _write_pom(directory: Path, content: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "pom-default.xml"
    path.write_bytes(content)
    return path


def publish_local(
    publications: typ.Iterable[Publication], repository: Path
) -> list[Path]:
    """Copy ``publications`` into the directory repository ``repository``.

    Every published file receives ``.sha1`` and ``.md5`` sidecars and each
    module's ``maven-metadata.xml`` lists the published version.

    Returns
    -------
    list[Path]
        Published files, sidecars excluded.
    """
    published: list[Path] = []
    for publication in publications:
        for item in publication.files:
            destination = repository / item.remote_path
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(item.source, destination)
            for algorithm in _CHECKSUM_ALGORITHMS:
                write_checksum(destination, algorithm)
            published.append(destination)
            print(f"Published '{item.source.name}' -> '{destination}'")
        metadata = _update_metadata(repository, publication.coordinate)
        for algorithm in _CHECKSUM_ALGORITHMS:
            write_checksum(metadata, algorithm)
    return published


def _update_metadata(repository: Path, coordinate: Coordinate) -> Path:
    """Record ``coordinate.version`` in the module's ``maven-metadata.xml``."""
    module_dir = repository.joinpath(*coordinate.group.split("."), coordinate.artifact)
    path = module_dir / _METADATA_NAME
    versions: list[str] = []
    if path.is_file():
        try:
            existing = ET.parse(path).getroot()
        except ET.ParseError as exc:
            message = f"Malformed repository metadata at {path}: {exc}"
            raise ShadeError(message) from exc
        versions = [
            element.text.strip()
            for element in existing.iterfind("versioning/versions/version")
            if element.text and element.text.strip()
        ]
    if coordinate.version not in versions:
        versions.append(coordinate.version)
    versions.sort(key=version_key)
    releases = [version for version in versions if not version.endswith("-SNAPSHOT")]

    root = ET.Element("metadata")
    ET.SubElement(root, "groupId").text = coordinate.group
    ET.SubElement(root, "artifactId").text = coordinate.artifact
    versioning = ET.SubElement(root, "versioning")
    ET.SubElement(versioning, "latest").text = versions[-1]
    if releases:
        ET.SubElement(versioning, "release").text = releases[-1]
    container = ET.SubElement(versioning, "versions")
    for version in versions:
        ET.SubElement(container, "version").text = version
    ET.SubElement(versioning, "lastUpdated").text = dt.datetime.now(
        dt.timezone.utc
    ).strftime("%Y%m%d%H%M%S")
    ET.indent(root)
    module_dir.mkdir(parents=True, exist_ok=True)
    path.write_bytes(ET.tostring(root, encoding="UTF-8", xml_declaration=True) + b"\n")
    return path


def publish_artifactory(
    publications: typ.Iterable[Publication],
    repository: str,
    *,
    server: str | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Upload every publication with the JFrog CLI.

    Parameters
    ----------
    publications : Iterable[Publication]
        Publications returned by :func:`plan_publications`.
    repository : str
        Target Artifactory repository key, e.g. ``"libs-release-local"``.
    server : str | None, optional
        JFrog CLI server id; the CLI default is used when omitted.
    dry_run : bool
        When ``True``, print the planned ``jf`` invocations without executing
        them.

    Returns
    -------
    list[str]
        Repository paths that were (or would be) uploaded.

    Raises
    ------
    ProcessExecutionError
        If ``jf`` returns a non-zero status while uploading.
    CommandNotFound
        If the ``jf`` executable is not available in ``PATH``.
    """
    jf_cmd: BoundCommand | None = None
    uploaded: list[str] = []
    for publication in publications:
        for item in publication.files:
            target = f"{repository.strip('/')}/{item.remote_path}"
            args = ["rt", "upload", item.source.as_posix(), target, "--flat"]
            if server:
                args.extend(["--server-id", server])
            uploaded.append(target)
            if dry_run:
                print(f"[dry-run] jf {' '.join(args)}")
                continue
            if jf_cmd is None:
                jf_cmd = local["jf"]
            jf_cmd[args]()
            print(f"Uploaded '{item.source.name}' -> '{target}'")
    return uploaded
