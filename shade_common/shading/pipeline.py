"""Core shaded artefact pipeline and supporting helpers."""

from __future__ import annotations

import dataclasses
import datetime as dt
import os
import sys
import tempfile
import typing as typ
import zipfile
from pathlib import Path

from ..checksum_utils import file_digest
from ..errors import RelocationError, ShadeError
from ..relocation import Relocator, relocate_class
from .manifest import MANIFEST_NAME, manifest_attributes, render_manifest
from .services import ServiceFileMerger, is_service_file

if typ.TYPE_CHECKING:
    from ..config import ShadeConfig
    from ..coordinates import Coordinate
    from ..resolution import ResolvedArtifact

__all__ = ["DuplicateEntry", "ShadeResult", "build_shaded_artifact"]

# Gradle's constant timestamp for reproducible archives.
REPRODUCIBLE_TIMESTAMP = (1980, 2, 1, 0, 0, 0)

_EXCLUDED_ENTRIES = {MANIFEST_NAME, "META-INF/INDEX.LIST"}
_SIGNATURE_SUFFIXES = (".SF", ".DSA", ".RSA", ".EC")
_VERSIONED_PREFIX = "META-INF/versions/"


@dataclasses.dataclass(frozen=True, slots=True)
class DuplicateEntry:
    """An archive entry dropped because an earlier input already provided it."""

    name: str
    kept_from: str
    ignored_from: str


@dataclasses.dataclass(slots=True)
class ShadeResult:
    """Outcome of :func:`build_shaded_artifact`.

    Attributes
    ----------
    archive:
        The single shaded archive written by the build.
    checksum:
        SHA-256 digest of ``archive``.
    entries:
        Number of file entries written.
    relocated_classes:
        Number of classes moved beneath the shading namespace.
    inputs:
        Entries taken from each input, keyed by input label.
    merged_service_files:
        Service files combined from more than one input.
    duplicates:
        Entries ignored because an earlier input provided them.
    shaded_dependencies:
        Coordinates whose contents were merged into ``archive``.
    """

    archive: Path
    checksum: str
    entries: int
    relocated_classes: int
    inputs: dict[str, int]
    merged_service_files: list[str]
    duplicates: list[DuplicateEntry]
    shaded_dependencies: list[Coordinate]


@dataclasses.dataclass(frozen=True, slots=True)
class _Entry:
    name: str
    data: bytes
    source: str


@dataclasses.dataclass(slots=True)
class _ArchiveContents:
    """Entries accumulated for the shaded archive, first writer wins."""

    files: dict[str, bytes] = dataclasses.field(default_factory=dict)
    origins: dict[str, str] = dataclasses.field(default_factory=dict)
    duplicates: list[DuplicateEntry] = dataclasses.field(default_factory=list)

    def add(self, name: str, data: bytes, source: str) -> bool:
        if name in self.files:
            self.duplicates.append(DuplicateEntry(name, self.origins[name], source))
            return False
        self.files[name] = data
        self.origins[name] = source
        return True


def build_shaded_artifact(
    config: ShadeConfig,
    artifacts: typ.Sequence[ResolvedArtifact],
    *,
    now: dt.datetime | None = None,
) -> ShadeResult:
    """Merge project output and ``artifacts`` into one relocated archive.

    Parameters
    ----------
    config : ShadeConfig
        Configuration describing the project, relocation rules and plugins.
    artifacts : Sequence[ResolvedArtifact]
        The resolved to-be-shaded dependency set. Resolution must have
        completed for every member before assembly starts.
    now : datetime | None, optional
        Build time recorded in the manifest.

    Returns
    -------
    ShadeResult
        Summary of the written archive.

    Raises
    ------
    ShadeError
        Raised when an input archive is unreadable or a class cannot be
        relocated. Nothing is written in that case.
    """
    relocator = Relocator(config.relocation_rules())
    services = ServiceFileMerger(relocator)
    contents = _ArchiveContents()
    inputs: dict[str, int] = {}
    relocated_classes = 0

    for plugin in config.plugins:
        implementation = relocator.relocate_class_name(plugin.implementation_class)
        contents.add(
            plugin.descriptor_path,
            f"implementation-class={implementation}\n".encode("utf-8"),
            "plugin declarations",
        )

    for entry in _iter_inputs(config, artifacts):
        if _is_excluded(entry.name):
            continue
        inputs[entry.source] = inputs.get(entry.source, 0) + 1
        if config.merge_service_files and is_service_file(entry.name):
            services.add(entry.name, entry.data, entry.source)
            continue
        name, data = _relocate_entry(entry, relocator)
        added = contents.add(name, data, entry.source)
        if added and name != entry.name and entry.name.endswith(".class"):
            relocated_classes += 1

    for name, data in services.files().items():
        contents.files[name] = data
        contents.origins[name] = "merged service files"

    if contents.duplicates:
        _warn_duplicates(contents.duplicates)

    archive = config.archive_path
    manifest = render_manifest(manifest_attributes(config, now))
    _write_archive(archive, manifest, contents.files, reproducible=config.reproducible)

    return ShadeResult(
        archive=archive,
        checksum=file_digest(archive, "sha256"),
        entries=len(contents.files) + 1,
        relocated_classes=relocated_classes,
        inputs=inputs,
        merged_service_files=services.merged_names,
        duplicates=contents.duplicates,
        shaded_dependencies=[
            artifact.coordinate for artifact in artifacts if artifact.path is not None
        ],
    )


def _iter_inputs(
    config: ShadeConfig, artifacts: typ.Sequence[ResolvedArtifact]
) -> typ.Iterator[_Entry]:
    """Yield project output entries followed by every dependency archive."""
    for directory in config.project.outputs:
        yield from _iter_directory(directory, config.project.workspace)
    for artifact in artifacts:
        if artifact.path is not None:
            yield from _iter_archive(artifact.path, str(artifact.coordinate))


def _iter_directory(directory: Path, workspace: Path) -> typ.Iterator[_Entry]:
    label = (
        directory.relative_to(workspace).as_posix()
        if directory.is_relative_to(workspace)
        else directory.as_posix()
    )
    if not directory.is_dir():
        print(
            f"::warning title=Missing Output::Project output {label} does not exist",
            file=sys.stderr,
        )
        return
    for path in sorted(directory.rglob("*")):
        if path.is_file():
            yield _Entry(path.relative_to(directory).as_posix(), path.read_bytes(), label)


def _iter_archive(path: Path, label: str) -> typ.Iterator[_Entry]:
    try:
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                if not info.is_dir():
                    yield _Entry(info.filename, archive.read(info), label)
    except (zipfile.BadZipFile, OSError) as exc:
        message = f"Cannot read archive {path} for {label}: {exc}"
        raise ShadeError(message) from exc


def _is_excluded(name: str) -> bool:
    """Return ``True`` for entries that must not reach the shaded archive.

    Examples
    --------
    >>> _is_excluded("META-INF/BCKEY.SF"), _is_excluded("org/example/Foo.class")
    (True, False)
    """
    if name in _EXCLUDED_ENTRIES or name.rsplit("/", 1)[-1] == "module-info.class":
        return True
    if name.startswith("META-INF/") and name.count("/") == 1:
        return name.upper().endswith(_SIGNATURE_SUFFIXES)
    return False


def _relocate_entry(entry: _Entry, relocator: Relocator) -> tuple[str, bytes]:
    name = _relocate_entry_name(entry.name, relocator)
    if not entry.name.endswith(".class") or not relocator:
        return name, entry.data
    try:
        return name, relocate_class(entry.data, relocator)
    except RelocationError as exc:
        message = f"Cannot relocate {entry.name} from {entry.source}: {exc}"
        raise RelocationError(message) from exc


def _relocate_entry_name(name: str, relocator: Relocator) -> str:
    """Relocate an entry path; ``META-INF`` content only moves when versioned.

    Examples
    --------
    >>> from shade_common.config import RelocationRule
    >>> relocator = Relocator([RelocationRule("org.a", "s.org.a")])
    >>> _relocate_entry_name("META-INF/versions/11/org/a/B.class", relocator)
    'META-INF/versions/11/s/org/a/B.class'
    """
    if name.startswith(_VERSIONED_PREFIX):
        version, _, rest = name.removeprefix(_VERSIONED_PREFIX).partition("/")
        return f"{_VERSIONED_PREFIX}{version}/{relocator.relocate_path(rest)}"
    if name.startswith("META-INF/"):
        return name
    return relocator.relocate_path(name)


def _warn_duplicates(duplicates: list[DuplicateEntry]) -> None:
    first = duplicates[0]
    warning = (
        "::warning title=Duplicate Entries::"
        f"Ignored {len(duplicates)} duplicate entr{'y' if len(duplicates) == 1 else 'ies'}; "
        f"first was {first.name} from {first.ignored_from} "
        f"(kept {first.kept_from})"
    )
    print(warning, file=sys.stderr)


def _directories(names: typ.Iterable[str]) -> list[str]:
    directories: set[str] = set()
    for name in names:
        parts = name.split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            directories.add("/".join(parts[:depth]) + "/")
    return sorted(directories)


def _zip_info(name: str, timestamp: tuple[int, ...], *, directory: bool) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=timestamp)
    if directory:
        info.external_attr = (0o40755 << 16) | 0x10
        info.compress_type = zipfile.ZIP_STORED
    else:
        info.external_attr = 0o644 << 16
        info.compress_type = zipfile.ZIP_DEFLATED
    return info


def _write_archive(
    archive: Path,
    manifest: bytes,
    files: dict[str, bytes],
    *,
    reproducible: bool,
) -> None:
    """Write ``files`` behind the manifest into ``archive`` atomically."""
    timestamp = (
        REPRODUCIBLE_TIMESTAMP if reproducible else dt.datetime.now().timetuple()[:6]
    )
    names = sorted(files) if reproducible else list(files)
    archive.parent.mkdir(parents=True, exist_ok=True)
    handle, temporary = tempfile.mkstemp(dir=archive.parent, prefix=f".{archive.name}.")
    os.close(handle)
    try:
        with zipfile.ZipFile(temporary, "w") as output:
            output.writestr(_zip_info("META-INF/", timestamp, directory=True), b"")
            output.writestr(_zip_info(MANIFEST_NAME, timestamp, directory=False), manifest)
            for directory in _directories(names):
                if directory != "META-INF/":
                    output.writestr(_zip_info(directory, timestamp, directory=True), b"")
            for name in names:
                output.writestr(_zip_info(name, timestamp, directory=False), files[name])
        os.replace(temporary, archive)
    except BaseException:
        Path(temporary).unlink(missing_ok=True)
        raise
