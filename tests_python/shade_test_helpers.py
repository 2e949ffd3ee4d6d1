"""Shared helpers for the shading test suites."""

from __future__ import annotations

import struct
import textwrap
import typing as typ
import zipfile
from pathlib import Path

__all__ = [
    "build_class",
    "decode_output_file",
    "install_module",
    "jar_entries",
    "write_jar",
    "write_shade_config",
]


def _utf8(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return bytes([1]) + struct.pack(">H", len(encoded)) + encoded


def build_class(
    name: str,
    super_name: str = "java/lang/Object",
    *,
    class_refs: typ.Sequence[str] = (),
    strings: typ.Sequence[str] = (),
    descriptors: typ.Sequence[str] = (),
    long_value: int | None = None,
) -> bytes:
    """Return a minimal, structurally valid class file.

    Parameters
    ----------
    name : str
        Internal name of the class, e.g. ``"com/acme/Plugin"``.
    super_name : str
        Internal name of the superclass.
    class_refs : Sequence[str]
        Extra ``CONSTANT_Class`` references (array descriptors allowed).
    strings : Sequence[str]
        ``CONSTANT_String`` literals.
    descriptors : Sequence[str]
        Bare ``CONSTANT_Utf8`` entries, as used for field and method
        descriptors.
    long_value : int | None
        When set, a leading ``CONSTANT_Long`` occupying two pool slots.
    """
    pool: list[bytes] = []
    slots = 0

    def add(entry: bytes, width: int = 1) -> int:
        nonlocal slots
        pool.append(entry)
        index = slots + 1
        slots += width
        return index

    if long_value is not None:
        add(bytes([5]) + struct.pack(">q", long_value), width=2)
    name_index = add(_utf8(name))
    this_index = add(bytes([7]) + struct.pack(">H", name_index))
    super_name_index = add(_utf8(super_name))
    super_index = add(bytes([7]) + struct.pack(">H", super_name_index))
    for ref in class_refs:
        ref_index = add(_utf8(ref))
        add(bytes([7]) + struct.pack(">H", ref_index))
    for literal in strings:
        literal_index = add(_utf8(literal))
        add(bytes([8]) + struct.pack(">H", literal_index))
    for descriptor in descriptors:
        add(_utf8(descriptor))

    header = struct.pack(">IHHH", 0xCAFEBABE, 0, 52, slots + 1)
    trailer = struct.pack(">HHHHHHH", 0x0021, this_index, super_index, 0, 0, 0, 0)
    return header + b"".join(pool) + trailer


def write_jar(path: Path, entries: typ.Mapping[str, bytes | str]) -> Path:
    """Write ``entries`` into a new archive at ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data.encode("utf-8") if isinstance(data, str) else data)
    return path


def jar_entries(path: Path) -> dict[str, bytes]:
    """Return the file entries of the archive at ``path``."""
    with zipfile.ZipFile(path) as archive:
        return {
            info.filename: archive.read(info)
            for info in archive.infolist()
            if not info.is_dir()
        }


def _dependency_xml(entry: str | typ.Mapping[str, typ.Any]) -> str:
    if isinstance(entry, str):
        group, artifact, version = entry.split(":")
        entry = {"groupId": group, "artifactId": artifact, "version": version}
    fields = "".join(
        f"<{key}>{value}</{key}>"
        for key, value in entry.items()
        if key != "exclusions" and value is not None
    )
    exclusions = "".join(
        "<exclusion><groupId>{}</groupId><artifactId>{}</artifactId></exclusion>".format(
            *item.split(":")
        )
        for item in entry.get("exclusions", ())
    )
    if exclusions:
        fields += f"<exclusions>{exclusions}</exclusions>"
    return f"<dependency>{fields}</dependency>"


def install_module(
    repository: Path,
    coordinate: str,
    *,
    dependencies: typ.Sequence[str | typ.Mapping[str, typ.Any]] = (),
    managed: typ.Sequence[str | typ.Mapping[str, typ.Any]] = (),
    entries: typ.Mapping[str, bytes | str] | None = None,
    packaging: str = "jar",
    parent: str | None = None,
    properties: typ.Mapping[str, str] | None = None,
    pom: bool = True,
) -> Path:
    """Install a module with a POM and archive into a directory repository.

    Parameters
    ----------
    repository : Path
        Root of the Maven-layout directory repository.
    coordinate : str
        ``group:artifact:version`` of the module.
    dependencies, managed : Sequence
        Dependency declarations as ``"g:a:v"`` strings or mappings of POM
        element names (``exclusions`` takes ``"g:a"`` strings).
    entries : Mapping[str, bytes | str] | None
        Archive contents; a single placeholder class is used when omitted.
    pom : bool
        When ``False`` only the archive is installed.

    Returns
    -------
    Path
        Directory holding the installed files.
    """
    group, artifact, version = coordinate.split(":")
    directory = repository.joinpath(*group.split("."), artifact, version)
    directory.mkdir(parents=True, exist_ok=True)
    if pom:
        parent_xml = ""
        if parent:
            parent_group, parent_artifact, parent_version = parent.split(":")
            parent_xml = (
                f"<parent><groupId>{parent_group}</groupId>"
                f"<artifactId>{parent_artifact}</artifactId>"
                f"<version>{parent_version}</version></parent>"
            )
        properties_xml = "".join(
            f"<{key}>{value}</{key}>" for key, value in (properties or {}).items()
        )
        dependencies_xml = "".join(_dependency_xml(entry) for entry in dependencies)
        managed_xml = "".join(_dependency_xml(entry) for entry in managed)
        document = textwrap.dedent(
            f"""\
            <?xml version="1.0" encoding="UTF-8"?>
            <project xmlns="http://maven.apache.org/POM/4.0.0">
              <modelVersion>4.0.0</modelVersion>
              {parent_xml}
              <groupId>{group}</groupId>
              <artifactId>{artifact}</artifactId>
              <version>{version}</version>
              <packaging>{packaging}</packaging>
              <properties>{properties_xml}</properties>
              <dependencyManagement><dependencies>{managed_xml}</dependencies></dependencyManagement>
              <dependencies>{dependencies_xml}</dependencies>
            </project>
            """
        )
        (directory / f"{artifact}-{version}.pom").write_text(document, encoding="utf-8")
    if packaging != "pom":
        if entries is None:
            class_name = f"{group.replace('.', '/')}/{artifact.replace('-', '_')}/Marker"
            entries = {f"{class_name}.class": build_class(class_name)}
        write_jar(directory / f"{artifact}-{version}.jar", entries)
    return directory


def write_shade_config(
    root: Path,
    *,
    packages: typ.Sequence[str] = ("org.example",),
    namespace: str = "shaded",
    shaded: typ.Sequence[str] = (),
    implementation: typ.Sequence[str] = (),
    repositories: typ.Sequence[str] = (),
    extra: str = "",
    name: str = "shade.toml",
) -> Path:
    """Write a configuration for the ``demo`` project into ``root``."""

    def toml_list(values: typ.Sequence[str]) -> str:
        return "[" + ", ".join(f'"{value}"' for value in values) + "]"

    text = textwrap.dedent(
        f"""\
        [project]
        group = "com.acme"
        name = "demo"
        version = "1.0"

        [shading]
        namespace = "{namespace}"
        packages = {toml_list(packages)}

        [dependencies]
        shaded = {toml_list(shaded)}
        implementation = {toml_list(implementation)}

        [repositories]
        urls = {toml_list([Path(repo).as_posix() for repo in repositories])}
        """
    )
    path = root / name
    path.write_text(text + extra, encoding="utf-8")
    return path


def decode_output_file(path: Path) -> dict[str, str]:
    """Parse GitHub output records written with ``write_github_output``.

    Parameters
    ----------
    path : Path
        Path to the output file containing GitHub workflow output records.

    Returns
    -------
    dict[str, str]
        Mapping of output keys to their decoded string values.
    """
    lines = path.read_text(encoding="utf-8").splitlines()
    values: dict[str, str] = {}
    index = 0
    while index < len(lines):
        line = lines[index]
        if "<<" in line:
            key, delimiter = line.split("<<", 1)
            index += 1
            buffer: list[str] = []
            while index < len(lines) and lines[index] != delimiter:
                buffer.append(lines[index])
                index += 1
            values[key] = "\n".join(buffer)
        index += 1
    return values
