"""Reading and writing Maven POM documents."""

from __future__ import annotations

import dataclasses
import re
import typing as typ
import xml.etree.ElementTree as ET

from ..coordinates import Coordinate
from ..errors import DependencyResolutionError

__all__ = [
    "POM_NAMESPACE",
    "Pom",
    "PomDependency",
    "interpolate",
    "parse_pom",
    "render_pom",
]

POM_NAMESPACE = "http://maven.apache.org/POM/4.0.0"
_XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
_SCHEMA_LOCATION = f"{POM_NAMESPACE} https://maven.apache.org/xsd/maven-4.0.0.xsd"
_PROPERTY = re.compile(r"\$\{([^}]+)\}")
_MAX_INTERPOLATION_DEPTH = 10

# Dependency ``type`` values whose artefact uses a different extension or an
# implied classifier.
_TYPE_EXTENSIONS = {
    "test-jar": ("jar", "tests"),
    "bundle": ("jar", None),
    "maven-plugin": ("jar", None),
    "ejb": ("jar", None),
}


@dataclasses.dataclass(frozen=True, slots=True)
class PomDependency:
    """A ``<dependency>`` element, before or after management is applied."""

    group: str
    artifact: str
    version: str | None = None
    scope: str | None = None
    optional: bool = False
    classifier: str | None = None
    type: str = "jar"
    exclusions: frozenset[tuple[str, str]] = frozenset()

    @property
    def key(self) -> tuple[str, str, str, str | None]:
        """Identity used when a child POM overrides a parent declaration."""
        return self.group, self.artifact, self.type, self.classifier

    def coordinate(self) -> Coordinate:
        """Return the coordinate of the artefact this dependency selects.

        Raises
        ------
        DependencyResolutionError
            Raised when no version is declared or managed, or a version range
            is used.
        """
        version = self.version
        if not version or "${" in version:
            message = (
                f"No version declared or managed for {self.group}:{self.artifact}"
            )
            raise DependencyResolutionError(message)
        if version[0] in "[(":
            message = (
                f"Version range {version} for {self.group}:{self.artifact} "
                "is not supported"
            )
            raise DependencyResolutionError(message)
        extension, implied = _TYPE_EXTENSIONS.get(self.type, (self.type, None))
        return Coordinate(
            self.group,
            self.artifact,
            version,
            self.classifier or implied,
            extension,
        )


@dataclasses.dataclass(slots=True)
class Pom:
    """Raw model of a single POM file."""

    artifact: str
    group: str | None = None
    version: str | None = None
    packaging: str = "jar"
    parent: Coordinate | None = None
    properties: dict[str, str] = dataclasses.field(default_factory=dict)
    dependencies: list[PomDependency] = dataclasses.field(default_factory=list)
    managed: list[PomDependency] = dataclasses.field(default_factory=list)

    @property
    def effective_group(self) -> str | None:
        """Group id, inherited from the parent when omitted."""
        return self.group or (self.parent.group if self.parent else None)

    @property
    def effective_version(self) -> str | None:
        """Version, inherited from the parent when omitted."""
        return self.version or (self.parent.version if self.parent else None)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> ET.Element | None:
    for child in element:
        if isinstance(child.tag, str) and _local(child.tag) == name:
            return child
    return None


def _children(element: ET.Element | None, name: str) -> typ.Iterator[ET.Element]:
    if element is None:
        return
    for child in element:
        if isinstance(child.tag, str) and _local(child.tag) == name:
            yield child


def _text(element: ET.Element | None, name: str) -> str | None:
    if element is None:
        return None
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _parse_dependency(element: ET.Element, source: str) -> PomDependency:
    group = _text(element, "groupId")
    artifact = _text(element, "artifactId")
    if not group or not artifact:
        message = f"Dependency without groupId/artifactId in POM of {source}"
        raise DependencyResolutionError(message)
    exclusions = frozenset(
        (_text(exclusion, "groupId") or "*", _text(exclusion, "artifactId") or "*")
        for exclusion in _children(_child(element, "exclusions"), "exclusion")
    )
    return PomDependency(
        group=group,
        artifact=artifact,
        version=_text(element, "version"),
        scope=_text(element, "scope"),
        optional=(_text(element, "optional") or "false").lower() == "true",
        classifier=_text(element, "classifier"),
        type=_text(element, "type") or "jar",
        exclusions=exclusions,
    )


def parse_pom(data: bytes, source: str) -> Pom:
    """Parse the POM document ``data`` fetched for ``source``.

    Parameters
    ----------
    data : bytes
        Raw XML of the POM.
    source : str
        Human readable origin used in error messages.

    Raises
    ------
    DependencyResolutionError
        Raised when the document is not well-formed or lacks an artifactId.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        message = f"Malformed POM for {source}: {exc}"
        raise DependencyResolutionError(message) from exc

    artifact = _text(root, "artifactId")
    if not artifact:
        message = f"POM for {source} declares no artifactId"
        raise DependencyResolutionError(message)

    parent_element = _child(root, "parent")
    parent = None
    if parent_element is not None:
        parent_group = _text(parent_element, "groupId")
        parent_artifact = _text(parent_element, "artifactId")
        parent_version = _text(parent_element, "version")
        if not (parent_group and parent_artifact and parent_version):
            message = f"Incomplete <parent> in POM of {source}"
            raise DependencyResolutionError(message)
        parent = Coordinate(parent_group, parent_artifact, parent_version, None, "pom")

    properties = {
        _local(child.tag): (child.text or "").strip()
        for child in _children_all(_child(root, "properties"))
    }
    management = _child(root, "dependencyManagement")
    return Pom(
        artifact=artifact,
        group=_text(root, "groupId"),
        version=_text(root, "version"),
        packaging=_text(root, "packaging") or "jar",
        parent=parent,
        properties=properties,
        dependencies=[
            _parse_dependency(element, source)
            for element in _children(_child(root, "dependencies"), "dependency")
        ],
        managed=[
            _parse_dependency(element, source)
            for element in _children(
                _child(management, "dependencies") if management is not None else None,
                "dependency",
            )
        ],
    )


def _children_all(element: ET.Element | None) -> typ.Iterator[ET.Element]:
    if element is None:
        return
    for child in element:
        if isinstance(child.tag, str):
            yield child


def interpolate(text: str | None, properties: typ.Mapping[str, str]) -> str | None:
    """Expand ``${name}`` references in ``text``; unknown names are kept.

    Examples
    --------
    >>> interpolate("${a}-${b}", {"a": "${b}", "b": "x"})
    'x-x'
    """
    if text is None:
        return None
    for _ in range(_MAX_INTERPOLATION_DEPTH):
        expanded = _PROPERTY.sub(
            lambda match: properties.get(match.group(1), match.group(0)), text
        )
        if expanded == text:
            break
        text = expanded
    return text


def render_pom(
    coordinate: Coordinate,
    *,
    packaging: str = "jar",
    name: str | None = None,
    description: str | None = None,
    dependencies: typ.Sequence[tuple[Coordinate, str]] = (),
) -> bytes:
    """Return a minimal POM describing ``coordinate`` and its ``dependencies``.

    ``dependencies`` pairs each coordinate with its Maven scope.
    """
    root = ET.Element(
        "project",
        {
            "xmlns": POM_NAMESPACE,
            "xmlns:xsi": _XSI_NAMESPACE,
            "xsi:schemaLocation": _SCHEMA_LOCATION,
        },
    )
    fields = [
        ("modelVersion", "4.0.0"),
        ("groupId", coordinate.group),
        ("artifactId", coordinate.artifact),
        ("version", coordinate.version),
        ("packaging", packaging),
        ("name", name),
        ("description", description),
    ]
    for tag, value in fields:
        if value:
            ET.SubElement(root, tag).text = value
    if dependencies:
        container = ET.SubElement(root, "dependencies")
        for dependency, scope in dependencies:
            element = ET.SubElement(container, "dependency")
            ET.SubElement(element, "groupId").text = dependency.group
            ET.SubElement(element, "artifactId").text = dependency.artifact
            ET.SubElement(element, "version").text = dependency.version
            if dependency.classifier:
                ET.SubElement(element, "classifier").text = dependency.classifier
            if dependency.extension != "jar":
                ET.SubElement(element, "type").text = dependency.extension
            ET.SubElement(element, "scope").text = scope
    ET.indent(root)
    return ET.tostring(root, encoding="UTF-8", xml_declaration=True) + b"\n"
