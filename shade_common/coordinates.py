"""Library coordinates and the Maven repository layout.

Coordinates use the ``group:artifact:version[:classifier][@extension]``
notation understood by Gradle and Maven::

    >>> coordinate = Coordinate.parse("org.example:foo:1.0")
    >>> coordinate.repository_path()
    'org/example/foo/1.0/foo-1.0.jar'
"""

from __future__ import annotations

import dataclasses
import re

from .errors import ShadeError

__all__ = ["Coordinate", "version_key"]

_SEGMENT = re.compile(r"^[A-Za-z0-9_.\-+]+$")
_VERSION_TOKEN = re.compile(r"\d+|[A-Za-z]+")
_QUALIFIER_ORDER = {
    "alpha": 0,
    "a": 0,
    "beta": 1,
    "b": 1,
    "milestone": 2,
    "m": 2,
    "rc": 3,
    "cr": 3,
    "snapshot": 4,
    "": 5,
    "ga": 5,
    "final": 5,
    "release": 5,
    "sp": 6,
}


@dataclasses.dataclass(frozen=True, slots=True)
class Coordinate:
    """Identify a single artefact in a Maven repository.

    Parameters
    ----------
    group : str
        Group identifier, e.g. ``"org.ow2.asm"``.
    artifact : str
        Artifact identifier, e.g. ``"asm"``.
    version : str
        Concrete version. Ranges are not supported.
    classifier : str | None, optional
        Optional classifier such as ``"sources"``.
    extension : str, default="jar"
        File extension of the artefact.
    """

    group: str
    artifact: str
    version: str
    classifier: str | None = None
    extension: str = "jar"

    @classmethod
    def parse(cls, text: str) -> Coordinate:
        """Return the coordinate described by ``text``.

        Raises
        ------
        ShadeError
            Raised when ``text`` is not ``group:artifact:version`` with an
            optional classifier and extension.
        """
        notation, _, extension = text.strip().partition("@")
        parts = notation.split(":")
        if len(parts) not in {3, 4} or not all(
            _SEGMENT.match(part) for part in parts
        ):
            message = (
                f"Malformed dependency coordinate '{text}'; expected "
                "group:artifact:version[:classifier][@extension]"
            )
            raise ShadeError(message)
        if extension and not _SEGMENT.match(extension):
            message = f"Malformed extension in dependency coordinate '{text}'"
            raise ShadeError(message)
        group, artifact, version = parts[:3]
        classifier = parts[3] if len(parts) == 4 else None
        return cls(group, artifact, version, classifier, extension or "jar")

    @property
    def module(self) -> tuple[str, str]:
        """Return the ``(group, artifact)`` pair used for conflict resolution."""
        return self.group, self.artifact

    def with_version(self, version: str) -> Coordinate:
        """Return a copy of this coordinate pinned to ``version``."""
        return dataclasses.replace(self, version=version)

    def pom(self) -> Coordinate:
        """Return the coordinate of this artefact's POM."""
        return Coordinate(self.group, self.artifact, self.version, None, "pom")

    def repository_path(self) -> str:
        """Return the path of this artefact in the Maven repository layout."""
        suffix = f"-{self.classifier}" if self.classifier else ""
        directory = "/".join([*self.group.split("."), self.artifact, self.version])
        return f"{directory}/{self.artifact}-{self.version}{suffix}.{self.extension}"

    def __str__(self) -> str:
        text = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            text = f"{text}:{self.classifier}"
        if self.extension != "jar":
            text = f"{text}@{self.extension}"
        return text


def version_key(version: str) -> tuple[tuple[int, int | str], ...]:
    """Return a sort key ordering Maven versions.

    Numeric tokens compare numerically, well-known qualifiers compare by
    maturity, and unknown qualifiers sort after releases alphabetically.

    Examples
    --------
    >>> sorted(["1.10", "1.2", "1.2-rc1"], key=version_key)
    ['1.2-rc1', '1.2', '1.10']
    """
    release = (1, _QUALIFIER_ORDER[""])
    key: list[tuple[int, int | str]] = []
    for token in _VERSION_TOKEN.findall(version.lower()):
        if token.isdigit():
            key.append((2, int(token)))
            continue
        # "1.0-rc1" normalises to "1-rc1" before the qualifier is compared.
        _strip_trailing(key, {(2, 0)})
        if token in _QUALIFIER_ORDER:
            key.append((1, _QUALIFIER_ORDER[token]))
        else:
            key.append((3, token))
    _strip_trailing(key, {(2, 0), release})
    key.append(release)
    return tuple(key)


def _strip_trailing(
    key: list[tuple[int, int | str]], fillers: set[tuple[int, int | str]]
) -> None:
    while key and key[-1] in fillers:
        key.pop()
