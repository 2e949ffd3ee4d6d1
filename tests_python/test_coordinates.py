"""Tests for dependency coordinates and version ordering."""

from __future__ import annotations

import pytest

from shade_common.coordinates import Coordinate, version_key
from shade_common.errors import ShadeError


def test_parse_plain_coordinate() -> None:
    """Three-part notation should default to a jar without classifier."""

    coordinate = Coordinate.parse("org.example:foo:1.0")

    assert coordinate == Coordinate("org.example", "foo", "1.0")
    assert coordinate.module == ("org.example", "foo")
    assert coordinate.repository_path() == "org/example/foo/1.0/foo-1.0.jar"
    assert str(coordinate) == "org.example:foo:1.0"


def test_parse_classifier_and_extension() -> None:
    """Classifier and extension should shape the repository path."""

    coordinate = Coordinate.parse("io.netty:netty-transport:4.1.90.Final:linux-x86_64@zip")

    assert coordinate.classifier == "linux-x86_64"
    assert coordinate.extension == "zip"
    assert coordinate.repository_path() == (
        "io/netty/netty-transport/4.1.90.Final/"
        "netty-transport-4.1.90.Final-linux-x86_64.zip"
    )
    assert str(coordinate) == "io.netty:netty-transport:4.1.90.Final:linux-x86_64@zip"


@pytest.mark.parametrize(
    "text", ["org.example:foo", "org.example::1.0", "a:b:c:d:e", "org example:foo:1"]
)
def test_parse_rejects_malformed_text(text: str) -> None:
    """Malformed notation should raise ``ShadeError``."""

    with pytest.raises(ShadeError, match="Malformed dependency coordinate"):
        Coordinate.parse(text)


def test_pom_coordinate_drops_classifier() -> None:
    """A coordinate's POM lives beside the main artefact."""

    pom = Coordinate("org.example", "foo", "1.0", "sources").pom()

    assert pom.repository_path() == "org/example/foo/1.0/foo-1.0.pom"


def test_version_key_orders_maven_versions() -> None:
    """Versions should sort numerically with qualifiers below releases."""

    versions = ["1.10", "1.0.1", "1.0", "1.0-SNAPSHOT", "0.9", "1.2", "1.0-rc1"]

    assert sorted(versions, key=version_key) == [
        "0.9",
        "1.0-rc1",
        "1.0-SNAPSHOT",
        "1.0",
        "1.0.1",
        "1.2",
        "1.10",
    ]


def test_version_key_ignores_trailing_zeros() -> None:
    """``1`` and ``1.0.0`` denote the same release."""

    assert version_key("1") == version_key("1.0.0")
    assert version_key("4.1.90.Final") == version_key("4.1.90")


def test_unknown_qualifiers_sort_after_release() -> None:
    """Unrecognised qualifiers are treated as post-release builds."""

    assert version_key("9.0.1-pega") > version_key("9.0.1")
    assert version_key("1.0-sp1") > version_key("1.0")
