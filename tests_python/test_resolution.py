"""Behavioural tests for resolving the to-be-shaded dependency set."""

from __future__ import annotations

import hashlib
from pathlib import Path

import httpx
import pytest
from shade_test_helpers import build_class, install_module, write_jar

from shade_common.coordinates import Coordinate
from shade_common.errors import ArtifactNotFoundError, DependencyResolutionError
from shade_common.resolution import DependencyResolver


def _resolver(repo: Path, tmp_path: Path, **kwargs: object) -> DependencyResolver:
    return DependencyResolver([repo.as_posix()], tmp_path / "cache", **kwargs)


def _resolved(resolver: DependencyResolver, *declared: str) -> list[str]:
    return [
        str(artifact.coordinate)
        for artifact in resolver.resolve(Coordinate.parse(text) for text in declared)
    ]


def test_transitive_runtime_dependencies_are_included(
    maven_repo: Path, tmp_path: Path
) -> None:
    """Compile and runtime scopes are followed; test, provided and optional are not."""

    install_module(
        maven_repo,
        "org.example:foo:1.0",
        dependencies=[
            "org.example:compiled:1.0",
            {"groupId": "org.example", "artifactId": "runtime", "version": "1.0", "scope": "runtime"},
            {"groupId": "org.example", "artifactId": "tested", "version": "1.0", "scope": "test"},
            {"groupId": "org.example", "artifactId": "provided", "version": "1.0", "scope": "provided"},
            {"groupId": "org.example", "artifactId": "maybe", "version": "1.0", "optional": "true"},
        ],
    )
    install_module(maven_repo, "org.example:compiled:1.0")
    install_module(maven_repo, "org.example:runtime:1.0")

    with _resolver(maven_repo, tmp_path) as resolver:
        artifacts = resolver.resolve([Coordinate.parse("org.example:foo:1.0")])

    assert [str(artifact.coordinate) for artifact in artifacts] == [
        "org.example:foo:1.0",
        "org.example:compiled:1.0",
        "org.example:runtime:1.0",
    ]
    assert all(artifact.path is not None and artifact.path.is_file() for artifact in artifacts)
    assert artifacts[1].depth == 1
    assert artifacts[1].requested_by == Coordinate.parse("org.example:foo:1.0")
    assert artifacts[0].path == (
        tmp_path / "cache" / "org" / "example" / "foo" / "1.0" / "foo-1.0.jar"
    ), "archives are cached in the Maven layout"


def test_exclusions_prune_the_graph(maven_repo: Path, tmp_path: Path) -> None:
    """Exclusions apply along the path, including wildcards."""

    install_module(
        maven_repo,
        "org.example:foo:1.0",
        dependencies=[
            {
                "groupId": "org.example",
                "artifactId": "bar",
                "version": "1.0",
                "exclusions": ["org.unwanted:excluded", "org.wild:*"],
            }
        ],
    )
    install_module(
        maven_repo,
        "org.example:bar:1.0",
        dependencies=[
            "org.unwanted:excluded:1.0",
            "org.wild:anything:1.0",
            "org.example:kept:1.0",
        ],
    )
    install_module(maven_repo, "org.example:kept:1.0")

    with _resolver(maven_repo, tmp_path) as resolver:
        resolved = _resolved(resolver, "org.example:foo:1.0")

    assert resolved == ["org.example:foo:1.0", "org.example:bar:1.0", "org.example:kept:1.0"]


def test_highest_version_wins(maven_repo: Path, tmp_path: Path) -> None:
    """Conflicts select the highest version and its dependencies only."""

    install_module(maven_repo, "org.example:a:1.0", dependencies=["org.example:c:1.0"])
    install_module(maven_repo, "org.example:b:1.0", dependencies=["org.example:c:2.0"])
    install_module(maven_repo, "org.example:c:1.0", dependencies=["org.example:old:1.0"])
    install_module(maven_repo, "org.example:c:2.0", dependencies=["org.example:new:1.0"])
    install_module(maven_repo, "org.example:old:1.0")
    install_module(maven_repo, "org.example:new:1.0")

    with _resolver(maven_repo, tmp_path) as resolver:
        resolved = _resolved(resolver, "org.example:a:1.0", "org.example:b:1.0")

    assert resolved == [
        "org.example:a:1.0",
        "org.example:b:1.0",
        "org.example:c:2.0",
        "org.example:new:1.0",
    ]


def test_parent_properties_and_management_supply_versions(
    maven_repo: Path, tmp_path: Path
) -> None:
    """Versions may come from parent properties, management and imported BOMs."""

    install_module(
        maven_repo,
        "org.example:parent:1.0",
        packaging="pom",
        properties={"bar.version": "2.5"},
        managed=[
            {"groupId": "org.example", "artifactId": "bar", "version": "${bar.version}"},
            {
                "groupId": "org.example",
                "artifactId": "bom",
                "version": "1.0",
                "type": "pom",
                "scope": "import",
            },
        ],
    )
    install_module(
        maven_repo,
        "org.example:bom:1.0",
        packaging="pom",
        managed=["org.example:baz:3.1", "org.example:bar:9.9"],
    )
    install_module(
        maven_repo,
        "org.example:foo:1.0",
        parent="org.example:parent:1.0",
        dependencies=[
            {"groupId": "org.example", "artifactId": "bar"},
            {"groupId": "org.example", "artifactId": "baz"},
        ],
    )
    install_module(maven_repo, "org.example:bar:2.5")
    install_module(maven_repo, "org.example:baz:3.1")

    with _resolver(maven_repo, tmp_path) as resolver:
        resolved = _resolved(resolver, "org.example:foo:1.0")

    assert resolved == [
        "org.example:foo:1.0",
        "org.example:bar:2.5",
        "org.example:baz:3.1",
    ], "local management should win over the imported BOM"


def _import(artifact: str) -> dict[str, str]:
    return {
        "groupId": "org.example",
        "artifactId": artifact,
        "version": "1",
        "type": "pom",
        "scope": "import",
    }


def test_cyclic_bom_imports_are_rejected(maven_repo: Path, tmp_path: Path) -> None:
    """BOMs importing each other fail resolution instead of recursing forever."""

    install_module(maven_repo, "org.example:lib:1", managed=[_import("bom-a")])
    install_module(maven_repo, "org.example:bom-a:1", packaging="pom", managed=[_import("bom-b")])
    install_module(maven_repo, "org.example:bom-b:1", packaging="pom", managed=[_import("bom-a")])

    with (
        _resolver(maven_repo, tmp_path) as resolver,
        pytest.raises(DependencyResolutionError, match="Cyclic BOM import") as excinfo,
    ):
        resolver.resolve([Coordinate.parse("org.example:lib:1")])

    assert "bom-a" in str(excinfo.value)
    assert "bom-b" in str(excinfo.value)


def test_cyclic_bom_parents_are_rejected(maven_repo: Path, tmp_path: Path) -> None:
    """An imported BOM whose parents loop reports the chain as too deep."""

    install_module(maven_repo, "org.example:lib:1", managed=[_import("bom")])
    install_module(
        maven_repo, "org.example:bom:1", packaging="pom", parent="org.example:left:1"
    )
    install_module(
        maven_repo, "org.example:left:1", packaging="pom", parent="org.example:right:1"
    )
    install_module(
        maven_repo, "org.example:right:1", packaging="pom", parent="org.example:left:1"
    )

    with (
        _resolver(maven_repo, tmp_path) as resolver,
        pytest.raises(DependencyResolutionError, match="is too deep"),
    ):
        resolver.resolve([Coordinate.parse("org.example:lib:1")])


def test_pom_packaging_contributes_dependencies_only(
    maven_repo: Path, tmp_path: Path
) -> None:
    """POM-only modules have no archive but their dependencies are shaded."""

    install_module(
        maven_repo,
        "org.example:bundle:1.0",
        packaging="pom",
        dependencies=["org.example:member:1.0"],
    )
    install_module(maven_repo, "org.example:member:1.0")

    with _resolver(maven_repo, tmp_path) as resolver:
        artifacts = resolver.resolve([Coordinate.parse("org.example:bundle:1.0")])

    assert [artifact.path is None for artifact in artifacts] == [True, False]


def test_missing_dependency_is_fatal(maven_repo: Path, tmp_path: Path) -> None:
    """An unresolvable transitive dependency names every attempted location."""

    install_module(maven_repo, "org.example:foo:1.0", dependencies=["org.example:gone:1.0"])

    with (
        _resolver(maven_repo, tmp_path) as resolver,
        pytest.raises(ArtifactNotFoundError) as excinfo,
    ):
        resolver.resolve([Coordinate.parse("org.example:foo:1.0")])

    message = str(excinfo.value)
    assert "Could not resolve org.example:gone:1.0." in message
    assert (maven_repo / "org/example/gone/1.0/gone-1.0.jar").as_posix() in message
    assert excinfo.value.coordinate == Coordinate.parse("org.example:gone:1.0")


def test_missing_pom_falls_back_to_archive(
    maven_repo: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """A module published without a POM is used with a warning."""

    install_module(maven_repo, "org.example:bare:1.0", pom=False)

    with _resolver(maven_repo, tmp_path) as resolver:
        resolved = _resolved(resolver, "org.example:bare:1.0")

    assert resolved == ["org.example:bare:1.0"]
    assert "::warning title=Missing POM::" in capsys.readouterr().err


def test_cache_is_used_before_repositories(maven_repo: Path, tmp_path: Path) -> None:
    """Cached files resolve even when the repository no longer has them."""

    install_module(maven_repo, "org.example:foo:1.0")
    with _resolver(maven_repo, tmp_path) as resolver:
        _resolved(resolver, "org.example:foo:1.0")

    empty = tmp_path / "empty"
    empty.mkdir()
    with _resolver(empty, tmp_path) as resolver:
        assert _resolved(resolver, "org.example:foo:1.0") == ["org.example:foo:1.0"]


class _RemoteRepository:
    """Serve files from memory through :class:`httpx.MockTransport`."""

    base = "https://repo.example.com/maven2"

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.requests: list[str] = []

    def publish(self, path: str, payload: bytes, *, sha1: str | None = None) -> None:
        self.files[path] = payload
        self.files[f"{path}.sha1"] = (
            sha1 or hashlib.sha1(payload).hexdigest()  # noqa: S324 - repository checksum format
        ).encode("ascii")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        path = str(request.url).removeprefix(f"{self.base}/")
        if path in self.files:
            return httpx.Response(200, content=self.files[path])
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def remote(tmp_path: Path) -> _RemoteRepository:
    """Provide a remote repository holding ``org.example:foo:1.0``."""

    repository = _RemoteRepository()
    staging = tmp_path / "staging"
    directory = install_module(staging, "org.example:foo:1.0")
    repository.publish(
        "org/example/foo/1.0/foo-1.0.pom", (directory / "foo-1.0.pom").read_bytes()
    )
    repository.publish(
        "org/example/foo/1.0/foo-1.0.jar", (directory / "foo-1.0.jar").read_bytes()
    )
    return repository


def test_remote_repository_downloads_and_verifies(
    remote: _RemoteRepository, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """HTTP repositories are fetched with checksum verification."""

    with remote.client() as client:
        resolver = DependencyResolver([remote.base], tmp_path / "cache", client=client)
        artifacts = resolver.resolve([Coordinate.parse("org.example:foo:1.0")])

    assert artifacts[0].path is not None
    assert artifacts[0].path.is_file()
    assert f"{remote.base}/org/example/foo/1.0/foo-1.0.jar.sha1" in remote.requests
    assert f"Downloaded {remote.base}/org/example/foo/1.0/foo-1.0.jar" in (
        capsys.readouterr().out
    )


def test_remote_checksum_mismatch_is_fatal(
    remote: _RemoteRepository, tmp_path: Path
) -> None:
    """A download that does not match its ``.sha1`` sidecar is rejected."""

    jar = "org/example/foo/1.0/foo-1.0.jar"
    remote.publish(jar, remote.files[jar], sha1="0" * 40)

    with (
        remote.client() as client,
        pytest.raises(DependencyResolutionError, match="Checksum mismatch"),
    ):
        DependencyResolver([remote.base], tmp_path / "cache", client=client).resolve(
            [Coordinate.parse("org.example:foo:1.0")]
        )
    assert not (tmp_path / "cache" / jar).exists(), "rejected downloads are not cached"


def test_offline_mode_skips_remote_repositories(
    remote: _RemoteRepository, tmp_path: Path
) -> None:
    """Offline resolution never contacts remote repositories."""

    with (
        remote.client() as client,
        pytest.raises(ArtifactNotFoundError, match="skipped \\(offline\\)"),
    ):
        DependencyResolver(
            [remote.base], tmp_path / "cache", client=client, offline=True
        ).resolve([Coordinate.parse("org.example:foo:1.0")])
    assert remote.requests == []


def test_remote_falls_through_to_next_repository(
    remote: _RemoteRepository, maven_repo: Path, tmp_path: Path
) -> None:
    """Repositories are consulted in order until one provides the file."""

    directory = maven_repo / "org" / "example" / "local" / "1.0"
    write_jar(
        directory / "local-1.0.jar",
        {"org/example/Local.class": build_class("org/example/Local")},
    )
    (directory / "local-1.0.pom").write_text(
        "<project><groupId>org.example</groupId><artifactId>local</artifactId>"
        "<version>1.0</version></project>",
        encoding="utf-8",
    )

    with remote.client() as client:
        resolver = DependencyResolver(
            [remote.base, maven_repo.as_posix()], tmp_path / "cache", client=client
        )
        resolved = _resolved(resolver, "org.example:local:1.0")

    assert resolved == ["org.example:local:1.0"]
