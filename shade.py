# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "cyclopts>=2.9",
#   "httpx>=0.27",
#   "plumbum",
# ]
# ///

"""Command-line entry point for the shading helper.

Examples
--------
Build the shaded archive described by ``shade.toml`` and export workflow
outputs::

    export GITHUB_OUTPUT="$(mktemp)"
    uv run shade.py build shade.toml --emit-outputs

Publish the archive to a directory repository::

    uv run shade.py publish shade.toml --target local
"""

from __future__ import annotations

import sys
import typing as typ
from pathlib import Path

import cyclopts
from plumbum.commands import CommandNotFound, ProcessExecutionError

from shade_common import (
    DependencyResolver,
    ShadeError,
    build_shaded_artifact,
    load_config,
    plan_publications,
    publish_artifactory,
    publish_local,
    require_env_path,
    write_github_output,
)
from shade_common.shading import prepare_output_data

if typ.TYPE_CHECKING:
    from shade_common import ResolvedArtifact, ShadeConfig, ShadeResult

app = cyclopts.App(
    help="Build a single shaded JAR with relocated dependencies and publish it."
)


def _fail(title: str, exc: BaseException) -> typ.NoReturn:
    print(f"::error title={title}::{exc}", file=sys.stderr)
    raise SystemExit(1) from exc


def _resolve(config: ShadeConfig, *, offline: bool) -> list[ResolvedArtifact]:
    with DependencyResolver.from_config(
        config.repositories, offline=offline or None
    ) as resolver:
        return resolver.resolve(config.dependencies.shaded)


def _build(config: ShadeConfig, *, offline: bool) -> ShadeResult:
    # Every member of the dependency set is fetched before assembly starts, so
    # a resolution failure never leaves a partial archive behind.
    artifacts = _resolve(config, offline=offline)
    return build_shaded_artifact(config, artifacts)


@app.command
def build(
    config_file: Path, *, offline: bool = False, emit_outputs: bool = False
) -> None:
    """Build the shaded archive described by ``config_file``.

    Parameters
    ----------
    config_file:
        Path to the project's TOML configuration file.
    offline:
        Resolve from the cache and local repositories only.
    emit_outputs:
        Append the archive details to the file named by ``GITHUB_OUTPUT``.
    """
    try:
        config = load_config(Path(config_file))
        result = _build(config, offline=offline)
        if emit_outputs:
            write_github_output(
                require_env_path("GITHUB_OUTPUT"),
                prepare_output_data(result, config.publishing.publication),
            )
    except (FileNotFoundError, ShadeError) as exc:
        _fail("Shading Failure", exc)

    archive = result.archive
    if archive.is_relative_to(config.project.workspace):
        archive = archive.relative_to(config.project.workspace)
    print(
        f"Shaded {len(result.shaded_dependencies)} dependenc"
        f"{'y' if len(result.shaded_dependencies) == 1 else 'ies'} and "
        f"relocated {result.relocated_classes} class(es) into '{archive}'.",
        file=sys.stderr,
    )


@app.command
def dependencies(config_file: Path, *, offline: bool = False) -> None:
    """Print the resolved to-be-shaded dependency set.

    Parameters
    ----------
    config_file:
        Path to the project's TOML configuration file.
    offline:
        Resolve from the cache and local repositories only.
    """
    try:
        config = load_config(Path(config_file))
        artifacts = _resolve(config, offline=offline)
    except (FileNotFoundError, ShadeError) as exc:
        _fail("Resolution Failure", exc)

    for artifact in artifacts:
        indent = "  " * artifact.depth
        suffix = " (no archive)" if artifact.path is None else ""
        print(f"{indent}{artifact.coordinate}{suffix}")


@app.command
def publish(
    config_file: Path,
    *,
    target: typ.Literal["local", "artifactory"] = "local",
    dry_run: bool = False,
    offline: bool = False,
) -> None:
    """Build the shaded archive and hand it to a Maven repository.

    Parameters
    ----------
    config_file:
        Path to the project's TOML configuration file.
    target:
        ``local`` copies into ``publishing.local_repository``; ``artifactory``
        uploads with the JFrog CLI.
    dry_run:
        Print the planned Artifactory uploads without executing them.
    offline:
        Resolve from the cache and local repositories only.
    """
    try:
        config = load_config(Path(config_file))
        repository = config.publishing.artifactory_repository
        if target == "artifactory" and not repository:
            message = (
                "publishing.artifactory_repository must be set to publish "
                "to Artifactory"
            )
            raise ShadeError(message)
        result = _build(config, offline=offline)
        publications = plan_publications(config, result)
        if target == "local":
            published = publish_local(
                publications, config.publishing.local_repository
            )
        else:
            published = publish_artifactory(
                publications,
                repository,
                server=config.publishing.artifactory_server,
                dry_run=dry_run,
            )
    except (FileNotFoundError, ShadeError) as exc:
        _fail("Publishing Failure", exc)
    except (ProcessExecutionError, CommandNotFound) as exc:  # pragma: no cover
        _fail("Publishing Failure", exc)

    print(
        f"Published {len(publications)} publication(s) as "
        f"{len(published)} file(s) to {target}.",
        file=sys.stderr,
    )


if __name__ == "__main__":
    app()
