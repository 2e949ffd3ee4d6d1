"""Workflow outputs describing a finished build."""

from __future__ import annotations

from .pipeline import ShadeResult

__all__ = ["prepare_output_data"]


def prepare_output_data(
    result: ShadeResult, publication: str
) -> dict[str, str | list[str]]:
    """Assemble workflow outputs describing the shaded archive.

    Parameters
    ----------
    result : ShadeResult
        Summary returned by the build.
    publication : str
        Name of the publication the archive is registered with.

    Returns
    -------
    dict[str, str | list[str]]
        Values ready to be exported to the GitHub Actions output file.

    Examples
    --------
    >>> from pathlib import Path
    >>> result = ShadeResult(  # doctest: +SKIP
    ...     Path("build/libs/app-1.0.jar"), "abc123", 3, 1, {}, [], [], []
    ... )
    >>> sorted(prepare_output_data(result, "pluginMaven"))  # doctest: +SKIP
    ['archive_path', 'archive_sha256', 'publication', 'shaded_dependencies']
    """
    return {
        "archive_path": result.archive.as_posix(),
        "archive_sha256": result.checksum,
        "publication": publication,
        "shaded_dependencies": [str(item) for item in result.shaded_dependencies],
    }
