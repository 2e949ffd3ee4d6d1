"""Append step outputs to the file named by ``GITHUB_OUTPUT``."""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path

from .errors import ShadeError

__all__ = ["write_github_output"]

_OUTPUT_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _render(value: str | Sequence[str]) -> str:
    if isinstance(value, Sequence) and not isinstance(value, str):
        return "\n".join(value)
    return str(value)


def write_github_output(
    file: Path, values: Mapping[str, str | Sequence[str]]
) -> None:
    """Append ``values`` to ``file`` as heredoc-delimited output records.

    Each record gets its own random delimiter so values may span several
    lines; sequence values are written one item per line.

    Raises
    ------
    ShadeError
        Raised when a key is not a valid step output name. Nothing is
        written in that case.
    """
    invalid = sorted(key for key in values if not _OUTPUT_KEY.match(key))
    if invalid:
        message = f"Invalid workflow output name(s): {', '.join(map(repr, invalid))}"
        raise ShadeError(message)

    records = []
    for key, value in values.items():
        delimiter = f"SHADE_{uuid.uuid4().hex}"
        records.append(f"{key}<<{delimiter}\n{_render(value)}\n{delimiter}\n")

    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("a", encoding="utf-8") as handle:
        handle.write("".join(records))
