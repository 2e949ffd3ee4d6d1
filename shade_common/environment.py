"""Environment helpers shared by the shading toolchain."""

from __future__ import annotations

import os
from pathlib import Path

from .errors import ShadeError

__all__ = ["optional_env_path", "require_env_path"]


def require_env_path(name: str) -> Path:
    """Return ``Path`` value for ``name`` or raise :class:`ShadeError`.

    Parameters
    ----------
    name:
        Name of the environment variable to fetch.

    Raises
    ------
    ShadeError
        Raised when the environment variable is unset or empty.
    """
    value = os.environ.get(name)
    if not value:
        message = f"Environment variable '{name}' is not set."
        raise ShadeError(message)
    return Path(value)


def optional_env_path(name: str) -> Path | None:
    """Return ``Path`` value for ``name`` or ``None`` when it is unset."""
    value = os.environ.get(name)
    return Path(value) if value else None
