"""Checksum helpers for built and published archives."""

from __future__ import annotations

import hashlib
from pathlib import Path

__all__ = ["file_digest", "write_checksum"]


def file_digest(path: Path, algorithm: str) -> str:
    """Return the hex digest of ``path`` using ``algorithm``.

    Parameters
    ----------
    path:
        Path to the file whose contents should be hashed.
    algorithm:
        Hashing algorithm name supported by :mod:`hashlib` (for example
        ``"sha256"``).
    """
    hasher = hashlib.new(algorithm)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def write_checksum(path: Path, algorithm: str) -> Path:
    """Write the Maven-style checksum sidecar for ``path``.

    Maven repositories store the bare digest in ``<file>.<algorithm>``.

    Returns
    -------
    Path
        Location of the sidecar file.
    """
    digest = file_digest(path, algorithm)
    checksum_path = path.with_name(f"{path.name}.{algorithm}")
    checksum_path.write_text(digest, encoding="utf-8")
    return checksum_path
