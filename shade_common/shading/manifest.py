"""JAR manifest generation."""

from __future__ import annotations

import datetime as dt
import getpass
import typing as typ

from .._version import __version__

if typ.TYPE_CHECKING:
    from ..config import ShadeConfig

__all__ = ["MANIFEST_NAME", "manifest_attributes", "render_manifest"]

MANIFEST_NAME = "META-INF/MANIFEST.MF"
_LINE_LIMIT = 72


def manifest_attributes(
    config: ShadeConfig, now: dt.datetime | None = None
) -> dict[str, str]:
    """Return the main manifest attributes for ``config``.

    Configured ``[manifest]`` attributes override the defaults.
    """
    moment = now or dt.datetime.now()
    attributes = {
        "Manifest-Version": "1.0",
        "Implementation-Title": config.project.name,
        "Implementation-Version": config.project.version,
        "Built-By": _user_name(),
        "Built-Date": moment.strftime("%m/%d/%Y"),
        "Created-By": f"shade {__version__}",
    }
    attributes.update(config.manifest)
    return attributes


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def render_manifest(attributes: typ.Mapping[str, str]) -> bytes:
    """Serialise ``attributes`` as a manifest main section.

    Lines are wrapped at 72 bytes with continuation lines starting with a
    single space, and ``Manifest-Version`` always comes first.

    Examples
    --------
    >>> render_manifest({"Manifest-Version": "1.0"})
    b'Manifest-Version: 1.0\\r\\n\\r\\n'
    """
    ordered = dict(attributes)
    version = ordered.pop("Manifest-Version", "1.0")
    lines = [_wrap(f"Manifest-Version: {version}")]
    lines.extend(_wrap(f"{name}: {value}") for name, value in ordered.items())
    return b"".join(lines) + b"\r\n"


def _wrap(line: str) -> bytes:
    encoded = line.encode("utf-8")
    chunks: list[bytes] = []
    limit = _LINE_LIMIT
    while len(encoded) > limit:
        cut = limit
        # Never split a multi-byte UTF-8 sequence.
        while cut > 0 and (encoded[cut] & 0xC0) == 0x80:
            cut -= 1
        chunks.append(encoded[:cut])
        encoded = encoded[cut:]
        limit = _LINE_LIMIT - 1
    chunks.append(encoded)
    return b"\r\n ".join(chunks) + b"\r\n"
