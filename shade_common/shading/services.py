"""Merging of ``META-INF/services`` registration files."""

from __future__ import annotations

import typing as typ

from ..errors import ShadeError

if typ.TYPE_CHECKING:
    from ..relocation import Relocator

__all__ = ["SERVICES_PREFIX", "ServiceFileMerger", "is_service_file"]

SERVICES_PREFIX = "META-INF/services/"


def is_service_file(name: str) -> bool:
    """Return ``True`` when ``name`` is a service registration file.

    Examples
    --------
    >>> is_service_file("META-INF/services/java.sql.Driver")
    True
    >>> is_service_file("META-INF/services/nested/file")
    False
    """
    service = name.removeprefix(SERVICES_PREFIX)
    return service != name and bool(service) and "/" not in service


class ServiceFileMerger:
    """Collect service registrations from every input and merge them.

    Entries keep first-seen order, comments and blank lines are dropped, and
    duplicates are removed. Both the interface named by the file and every
    provider listed in it pass through the relocator, so registrations follow
    relocated classes.
    """

    def __init__(self, relocator: Relocator) -> None:
        self._relocator = relocator
        self._providers: dict[str, list[str]] = {}
        self._sources: dict[str, list[str]] = {}

    def add(self, name: str, data: bytes, source: str) -> None:
        """Register the service file ``name`` contributed by ``source``.

        Raises
        ------
        ShadeError
            Raised when ``data`` is not UTF-8 text.
        """
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            message = f"Cannot read service file {name} from {source}: {exc}"
            raise ShadeError(message) from exc
        service = self._relocator.relocate_class_name(name.removeprefix(SERVICES_PREFIX))
        target = f"{SERVICES_PREFIX}{service}"
        providers = self._providers.setdefault(target, [])
        self._sources.setdefault(target, []).append(source)
        for line in text.splitlines():
            provider = line.split("#", 1)[0].strip()
            if not provider:
                continue
            provider = self._relocator.relocate_class_name(provider)
            if provider not in providers:
                providers.append(provider)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def merged_names(self) -> list[str]:
        """Service files contributed by more than one input."""
        return [name for name, sources in self._sources.items() if len(sources) > 1]

    def files(self) -> dict[str, bytes]:
        """Return the merged service files keyed by archive entry name."""
        return {
            name: "".join(f"{provider}\n" for provider in providers).encode("utf-8")
            for name, providers in self._providers.items()
        }
