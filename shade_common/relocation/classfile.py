"""Constant-pool level rewriting of compiled Java classes.

Every symbolic reference in a class file (class names, descriptors, generic
signatures, string constants) lives in a ``CONSTANT_Utf8`` entry of the
constant pool. Relocation therefore only rebuilds the pool; the bytes after it
are copied unchanged because they refer to pool entries by index.
"""

from __future__ import annotations

import dataclasses
import struct
import typing as typ

from ..errors import RelocationError
from .relocator import DESCRIPTOR_CLASS, Relocator

__all__ = ["ClassSummary", "class_summary", "relocate_class"]

MAGIC = 0xCAFEBABE

UTF8 = 1
INTEGER = 3
FLOAT = 4
LONG = 5
DOUBLE = 6
CLASS = 7
STRING = 8
FIELDREF = 9
METHODREF = 10
INTERFACE_METHODREF = 11
NAME_AND_TYPE = 12
METHOD_HANDLE = 15
METHOD_TYPE = 16
DYNAMIC = 17
INVOKE_DYNAMIC = 18
MODULE = 19
PACKAGE = 20

# Payload size of every fixed-width constant, keyed by tag.
_FIXED_SIZES = {
    INTEGER: 4,
    FLOAT: 4,
    LONG: 8,
    DOUBLE: 8,
    CLASS: 2,
    STRING: 2,
    FIELDREF: 4,
    METHODREF: 4,
    INTERFACE_METHODREF: 4,
    NAME_AND_TYPE: 4,
    METHOD_HANDLE: 3,
    METHOD_TYPE: 2,
    DYNAMIC: 4,
    INVOKE_DYNAMIC: 4,
    MODULE: 2,
    PACKAGE: 2,
}

_ROLE_CLASS = "class"
_ROLE_PACKAGE = "package"
_ROLE_STRING = "string"
_ROLE_PRIORITY = (_ROLE_CLASS, _ROLE_PACKAGE, _ROLE_STRING)


@dataclasses.dataclass(slots=True)
class _Constant:
    tag: int
    payload: bytes


@dataclasses.dataclass(slots=True)
class _ConstantPool:
    header: bytes
    entries: dict[int, _Constant]
    count: int
    end: int

    def index_at(self, index: int, offset: int = 0) -> int:
        return struct.unpack_from(">H", self.entries[index].payload, offset)[0]

    def utf8(self, index: int) -> bytes:
        entry = self.entries.get(index)
        if entry is None or entry.tag != UTF8:
            message = f"Constant #{index} is not a CONSTANT_Utf8 entry"
            raise RelocationError(message)
        return entry.payload


@dataclasses.dataclass(frozen=True, slots=True)
class ClassSummary:
    """Names read from a class file's constant pool."""

    name: str
    super_name: str | None
    references: frozenset[str]


def _read_pool(data: bytes) -> _ConstantPool:
    if len(data) < 10 or struct.unpack_from(">I", data)[0] != MAGIC:
        message = "Not a class file: missing 0xCAFEBABE header"
        raise RelocationError(message)
    count = struct.unpack_from(">H", data, 8)[0]
    entries: dict[int, _Constant] = {}
    offset = 10
    index = 1
    try:
        while index < count:
            tag = data[offset]
            offset += 1
            if tag == UTF8:
                length = struct.unpack_from(">H", data, offset)[0]
                payload = data[offset + 2 : offset + 2 + length]
                if len(payload) != length:
                    raise IndexError(offset)
                offset += 2 + length
            elif (size := _FIXED_SIZES.get(tag)) is not None:
                payload = data[offset : offset + size]
                if len(payload) != size:
                    raise IndexError(offset)
                offset += size
            else:
                message = f"Unknown constant pool tag {tag} at entry #{index}"
                raise RelocationError(message)
            entries[index] = _Constant(tag, payload)
            # Long and double constants occupy two pool slots.
            index += 2 if tag in {LONG, DOUBLE} else 1
    except (IndexError, struct.error) as exc:
        message = "Truncated class file constant pool"
        raise RelocationError(message) from exc
    return _ConstantPool(data[:8], entries, count, offset)


def _utf8_roles(pool: _ConstantPool) -> dict[int, str]:
    """Map ``CONSTANT_Utf8`` indices to the strongest role referencing them."""
    roles: dict[int, str] = {}

    def claim(index: int, role: str) -> None:
        current = roles.get(index)
        if current is None or _ROLE_PRIORITY.index(role) < _ROLE_PRIORITY.index(
            current
        ):
            roles[index] = role

    for index, entry in pool.entries.items():
        if entry.tag == CLASS:
            claim(pool.index_at(index), _ROLE_CLASS)
        elif entry.tag == PACKAGE:
            claim(pool.index_at(index), _ROLE_PACKAGE)
        elif entry.tag == STRING:
            claim(pool.index_at(index), _ROLE_STRING)
    return roles


def _relocate_utf8(value: bytes, role: str | None, relocator: Relocator) -> bytes:
    if role == _ROLE_CLASS and not value.startswith(b"["):
        return _relocate_internal_name(value, relocator)
    if role == _ROLE_PACKAGE:
        return _relocate_internal_name(value, relocator)
    if role == _ROLE_STRING:
        return relocator.relocate_literal(value)
    return relocator.relocate_descriptor(value)


def _relocate_internal_name(value: bytes, relocator: Relocator) -> bytes:
    try:
        text = value.decode("ascii")
    except UnicodeDecodeError:
        return value
    return relocator.relocate_path(text).encode("ascii")


def relocate_class(data: bytes, relocator: Relocator) -> bytes:
    """Return ``data`` with every reference covered by ``relocator`` rewritten.

    Parameters
    ----------
    data : bytes
        Contents of a ``.class`` file.
    relocator : Relocator
        Rules applied to class names, descriptors and string constants.

    Returns
    -------
    bytes
        The rewritten class file, or ``data`` itself when nothing changed.

    Raises
    ------
    RelocationError
        Raised when ``data`` is not a well-formed class file or a rewritten
        constant exceeds the 65535 byte limit.
    """
    pool = _read_pool(data)
    roles = _utf8_roles(pool)
    changed = False
    chunks = [pool.header, struct.pack(">H", pool.count)]
    for index in sorted(pool.entries):
        entry = pool.entries[index]
        chunks.append(bytes([entry.tag]))
        if entry.tag != UTF8:
            chunks.append(entry.payload)
            continue
        value = _relocate_utf8(entry.payload, roles.get(index), relocator)
        if value != entry.payload:
            changed = True
        if len(value) > 0xFFFF:
            message = f"Relocated constant #{index} exceeds 65535 bytes"
            raise RelocationError(message)
        chunks.append(struct.pack(">H", len(value)))
        chunks.append(value)
    if not changed:
        return data
    chunks.append(data[pool.end :])
    return b"".join(chunks)


def class_summary(data: bytes) -> ClassSummary:
    """Return the class name and referenced classes of a class file.

    Array descriptors and descriptor strings contribute the element classes
    they mention, so the references cover fields, method signatures and
    generic signatures as well as explicit class constants.
    """
    pool = _read_pool(data)
    try:
        this_index, super_index = struct.unpack_from(">HH", data, pool.end + 2)
    except struct.error as exc:
        message = "Truncated class file header"
        raise RelocationError(message) from exc

    def class_name(index: int) -> str:
        return pool.utf8(pool.index_at(index)).decode("utf-8", "replace")

    references: set[str] = set()
    for entry in pool.entries.values():
        if entry.tag != UTF8:
            continue
        for name in _descriptor_names(entry.payload):
            references.add(name)
    for index, entry in pool.entries.items():
        if entry.tag == CLASS:
            name = class_name(index)
            if name.startswith("["):
                references.update(_descriptor_names(name.encode("utf-8")))
            else:
                references.add(name)
    name = class_name(this_index)
    references.discard(name)
    return ClassSummary(
        name=name,
        super_name=class_name(super_index) if super_index else None,
        references=frozenset(references),
    )


def _descriptor_names(value: bytes) -> typ.Iterator[str]:
    for match in DESCRIPTOR_CLASS.finditer(value):
        yield match.group(1).decode("utf-8", "replace")
