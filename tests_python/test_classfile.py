"""Tests for constant-pool rewriting of class files."""

from __future__ import annotations

import pytest
from shade_test_helpers import build_class

from shade_common.config import RelocationRule
from shade_common.errors import RelocationError
from shade_common.relocation import Relocator, class_summary, relocate_class


@pytest.fixture
def relocator() -> Relocator:
    """Relocate ``org.example`` beneath ``shaded``."""

    return Relocator([RelocationRule("org.example", "shaded.org.example")])


def test_relocates_class_name_and_superclass(relocator: Relocator) -> None:
    """The class and its superclass move when both fall under a rule."""

    data = build_class("org/example/Foo", "org/example/Base")

    summary = class_summary(relocate_class(data, relocator))

    assert summary.name == "shaded/org/example/Foo"
    assert summary.super_name == "shaded/org/example/Base"


def test_references_from_project_classes_follow(relocator: Relocator) -> None:
    """A project class keeps its name but its references are rewritten."""

    data = build_class(
        "com/acme/Plugin",
        class_refs=["org/example/Foo", "[Lorg/example/Bar;"],
        strings=["org.example.Foo", "plain text"],
        descriptors=["(Lorg/example/Foo;)V"],
    )

    relocated = relocate_class(data, relocator)
    summary = class_summary(relocated)

    assert summary.name == "com/acme/Plugin"
    assert summary.references >= {
        "shaded/org/example/Foo",
        "shaded/org/example/Bar",
    }
    assert not any(ref.startswith("org/example/") for ref in summary.references)
    assert b"shaded.org.example.Foo" in relocated
    assert b"plain text" in relocated


def test_descriptor_shaped_string_constants_follow(relocator: Relocator) -> None:
    """String constants spelled as descriptors or array names are rewritten."""

    data = build_class(
        "com/acme/Loader",
        strings=[
            "Lorg/example/Foo;",
            "[Lorg/example/Foo;",
            "[Lorg.example.Foo;",
            "(Lorg/example/Foo;)V",
        ],
    )

    relocated = relocate_class(data, relocator)

    assert b"\x00\x18Lshaded/org/example/Foo;" in relocated
    assert b"\x00\x19[Lshaded/org/example/Foo;" in relocated
    assert b"\x00\x19[Lshaded.org.example.Foo;" in relocated
    assert b"(Lshaded/org/example/Foo;)V" in relocated
    assert b"Lorg/example/" not in relocated
    assert b"Lorg.example." not in relocated


def test_unrelated_class_is_returned_unchanged(relocator: Relocator) -> None:
    """Classes with nothing to relocate keep their exact bytes."""

    data = build_class("com/other/Bar", class_refs=["java/util/List"])

    assert relocate_class(data, relocator) == data


def test_two_slot_constants_keep_indices_aligned(relocator: Relocator) -> None:
    """Long constants occupy two pool slots without shifting later entries."""

    data = build_class("org/example/Foo", long_value=42)

    summary = class_summary(relocate_class(data, relocator))

    assert summary.name == "shaded/org/example/Foo"
    assert summary.super_name == "java/lang/Object"


def test_bad_magic_is_rejected(relocator: Relocator) -> None:
    """Non-class data should raise ``RelocationError``."""

    with pytest.raises(RelocationError, match="0xCAFEBABE"):
        relocate_class(b"PK\x03\x04not a class", relocator)


def test_truncated_pool_is_rejected(relocator: Relocator) -> None:
    """A class cut off inside its constant pool cannot be relocated."""

    data = build_class("org/example/Foo")

    with pytest.raises(RelocationError, match="Truncated"):
        relocate_class(data[:14], relocator)
