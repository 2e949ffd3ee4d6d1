"""Package-prefix relocation shared by class and resource rewriting."""

from __future__ import annotations

import re
import typing as typ

if typ.TYPE_CHECKING:
    from ..config import RelocationRule

__all__ = ["DESCRIPTOR_CLASS", "Relocator"]

# ``L<internal name>`` followed by ``;`` or the ``<`` of a generic signature.
DESCRIPTOR_CLASS = re.compile(rb"L([^;<>()\[\].:\s]+)(?=[;<])")
_DOTTED_LITERAL = re.compile(rb"^[\w$]+(?:\.[\w$]+)*$")
_PATH_LITERAL = re.compile(rb"^/?[\w$\-]+(?:/[\w$\-.]+)*/?$")
# ``Class.forName`` spelling of array types, e.g. ``[Lorg.example.Foo;``.
_DOTTED_ARRAY_LITERAL = re.compile(rb"^(\[+L)([\w$]+(?:\.[\w$]+)+);$")


class Relocator:
    """Rewrite names that fall under a :class:`RelocationRule`.

    Rules are consulted longest-pattern-first so the most specific prefix wins
    whatever the declaration order. Every name is rewritten at most once.
    When the excludes of that most specific rule cover a name, the name stays
    in place even if a shorter rule would also match it.

    Examples
    --------
    >>> from shade_common.config import RelocationRule
    >>> relocator = Relocator([RelocationRule("org.example", "shaded.org.example")])
    >>> relocator.relocate_class_name("org.example.Foo")
    'shaded.org.example.Foo'
    >>> relocator.relocate_class_name("org.examples.Foo")
    'org.examples.Foo'
    """

    def __init__(self, rules: typ.Iterable[RelocationRule]) -> None:
        self.rules = tuple(
            sorted(rules, key=lambda rule: len(rule.pattern), reverse=True)
        )

    def __bool__(self) -> bool:
        return bool(self.rules)

    def rule_for_path(self, path: str) -> RelocationRule | None:
        """Return the rule that relocates the internal name ``path``."""
        for rule in self.rules:
            if not _under(rule.path_pattern, path):
                continue
            if any(_under(exclude, path) for exclude in rule.path_excludes):
                return None
            return rule
        return None

    def relocate_path(self, path: str) -> str:
        """Relocate an internal class name or a ``/`` separated resource path.

        Examples
        --------
        >>> from shade_common.config import RelocationRule
        >>> Relocator([RelocationRule("org.example", "x.org.example")]).relocate_path(
        ...     "org/example/Foo.class"
        ... )
        'x/org/example/Foo.class'
        """
        rule = self.rule_for_path(path)
        if rule is None:
            return path
        return rule.shaded_path_pattern + path[len(rule.path_pattern) :]

    def relocate_class_name(self, name: str) -> str:
        """Relocate a dotted class or package name."""
        relocated = self.relocate_path(name.replace(".", "/"))
        return relocated.replace("/", ".")

    def relocate_descriptor(self, descriptor: bytes) -> bytes:
        """Relocate every class referenced by a descriptor or signature."""
        return DESCRIPTOR_CLASS.sub(self._descriptor_match, descriptor)

    def relocate_literal(self, literal: bytes) -> bytes:
        """Relocate a string constant naming a class, package or resource.

        Descriptor-shaped constants are relocated like descriptors; the same
        ``CONSTANT_Utf8`` entry may back both a string and a member type.

        Examples
        --------
        >>> from shade_common.config import RelocationRule
        >>> relocator = Relocator([RelocationRule("org.example", "x.org.example")])
        >>> relocator.relocate_literal(b"[Lorg.example.Foo;")
        b'[Lx.org.example.Foo;'
        >>> relocator.relocate_literal(b"Lorg/example/Foo;")
        b'Lx/org/example/Foo;'
        """
        if _DOTTED_LITERAL.match(literal) and b"." in literal:
            return self.relocate_class_name(literal.decode("ascii")).encode("ascii")
        if _PATH_LITERAL.match(literal) and b"/" in literal.strip(b"/"):
            text = literal.decode("ascii")
            leading = "/" if text.startswith("/") else ""
            return (leading + self.relocate_path(text.removeprefix("/"))).encode(
                "ascii"
            )
        if match := _DOTTED_ARRAY_LITERAL.match(literal):
            name = self.relocate_class_name(match.group(2).decode("ascii"))
            return match.group(1) + name.encode("ascii") + b";"
        return self.relocate_descriptor(literal)

    def _descriptor_match(self, match: re.Match[bytes]) -> bytes:
        name = match.group(1)
        try:
            text = name.decode("ascii")
        except UnicodeDecodeError:
            return match.group(0)
        return b"L" + self.relocate_path(text).encode("ascii")


def _under(prefix: str, path: str) -> bool:
    return path == prefix or path.startswith(f"{prefix}/")
