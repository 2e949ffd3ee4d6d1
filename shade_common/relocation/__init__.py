"""Relocation of package namespaces inside classes and resources."""

from .classfile import ClassSummary, class_summary, relocate_class
from .relocator import Relocator

__all__ = ["ClassSummary", "Relocator", "class_summary", "relocate_class"]
