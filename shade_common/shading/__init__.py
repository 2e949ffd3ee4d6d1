"""Shaded archive assembly exposing the builder and its helpers."""

from .manifest import MANIFEST_NAME, manifest_attributes, render_manifest
from .output import prepare_output_data
from .pipeline import DuplicateEntry, ShadeResult, build_shaded_artifact
from .services import SERVICES_PREFIX, ServiceFileMerger, is_service_file

__all__ = [
    "MANIFEST_NAME",
    "SERVICES_PREFIX",
    "DuplicateEntry",
    "ServiceFileMerger",
    "ShadeResult",
    "build_shaded_artifact",
    "is_service_file",
    "manifest_attributes",
    "prepare_output_data",
    "render_manifest",
]
