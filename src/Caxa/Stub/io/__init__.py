"""Filesystem and extraction helpers for the bundle runtime.

This subpackage bundles the path containment checks used while unpacking the
payload and the parallel extractor itself.  Re-exporting the common symbols
keeps imports short for the staging layer.
"""

from .extraction import (
    SMALL_FILE_THRESHOLD,
    ExtractionJob,
    ExtractionStats,
    ParallelExtractor,
    extract_payload,
)
from .filesystem import (
    canonical_root,
    ensure_real_parent_within,
    remove_tree,
    resolve_member_target,
)

__all__ = [
    "SMALL_FILE_THRESHOLD",
    "ExtractionJob",
    "ExtractionStats",
    "ParallelExtractor",
    "extract_payload",
    "canonical_root",
    "ensure_real_parent_within",
    "remove_tree",
    "resolve_member_target",
]
