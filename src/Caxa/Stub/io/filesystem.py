"""Filesystem helpers for payload extraction and staging.

Responsibilities include resolving archive member names against the staging
root without ever letting them escape it, guarding writes that would pass
through previously extracted symlinks, and removing staging trees on failure.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ..errors import PathTraversalError

__all__ = [
    "canonical_root",
    "ensure_real_parent_within",
    "remove_tree",
    "resolve_member_target",
]


def canonical_root(destination: Path) -> str:
    """Return the absolute, normalized form of ``destination``."""

    return os.path.normpath(os.path.abspath(os.fspath(destination)))


def resolve_member_target(root: str, member_name: str) -> str:
    """Join ``member_name`` onto ``root`` and ensure the result stays strictly inside.

    ``.`` and ``..`` segments are normalized away before the check, and an
    absolute member name replaces the root entirely, so both forms fail the
    prefix test below.

    Raises:
        PathTraversalError: If the resolved path is the root itself or lies
            outside of it.
    """

    target = os.path.normpath(os.path.join(root, member_name))
    if not target.startswith(root + os.sep):
        raise PathTraversalError(f"illegal file path: {member_name}", member=member_name)
    return target


def ensure_real_parent_within(real_root: str, target: str) -> None:
    """Refuse to write ``target`` when its parent resolves outside ``real_root``.

    Lexical checks cannot see symlinks created by earlier entries; resolving the
    parent directory on disk closes that gap.
    """

    parent = os.path.realpath(os.path.dirname(target))
    if parent != real_root and not parent.startswith(real_root + os.sep):
        raise PathTraversalError(f"illegal file path: {target} escapes via symlink", member=target)


def remove_tree(path: Path, *, logger: Optional[logging.Logger] = None) -> bool:
    """Remove ``path`` recursively, returning ``False`` if anything was left behind."""

    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            shutil.rmtree(path)
    except OSError as exc:
        if logger:
            logger.warning(
                "failed to remove %s: %s",
                path,
                exc,
                extra={"stage": "cleanup", "app_dir": str(path)},
            )
        return False
    return True
